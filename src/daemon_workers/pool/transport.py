"""Channels that carry calls to worker processes and replies back."""

from __future__ import annotations

import logging
import multiprocessing
from multiprocessing.connection import Connection
from typing import Protocol

from daemon_workers.pool.models import CallReply, CallRequest

logger = logging.getLogger(__name__)


class WorkerChannel(Protocol):
    """One isolated worker execution context."""

    def send(self, request: CallRequest) -> None:
        """Hand one attempt to the worker; must not wait for the result."""

    def poll(self) -> CallReply | None:
        """Return the worker reply if one is ready."""

    def terminate(self) -> None:
        """Kill the worker context, discarding any attempt in flight."""

    def close(self) -> None:
        """Stop an idle worker context."""


class ChannelFactory(Protocol):
    def __call__(self, worker_name: str) -> WorkerChannel: ...


def _worker_main(connection: Connection) -> None:  # pragma: no cover - runs in child process
    while True:
        try:
            request = connection.recv()
        except (EOFError, OSError):
            return
        if request is None:
            return
        try:
            value = request.target(*request.args)
        except Exception as error:  # noqa: BLE001
            reply = CallReply(
                call_id=request.call_id,
                attempt=request.attempt,
                ok=False,
                error=f"{type(error).__name__}: {error}",
            )
        else:
            reply = CallReply(
                call_id=request.call_id,
                attempt=request.attempt,
                ok=True,
                value=value,
            )
        try:
            connection.send(reply)
        except Exception as error:  # noqa: BLE001
            connection.send(
                CallReply(
                    call_id=request.call_id,
                    attempt=request.attempt,
                    ok=False,
                    error=f"Unpicklable result: {error}",
                ),
            )


class ProcessChannel:
    """Worker context backed by a dedicated ``multiprocessing`` process."""

    def __init__(self, worker_name: str, *, start_method: str | None = None) -> None:
        self.worker_name = worker_name
        context = multiprocessing.get_context(start_method)
        self._connection, child_connection = context.Pipe()
        self._process = context.Process(
            target=_worker_main,
            args=(child_connection,),
            name=f"worker-{worker_name}",
            daemon=True,
        )
        self._process.start()
        child_connection.close()
        logger.debug("Started worker process %s pid=%s", worker_name, self._process.pid)

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def alive(self) -> bool:
        return self._process.is_alive()

    def send(self, request: CallRequest) -> None:
        self._connection.send(request)

    def poll(self) -> CallReply | None:
        try:
            if not self._connection.poll():
                return None
            return self._connection.recv()
        except (EOFError, OSError):
            return None

    def terminate(self) -> None:
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(timeout=2)
            if self._process.is_alive():
                self._process.kill()
                self._process.join(timeout=2)
        self._connection.close()
        logger.debug("Terminated worker process %s pid=%s", self.worker_name, self._process.pid)

    def close(self) -> None:
        try:
            self._connection.send(None)
        except OSError:
            pass
        self._process.join(timeout=2)
        if self._process.is_alive():
            self.terminate()
            return
        self._connection.close()
