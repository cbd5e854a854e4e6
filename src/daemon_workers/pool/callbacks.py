"""Exactly-once routing of completed and timed-out calls to their handlers."""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from daemon_workers.pool.models import Call, CallHandler

if TYPE_CHECKING:
    from daemon_workers.storage.repository import JobRecordStore

logger = logging.getLogger(__name__)

SubmitHandle = Callable[..., "int | None"]


class CallbackKind(str, Enum):
    RETURN = "return"
    TIMEOUT = "timeout"


class CallLogAdapter(logging.LoggerAdapter):
    """Prefix handler log lines with the call they belong to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        return f"[{extra.get('call_label')} #{extra.get('call_id')}] {msg}", kwargs


@dataclass(slots=True)
class HandlerContext:
    """Capabilities handed to a pool handler: logging, resubmission, persistence."""

    log: logging.LoggerAdapter
    submit: SubmitHandle
    store: JobRecordStore | None = None


@dataclass(slots=True)
class CallbackEvent:
    """A transition waiting for its handler."""

    kind: CallbackKind
    call: Call
    attempt: int
    handler: CallHandler


class CallbackRouter:
    """Invoke each pool handler at most once per call attempt and transition kind."""

    def __init__(
        self,
        *,
        submit: SubmitHandle,
        store: JobRecordStore | None = None,
        handler_logger: logging.Logger | None = None,
    ) -> None:
        self._submit = submit
        self._store = store
        self._handler_logger = handler_logger or logging.getLogger("daemon_workers.handlers")
        self._fired: dict[int, set[tuple[int, CallbackKind]]] = {}

    def context_for(self, call: Call) -> HandlerContext:
        return HandlerContext(
            log=CallLogAdapter(
                self._handler_logger,
                {"call_id": call.id, "call_label": call.label},
            ),
            submit=self._submit,
            store=self._store,
        )

    def dispatch(self, event: CallbackEvent) -> bool:
        """Run the handler for ``event``; returns False if it already fired."""

        key = (event.attempt, event.kind)
        fired = self._fired.setdefault(event.call.id, set())
        if key in fired:
            logger.debug(
                "Skipping duplicate %s callback for call %s attempt %s",
                event.kind.value,
                event.call.id,
                event.attempt,
            )
            return False
        fired.add(key)

        try:
            event.handler(event.call, self.context_for(event.call))
        except Exception:
            logger.exception(
                "%s handler failed for call %s (%s)",
                event.kind.value,
                event.call.id,
                event.call.label,
            )
        return True

    def forget(self, call_id: int) -> None:
        """Drop bookkeeping for a call that reached a terminal state."""

        self._fired.pop(call_id, None)
