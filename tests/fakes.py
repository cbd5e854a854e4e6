"""Test doubles for worker channels and clocks."""

from __future__ import annotations

import pickle
from collections import deque

from daemon_workers.pool import CallReply, CallRequest, WorkerOperation, WorkerPoolDescriptor


class FakeChannel:
    """Worker context that only answers when a test tells it to."""

    def __init__(self, worker_name: str) -> None:
        self.worker_name = worker_name
        self.requests: list[CallRequest] = []
        self.replies: deque[CallReply] = deque()
        self.terminated = False
        self.closed = False

    def send(self, request: CallRequest) -> None:
        self.requests.append(request)

    def poll(self) -> CallReply | None:
        if self.terminated or not self.replies:
            return None
        return self.replies.popleft()

    def terminate(self) -> None:
        self.terminated = True

    def close(self) -> None:
        self.closed = True

    def reply(self, value=None, *, ok: bool = True, error: str | None = None) -> CallReply:
        request = self.requests[-1]
        reply = CallReply(
            call_id=request.call_id,
            attempt=request.attempt,
            ok=ok,
            value=value,
            error=error,
        )
        self.replies.append(reply)
        return reply


class PicklingChannel(FakeChannel):
    """Serializes every request the way a process pipe does."""

    def send(self, request: CallRequest) -> None:
        pickle.dumps(request)
        super().send(request)


class FakeChannelFactory:
    def __init__(self, channel_class: type[FakeChannel] = FakeChannel) -> None:
        self.channel_class = channel_class
        self.channels: list[FakeChannel] = []

    def __call__(self, worker_name: str) -> FakeChannel:
        channel = self.channel_class(worker_name)
        self.channels.append(channel)
        return channel

    def channel_for(self, call_id: int) -> FakeChannel:
        for channel in reversed(self.channels):
            if channel.terminated or not channel.requests:
                continue
            if channel.requests[-1].call_id == call_id:
                return channel
        raise AssertionError(f"No live channel is running call {call_id}")

    def sent_call_ids(self) -> list[int]:
        return [request.call_id for channel in self.channels for request in channel.requests]


class ExecutingChannel(FakeChannel):
    """Runs the target in-process as soon as it is sent."""

    def send(self, request: CallRequest) -> None:
        super().send(request)
        try:
            value = request.target(*request.args)
        except Exception as error:  # noqa: BLE001
            self.reply(ok=False, error=f"{type(error).__name__}: {error}")
        else:
            self.reply(value)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def echo(*args):
    return args


def make_descriptor(name: str = "Echo", **overrides) -> WorkerPoolDescriptor:
    values = {
        "name": name,
        "operations": {None: WorkerOperation(target=echo)},
        "capacity": 2,
        "timeout_seconds": 10.0,
        "max_retries": 3,
    }
    values.update(overrides)
    return WorkerPoolDescriptor(**values)


