from __future__ import annotations

import time

import allure
import pytest

from daemon_workers.pool import CallReply, CallRequest, Dispatcher, WorkerOperation, WorkerPoolDescriptor
from daemon_workers.pool.transport import ProcessChannel
from daemon_workers.workers import get_factors

pytestmark = [
    allure.epic("Worker Pools"),
    allure.feature("Process Transport"),
]


def _wait_for_reply(channel: ProcessChannel, timeout: float = 10.0) -> CallReply:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        reply = channel.poll()
        if reply is not None:
            return reply
        time.sleep(0.01)
    pytest.fail("worker process did not reply in time")


@pytest.fixture()
def channel():
    process_channel = ProcessChannel("GetFactors")
    yield process_channel
    process_channel.terminate()


def test_worker_process_runs_target_and_replies(channel: ProcessChannel) -> None:
    channel.send(CallRequest(call_id=1, attempt=1, target=get_factors, args=(12,)))

    reply = _wait_for_reply(channel)

    assert reply == CallReply(call_id=1, attempt=1, ok=True, value=[2, 3, 4])
    assert channel.alive


def test_worker_exception_becomes_error_reply(channel: ProcessChannel) -> None:
    channel.send(CallRequest(call_id=2, attempt=3, target=get_factors, args=("12",)))

    reply = _wait_for_reply(channel)

    assert not reply.ok
    assert reply.attempt == 3
    assert reply.error == "TypeError: Invalid Input! Expected Integer. Given: str"


def test_worker_process_is_reused_between_calls(channel: ProcessChannel) -> None:
    pid = channel.pid
    for call_id, number in ((1, 10), (2, 21)):
        channel.send(CallRequest(call_id=call_id, attempt=1, target=get_factors, args=(number,)))
        assert _wait_for_reply(channel).call_id == call_id

    assert channel.pid == pid


def test_terminate_stops_process() -> None:
    process_channel = ProcessChannel("GetFactors")

    process_channel.terminate()

    assert not process_channel.alive
    assert process_channel.poll() is None


def test_hanging_worker_is_terminated_and_slot_gets_fresh_process() -> None:
    created: list[ProcessChannel] = []
    returned: list[tuple[int, object]] = []

    def factory(worker_name: str) -> ProcessChannel:
        created.append(ProcessChannel(worker_name))
        return created[-1]

    dispatcher = Dispatcher(channel_factory=factory)
    dispatcher.register(
        WorkerPoolDescriptor(
            name="Sleeper",
            operations={None: WorkerOperation(target=time.sleep)},
            capacity=1,
            timeout_seconds=0.5,
            max_retries=0,
            on_return=lambda call, context: returned.append((call.id, call.error)),
        ),
    )
    try:
        hanging = dispatcher.submit("Sleeper", args=(60,))
        time.sleep(0.7)
        summary = dispatcher.tick()

        assert summary.abandoned == 1
        assert dispatcher.get(hanging) is None
        assert not created[0].alive

        quick = dispatcher.submit("Sleeper", args=(0,))
        deadline = time.monotonic() + 10.0
        while dispatcher.pending_count() and time.monotonic() < deadline:
            dispatcher.tick()
            time.sleep(0.02)

        assert returned == [(quick, None)]
        assert len(created) == 2
        assert created[1].pid != created[0].pid
    finally:
        dispatcher.shutdown()
