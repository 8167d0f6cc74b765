import asyncio

import pytest

from scribe.pipelines.transcription.cancellation import CancellationToken, JobCancelled


def test_cancel_is_one_way_and_idempotent():
    token = CancellationToken()

    assert not token.cancelled
    assert token.cancel() is True
    assert token.cancel() is False
    assert token.cancelled
    with pytest.raises(JobCancelled):
        token.raise_if_cancelled()


def test_callbacks_run_once_and_can_be_removed():
    token = CancellationToken()
    calls = []

    token.add_callback(lambda: calls.append("kept"))
    remove = token.add_callback(lambda: calls.append("removed"))
    remove()

    token.cancel()
    token.cancel()

    assert calls == ["kept"]


def test_callback_added_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls = []

    token.add_callback(lambda: calls.append("late"))

    assert calls == ["late"]


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    calls = []

    def broken():
        raise RuntimeError("hook failed")

    token.add_callback(broken)
    token.add_callback(lambda: calls.append("after"))
    token.cancel()

    assert calls == ["after"]


def test_run_returns_result_when_not_cancelled():
    async def work():
        await asyncio.sleep(0)
        return 42

    assert asyncio.run(CancellationToken().run(work())) == 42


def test_run_aborts_in_flight_call_when_token_fires():
    started = []

    async def scenario():
        token = CancellationToken()
        never = asyncio.Event()

        async def slow():
            started.append(True)
            await never.wait()

        task = asyncio.create_task(token.run(slow()))
        while not started:
            await asyncio.sleep(0)
        token.cancel()
        with pytest.raises(JobCancelled):
            await task

    asyncio.run(scenario())


def test_run_refuses_to_start_after_cancel():
    async def scenario():
        token = CancellationToken()
        token.cancel()

        async def work():
            return 1

        coro = work()
        try:
            with pytest.raises(JobCancelled):
                await token.run(coro)
        finally:
            coro.close()

    asyncio.run(scenario())
