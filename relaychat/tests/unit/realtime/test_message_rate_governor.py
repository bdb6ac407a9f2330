"""Tests for the per-connection fixed-window rate governor."""

import asyncio

import pytest

from relaychat.realtime.rate_limiter import MessageRateGovernor


class TestMessageRateGovernor:
    def test_twenty_messages_allowed(self) -> None:
        governor = MessageRateGovernor(max_messages=20, window_seconds=10.0)

        assert all(governor.record() for _ in range(20))

    def test_twenty_first_message_exceeds(self) -> None:
        governor = MessageRateGovernor(max_messages=20, window_seconds=10.0)
        for _ in range(20):
            governor.record()

        assert governor.record() is False

    def test_reset_opens_a_new_window(self) -> None:
        governor = MessageRateGovernor(max_messages=2, window_seconds=10.0)
        governor.record()
        governor.record()

        governor.reset()

        assert governor.record() is True
        assert governor.get_rate_limit_info()["count"] == 1

    @pytest.mark.asyncio
    async def test_window_task_resets_counter(self) -> None:
        governor = MessageRateGovernor(max_messages=1, window_seconds=0.05)
        governor.start()
        try:
            assert governor.record() is True
            assert governor.record() is False

            await asyncio.sleep(0.12)

            assert governor.record() is True
        finally:
            governor.close()

    @pytest.mark.asyncio
    async def test_close_cancels_window_task(self) -> None:
        governor = MessageRateGovernor(window_seconds=10.0)
        governor.start()
        task = governor._window_task
        assert task is not None

        governor.close()
        await asyncio.sleep(0)

        assert task.cancelled() or task.done()
        assert governor.is_closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        governor = MessageRateGovernor()
        governor.start()

        governor.close()
        governor.close()

        assert governor.get_rate_limit_info()["closed"] is True

    @pytest.mark.asyncio
    async def test_start_after_close_does_nothing(self) -> None:
        governor = MessageRateGovernor()
        governor.close()

        governor.start()

        assert governor._window_task is None

    def test_rate_limit_info(self) -> None:
        governor = MessageRateGovernor(max_messages=20, window_seconds=10.0)
        for _ in range(5):
            governor.record()

        info = governor.get_rate_limit_info()

        assert info["messages_remaining"] == 15
        assert info["window_seconds"] == 10.0
