"""
Tests for the exit signal.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from koko.exit import ExitSignal


class TestExitSignal:
    """Tests for ExitSignal."""

    def test_initially_clear(self) -> None:
        """A new signal is not set."""
        assert not ExitSignal().is_set()

    def test_signal_is_idempotent(self) -> None:
        """Signalling twice leaves the flag set."""
        exit_signal = ExitSignal()
        exit_signal.signal()
        exit_signal.signal()
        assert exit_signal.is_set()

    @pytest.mark.asyncio
    async def test_wakes_all_waiters(self) -> None:
        """Every waiter returns after a single signal."""
        exit_signal = ExitSignal()
        waiters = [asyncio.create_task(exit_signal.wait()) for _ in range(3)]
        await asyncio.sleep(0)
        assert not any(w.done() for w in waiters)

        exit_signal.signal()
        await asyncio.wait_for(asyncio.gather(*waiters), 1.0)

    @pytest.mark.asyncio
    async def test_wait_after_signal_returns(self) -> None:
        """Waiting on an already set signal returns at once."""
        exit_signal = ExitSignal()
        exit_signal.signal()
        await asyncio.wait_for(exit_signal.wait(), 0.1)

    @pytest.mark.asyncio
    async def test_signal_from_thread(self) -> None:
        """A signal from another thread wakes an asyncio waiter."""
        exit_signal = ExitSignal()
        waiter = asyncio.create_task(exit_signal.wait())
        await asyncio.sleep(0)

        thread = threading.Thread(target=exit_signal.signal)
        thread.start()
        await asyncio.wait_for(waiter, 1.0)
        thread.join()

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_forgotten(self) -> None:
        """A cancelled wait does not linger in the waiter set."""
        exit_signal = ExitSignal()
        waiter = asyncio.create_task(exit_signal.wait())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        exit_signal.signal()
        assert exit_signal.is_set()

    def test_wait_blocking(self) -> None:
        """The blocking wait reports timeout and then the set flag."""
        exit_signal = ExitSignal()
        assert exit_signal.wait_blocking(0.01) is False

        threading.Timer(0.01, exit_signal.signal).start()
        assert exit_signal.wait_blocking(1.0) is True
