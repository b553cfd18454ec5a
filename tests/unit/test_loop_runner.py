"""Tests for LoopRunner (cadence/core/utils/loop_runner.py)."""

from __future__ import annotations

import asyncio
import gc
import threading
import warnings
from unittest.mock import MagicMock, patch

import pytest

from cadence.core.utils.loop_runner import LoopRunner, LoopRunnerError


@pytest.mark.unit
class TestLoopRunnerCall:
    """Behavioral tests for LoopRunner.call()."""

    def test_call_returns_result_from_runner_thread(self) -> None:
        runner = LoopRunner()
        caller = threading.current_thread()

        async def sample() -> bool:
            await asyncio.sleep(0)
            return threading.current_thread() is not caller

        try:
            assert runner.call(sample) is True
            assert runner.is_running
        finally:
            runner.stop()

    def test_call_propagates_exceptions(self) -> None:
        runner = LoopRunner()

        async def failing() -> None:
            raise ValueError('boom')

        try:
            with pytest.raises(ValueError, match='boom'):
                runner.call(failing)
        finally:
            runner.stop()

    def test_call_closes_coroutine_when_scheduling_fails(self) -> None:
        """Scheduling failure should not leak an un-awaited coroutine warning."""
        runner = LoopRunner()
        runner.start()

        async def sample() -> int:
            return 1

        try:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter('always', RuntimeWarning)
                with (
                    patch(
                        'asyncio.run_coroutine_threadsafe',
                        side_effect=RuntimeError('boom'),
                    ),
                    pytest.raises(LoopRunnerError, match='Failed to schedule coroutine'),
                ):
                    runner.call(sample)
                gc.collect()

            warning_texts = [str(w.message) for w in caught]
            assert not any('was never awaited' in text for text in warning_texts)
        finally:
            runner.stop()

    def test_call_after_stop_raises_instead_of_restarting(self) -> None:
        """Calling after a successful stop should fail closed, not restart."""
        runner = LoopRunner()
        runner.start()
        runner.stop()

        async def sample() -> int:
            return 1

        with pytest.raises(LoopRunnerError, match='cannot be restarted'):
            runner.call(sample)

        assert runner._started is False
        assert runner._loop is None

    def test_call_from_runner_thread_is_refused(self) -> None:
        """Blocking on the loop from its own thread would deadlock."""
        runner = LoopRunner()

        async def inner() -> int:
            return 1

        async def outer() -> None:
            runner.call(inner)

        try:
            with pytest.raises(LoopRunnerError, match='own thread'):
                runner.call(outer)
        finally:
            runner.stop()


@pytest.mark.unit
class TestLoopRunnerSubmit:
    def test_submit_does_not_block(self) -> None:
        runner = LoopRunner()
        release = threading.Event()

        async def wait_for_release() -> str:
            await asyncio.to_thread(release.wait)
            return 'done'

        try:
            future = runner.submit(wait_for_release)
            assert not future.done()
            release.set()
            assert future.result(timeout=5) == 'done'
        finally:
            runner.stop()


@pytest.mark.unit
class TestLoopRunnerStop:
    """Behavioral tests for LoopRunner.stop()."""

    def test_stop_does_not_close_loop_when_thread_still_alive(self) -> None:
        """If join(timeout) returns with alive thread, keep loop/thread state intact."""
        runner = LoopRunner()
        runner._started = True
        runner._loop = MagicMock()
        runner._thread = MagicMock()
        runner._thread.is_alive.return_value = True

        with patch.object(runner.logger, 'warning') as mock_warn:
            runner.stop()

        runner._loop.call_soon_threadsafe.assert_called_once()
        runner._loop.close.assert_not_called()
        mock_warn.assert_called_once()
        assert runner._loop is not None

    def test_stop_before_start_marks_closed(self) -> None:
        runner = LoopRunner()

        runner.stop()

        assert runner.is_running is False
        with pytest.raises(LoopRunnerError):
            runner.start()
