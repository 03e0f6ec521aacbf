"""
Unit tests for the worker pool.
"""

import threading

import pytest

from tinyserve.core.thread_pool import ThreadPool


class TestThreadPool:
    """Tests for ThreadPool."""

    def test_runs_submitted_tasks(self):
        """Test that submitted tasks run on workers."""
        pool = ThreadPool(min_workers=2, max_workers=2)
        pool.start()
        done = threading.Event()
        results = []

        def work(value):
            results.append(value)
            done.set()

        assert pool.submit(work, args=(42,)) is True
        assert done.wait(timeout=5)
        pool.shutdown()

        assert results == [42]

    def test_failing_task_does_not_kill_worker(self):
        """Test that a raising task is counted and the worker keeps serving."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        done = threading.Event()

        def boom():
            raise ValueError("boom")

        pool.submit(boom)
        pool.submit(done.set)
        assert done.wait(timeout=5)

        assert pool.stats["tasks"]["failed"] == 1
        pool.shutdown()

    def test_full_queue_rejects(self):
        """Test that submit() returns False instead of blocking."""
        pool = ThreadPool(min_workers=1, max_workers=1, queue_size=1)
        pool.start()
        release = threading.Event()
        started = threading.Event()

        def block():
            started.set()
            release.wait(timeout=5)

        pool.submit(block)
        assert started.wait(timeout=5)
        assert pool.submit(block) is True    # fills the queue
        assert pool.submit(block) is False   # queue full

        release.set()
        pool.shutdown()

    def test_submit_requires_start(self):
        """Test that a stopped pool refuses work."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        with pytest.raises(RuntimeError):
            pool.submit(print)

    def test_invalid_sizes(self):
        """Test worker bound validation."""
        with pytest.raises(ValueError):
            ThreadPool(min_workers=0)
        with pytest.raises(ValueError):
            ThreadPool(min_workers=4, max_workers=2)

    def test_restart_after_shutdown(self):
        """Test that a pool can be started again after shutdown."""
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        pool.shutdown()

        pool.start()
        done = threading.Event()
        pool.submit(done.set)
        assert done.wait(timeout=5)
        pool.shutdown()
