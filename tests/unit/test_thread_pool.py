"""
Unit tests for the worker thread pool.
"""

import threading

from translation_server.core.thread_pool import ThreadPool


class TestThreadPool:

    def test_runs_submitted_tasks(self, wait_until):
        pool = ThreadPool(min_workers=2, max_workers=4)
        pool.start()
        results = []
        try:
            for i in range(10):
                assert pool.submit(results.append, args=(i,))
            assert wait_until(lambda: len(results) == 10)
        finally:
            pool.shutdown()

        assert sorted(results) == list(range(10))

    def test_scales_up_when_all_busy(self, wait_until):
        pool = ThreadPool(min_workers=1, max_workers=3)
        pool.start()
        release = threading.Event()
        try:
            for expected in (1, 2, 3):
                pool.submit(release.wait, args=(5.0,))
                assert wait_until(lambda: pool.busy_workers == expected)
            assert pool.stats["workers"]["total"] == 3
        finally:
            release.set()
            pool.shutdown()

    def test_failing_task_does_not_kill_worker(self, wait_until):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        done = threading.Event()

        def boom():
            raise RuntimeError("task failed")

        try:
            pool.submit(boom)
            pool.submit(done.set)
            assert done.wait(2.0)
            assert wait_until(lambda: pool.stats["tasks"]["failed"] == 1)
        finally:
            pool.shutdown()

    def test_submit_after_shutdown_is_rejected(self):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        pool.shutdown()

        assert pool.submit(lambda: None) is False
        assert not pool.is_running

    def test_restart(self, wait_until):
        pool = ThreadPool(min_workers=1, max_workers=2)
        pool.start()
        pool.shutdown()
        pool.start()
        ran = threading.Event()
        try:
            assert pool.submit(ran.set)
            assert ran.wait(2.0)
        finally:
            pool.shutdown()
