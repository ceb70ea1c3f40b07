import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

from tinyioc import Container, ResolutionCycleError


WORKERS = 8


class Connection: ...


class TestConcurrentResolution(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def _resolve_concurrently(self, token):
        barrier = threading.Barrier(WORKERS)

        def worker():
            barrier.wait()
            return self.cont.resolve(token)

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            futures = [pool.submit(worker) for _ in range(WORKERS)]
            return [f.result() for f in futures]

    def test_concurrent_first_resolution_of_singleton_calls_factory_once(self):
        calls = []

        def slow_factory(_):
            calls.append(threading.get_ident())
            time.sleep(0.05)
            return Connection()

        self.cont.singleton(Connection, slow_factory)

        results = self._resolve_concurrently(Connection)

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_concurrent_resolution_through_alias_shares_singleton(self):
        self.cont.singleton(Connection)
        self.cont.alias("conn", Connection)

        results = self._resolve_concurrently("conn")

        assert all(r is results[0] for r in results)

    def test_concurrent_temporal_resolution_gives_distinct_instances(self):
        results = self._resolve_concurrently(Connection)

        assert len({id(r) for r in results}) == WORKERS

    def test_singleton_cycle_entered_from_two_threads_raises_instead_of_deadlocking(self):
        class Left: ...

        class Right: ...

        barrier = threading.Barrier(2)
        first_entries = []

        def meet():
            # Only the two initial factory runs wait for each other
            if len(first_entries) < 2:
                first_entries.append(threading.get_ident())
                barrier.wait(timeout=5)

        def make_left(c):
            meet()
            c.resolve(Right)
            return Left()

        def make_right(c):
            meet()
            c.resolve(Left)
            return Right()

        self.cont.singleton(Left, make_left)
        self.cont.singleton(Right, make_right)

        def attempt(token):
            try:
                return self.cont.resolve(token)
            except ResolutionCycleError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [pool.submit(attempt, Left), pool.submit(attempt, Right)]
            outcomes = [f.result(timeout=10) for f in futures]

        assert all(isinstance(o, ResolutionCycleError) for o in outcomes)
        assert not self.cont._bindings[Left].is_cached  # noqa: SLF001
        assert not self.cont._bindings[Right].is_cached  # noqa: SLF001

    def test_cycle_tracking_is_per_thread(self):
        started = threading.Event()
        release = threading.Event()

        def blocking_factory(_):
            started.set()
            release.wait(timeout=5)
            return Connection()

        self.cont.bind(Connection, blocking_factory)

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(self.cont.resolve, Connection)
            assert started.wait(timeout=5)
            # Another thread resolving the same type while the first is still inside it
            second = pool.submit(self.cont.resolve, Connection)
            release.set()

            assert isinstance(first.result(), Connection)
            assert isinstance(second.result(), Connection)
