"""Tests for the SingleFlight call collapser."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import pytest

from ad_access_core.utils.single_flight import SingleFlight


class TestSingleFlight:
    """Test per-key call collapsing."""

    def test_single_caller_runs_function(self):
        flights = SingleFlight()

        result, shared = flights.do("key", lambda: 42)

        assert result == 42
        assert shared is False
        assert flights.in_flight("key") is False

    def test_concurrent_callers_share_one_execution(self):
        flights = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def work():
            calls.append(1)
            started.set()
            release.wait(5)
            return "done"

        with ThreadPoolExecutor(max_workers=4) as pool:
            leader = pool.submit(flights.do, "key", work)
            started.wait(5)
            followers = [pool.submit(flights.do, "key", work) for _ in range(3)]
            # Give followers time to join the in-flight future
            time.sleep(0.2)
            release.set()
            results = [leader.result(5)] + [f.result(5) for f in followers]

        assert len(calls) == 1
        assert all(r[0] == "done" for r in results)
        assert results[0][1] is False
        assert all(shared for _, shared in results[1:])

    def test_exception_propagates_to_followers(self):
        flights = SingleFlight()
        started = threading.Event()
        release = threading.Event()

        def failing():
            started.set()
            release.wait(5)
            raise RuntimeError("upstream down")

        with ThreadPoolExecutor(max_workers=2) as pool:
            leader = pool.submit(flights.do, "key", failing)
            started.wait(5)
            follower = pool.submit(flights.do, "key", failing)
            time.sleep(0.1)
            release.set()

            with pytest.raises(RuntimeError):
                leader.result(5)
            with pytest.raises(RuntimeError):
                follower.result(5)

        assert flights.in_flight("key") is False

    def test_different_keys_do_not_collapse(self):
        flights = SingleFlight()

        assert flights.do("a", lambda: 1) == (1, False)
        assert flights.do("b", lambda: 2) == (2, False)

    def test_follower_timeout(self):
        flights = SingleFlight()
        started = threading.Event()
        release = threading.Event()

        def slow():
            started.set()
            release.wait(5)
            return "late"

        with ThreadPoolExecutor(max_workers=1) as pool:
            leader = pool.submit(flights.do, "key", slow)
            started.wait(5)
            with pytest.raises(FutureTimeoutError):
                flights.do("key", slow, timeout=0.05)
            release.set()
            assert leader.result(5) == ("late", False)
