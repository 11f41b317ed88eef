"""Tests for rate limit buckets."""

import threading

from restgate.ratelimit.bucket import GLOBAL_SCOPE, Bucket, BucketSnapshot


class TestBucketAdmission:
    """Tests for try_admit and has_capacity."""

    def test_first_use_resets_to_capacity(self):
        """A fresh bucket starts its first window on first use."""
        bucket = Bucket("k", capacity=3, window=10.0)

        assert bucket.try_admit(100.0) is True
        assert bucket.remaining == 2
        assert bucket.reset_at == 110.0

    def test_denies_when_exhausted(self):
        bucket = Bucket("k", capacity=2, window=10.0)

        assert bucket.try_admit(1.0) is True
        assert bucket.try_admit(1.0) is True
        assert bucket.try_admit(1.0) is False
        assert bucket.remaining == 0

    def test_resets_after_window(self):
        bucket = Bucket("k", capacity=1, window=1.0)

        assert bucket.try_admit(5.0) is True
        assert bucket.try_admit(5.5) is False
        assert bucket.try_admit(6.0) is True

    def test_remaining_never_blocks_before_reset(self):
        """Admission depends on remaining only, whatever the reset time."""
        bucket = Bucket("k", capacity=5, window=1.0)
        bucket.apply_server_feedback(remaining=2, reset_at=1000.0)

        assert bucket.try_admit(1.0) is True
        assert bucket.try_admit(1.0) is True
        assert bucket.try_admit(1.0) is False

    def test_has_capacity_does_not_consume(self):
        bucket = Bucket("k", capacity=1, window=10.0)

        assert bucket.has_capacity(1.0) is True
        assert bucket.has_capacity(1.0) is True
        assert bucket.remaining == 1

    def test_reset_is_idempotent(self):
        """Repeated checks after the reset time always see a full bucket."""
        bucket = Bucket("k", capacity=3, window=1.0)
        bucket.apply_server_feedback(remaining=0, reset_at=10.0)

        for now in (10.0, 10.5, 11.0, 11.2, 13.7):
            assert bucket.has_capacity(now) is True
            assert bucket.remaining == 3

    def test_concurrent_admission_never_over_admits(self):
        """Racing threads never take more units than the bucket holds."""
        bucket = Bucket("k", capacity=5, window=60.0)
        barrier = threading.Barrier(25)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            admitted = bucket.try_admit(100.0)
            with results_lock:
                results.append(admitted)

        threads = [threading.Thread(target=worker) for _ in range(25)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 5
        assert bucket.remaining == 0


class TestServerFeedback:
    """Tests for apply_server_feedback."""

    def test_feedback_round_trip(self):
        """Server counters are honoured until their reset, then capacity applies."""
        bucket = Bucket("k", capacity=1, window=1.0)
        bucket.apply_server_feedback(remaining=5, reset_at=50.0, capacity=10)

        assert bucket.remaining == 5
        for _ in range(5):
            assert bucket.try_admit(40.0) is True
        assert bucket.try_admit(40.0) is False

        assert bucket.try_admit(50.0) is True
        assert bucket.remaining == 9
        assert bucket.capacity == 10

    def test_capacity_kept_when_not_reported(self):
        bucket = Bucket("k", capacity=7, window=1.0)
        bucket.apply_server_feedback(remaining=3, reset_at=5.0)

        assert bucket.capacity == 7
        assert bucket.remaining == 3

    def test_negative_remaining_is_clamped(self):
        bucket = Bucket("k", capacity=2, window=1.0)
        bucket.apply_server_feedback(remaining=-4, reset_at=5.0)

        assert bucket.remaining == 0
        assert bucket.try_admit(1.0) is False

    def test_next_available_at_is_reset_time(self):
        bucket = Bucket("k", capacity=2, window=1.0)
        bucket.apply_server_feedback(remaining=0, reset_at=42.5)

        assert bucket.next_available_at() == 42.5


class TestBucketMisc:
    """Tests for snapshots and identity helpers."""

    def test_snapshot(self):
        bucket = Bucket("k", capacity=4, window=2.0)
        bucket.try_admit(1.0)

        assert bucket.snapshot() == BucketSnapshot(
            key="k", capacity=4, remaining=3, reset_at=3.0, window=2.0
        )

    def test_is_global(self):
        assert Bucket(GLOBAL_SCOPE).is_global is True
        assert Bucket("GET /a").is_global is False
