"""
Tests for concurrency control utilities.

Tests DistributedLock against a mocked Redis connection (the mock_redis
fixture in the root conftest) and check_version against the Refund model.
"""

import uuid

import pytest
from django.db import transaction

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError
from payments.locks import DistributedLock, check_version
from payments.models import Refund
from payments.tests.factories import RefundFactory


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        lock = DistributedLock("cancellation:order:1", ttl=30, blocking=False)
        result = lock.acquire()

        assert result is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:cancellation:order:1"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_acquire_generates_unique_token(self, mock_redis):
        """Should generate unique token for each acquisition."""
        lock1 = DistributedLock("test:key1", blocking=False)
        lock2 = DistributedLock("test:key2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:test:key"
        assert lock.is_held is False

    def test_acquire_blocking_waits_and_acquires(self, mock_redis):
        """Blocking mode should wait and eventually acquire."""
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("test:key", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis):
        """Should raise after timeout in blocking mode."""
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_only_if_owned(self, mock_redis):
        """Should report False when the token no longer matches."""
        mock_redis.eval.return_value = 0

        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is False
        assert lock.is_held is False

    def test_release_without_acquire_returns_false(self, mock_redis):
        """Should return False if release called without acquire."""
        lock = DistributedLock("test:key", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        """Should release lock even if exception occurs inside context."""
        with pytest.raises(ValueError, match="inside"):
            with DistributedLock("test:key"):
                raise ValueError("inside")

        mock_redis.eval.assert_called_once()


class TestCheckVersion:
    """Tests for check_version with Refund rows."""

    def test_returns_instance_when_version_matches(self, db):
        """Should return the row when the version matches."""
        refund = RefundFactory()

        with transaction.atomic():
            result = check_version(Refund, refund.pk, expected_version=refund.version)

        assert result.pk == refund.pk

    def test_raises_stale_record_after_concurrent_save(self, db):
        """Should raise StaleRecordError once someone else saved the row."""
        refund = RefundFactory()
        read_version = refund.version

        other = Refund.objects.get(pk=refund.pk)
        other.start_processing()
        other.save()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(Refund, refund.pk, expected_version=read_version)

        assert exc_info.value.details["expected_version"] == read_version
        assert exc_info.value.details["current_version"] == read_version + 1

    def test_raises_not_found_when_record_missing(self, db):
        """Should raise NotFoundError with a model-specific code."""
        with pytest.raises(NotFoundError) as exc_info:
            check_version(Refund, uuid.uuid4(), expected_version=1)

        assert exc_info.value.error_code == "REFUND_NOT_FOUND"
