"""
Locks used around cancellation decisions and refund finalization.

DistributedLock is a Redis SET NX lock with a TTL. Cancellation requests
and approvals for one order take it at the service boundary, so two
processes never decide the same order at once.

check_version re-reads a versioned row under select_for_update and fails
if anyone saved it after the caller read it. RefundService uses it to
finalize a refund after the gateway call, since no lock is held while the
gateway is being called.

Usage:
    with DistributedLock(f"cancellation:order:{order_id}", ttl=30):
        ...

    with transaction.atomic():
        refund = check_version(Refund, refund_id, expected_version=claimed)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)

# Pause between SET NX attempts while waiting for a blocking lock
POLL_INTERVAL_SECONDS = 0.05


class DistributedLock:
    """
    Redis lock owned by a random token.

    The key is prefixed with "lock:". Only the holder of the token can
    release it, and the TTL frees it if the holder dies.

    Args:
        key: Lock name, e.g. "cancellation:order:<uuid>"
        ttl: Seconds before Redis expires the lock on its own
        blocking: Wait up to ``timeout`` seconds instead of failing at once
        timeout: Maximum wait in blocking mode
    """

    # Delete the key only if it still carries our token
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Take the lock or raise LockAcquisitionError.

        Returns True so callers can use it in a boolean context.
        """
        token = str(uuid_module.uuid4())

        if not self.blocking:
            if not self._set(token):
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            self._token = token
            return True

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if self._set(token):
                self._token = token
                return True
            time.sleep(POLL_INTERVAL_SECONDS)

        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def _set(self, token: str) -> bool:
        return bool(self.redis.set(self.key, token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Give the lock back.

        Returns False when we never held it or the TTL already handed it
        to someone else. Calling it twice is harmless.
        """
        if self._token is None:
            return False

        token, self._token = self._token, None
        return bool(self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def check_version(model_class: type[T], pk: Any, expected_version: int) -> T:
    """
    Return the row locked for update if its version is still the expected one.

    Raises:
        NotFoundError: ``<MODEL>_NOT_FOUND`` when the row is gone
        StaleRecordError: when another writer bumped the version
    """
    model_name = model_class.__name__

    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        current_version = (
            model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        )

    if current_version is None:
        raise NotFoundError(
            f"{model_name} {pk} not found",
            error_code=f"{model_name.upper()}_NOT_FOUND",
            details={"pk": str(pk)},
        )

    raise StaleRecordError(
        f"{model_name} {pk} was modified "
        f"(expected version {expected_version}, current {current_version})",
        details={
            "pk": str(pk),
            "expected_version": expected_version,
            "current_version": current_version,
        },
    )


__all__ = [
    "DistributedLock",
    "check_version",
]
