"""
Model mixins providing reusable functionality for Django models.

This module contains abstract mixin classes that can be combined with
BaseModel to add specific functionality. These are generic infrastructure
classes with no domain-specific logic.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    VersionedMixin: Version counter for optimistic locking
    AppendOnlyMixin: Refuse updates and deletes on ledger rows

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class Refund(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        amount = models.PositiveBigIntegerField()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F

from core.exceptions import PersistenceError


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Benefits:
        - Non-guessable IDs (order and refund IDs appear in URLs)
        - Safe for distributed systems (no ID collisions)
        - Can be generated client-side before database insert

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Version counter incremented on every save.

    The increment is done in SQL with F() so two processes saving the
    same row never produce the same version. Pair it with
    payments.locks.check_version to detect concurrent modification.

    Fields:
        version: Monotonic counter, starts at 1

    Note:
        Queryset .update() calls bypass save() and must bump the
        version themselves.
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = (
            not self._state.adding
            and self.pk
            and not kwargs.get("force_insert", False)
        )
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])


class AppendOnlyMixin(models.Model):
    """
    Rows are written once and never changed.

    Ledger tables use this so history is only ever extended. Corrections
    are new rows that reference the row they reverse.

    Note:
        Queryset .update() and .delete() bypass these guards. Ledger
        services never call them on append-only models.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Insert only. Saving an existing row raises PersistenceError."""
        if not self._state.adding:
            raise PersistenceError(
                f"{self.__class__.__name__} rows are append-only",
                error_code="IMMUTABLE_RECORD",
                details={"id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PersistenceError(
            f"{self.__class__.__name__} rows are append-only",
            error_code="IMMUTABLE_RECORD",
            details={"id": str(self.pk)},
        )
