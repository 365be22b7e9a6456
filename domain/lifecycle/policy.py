"""Retention rules: classification by key namespace and age, and archive key mapping.

Everything here is pure so it can be evaluated for any ``now``.
"""
from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from .entity import RetentionClass, StoredObject, ensure_utc, to_iso_z

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".mkv")

ACTION_COMPRESSED = "compressed"
ACTION_ARCHIVED = "archived"

_ONE_DAY = timedelta(days=1)


def age_in_days(uploaded_at: datetime, now: datetime) -> float:
    """Fractional days elapsed since upload; thresholds compare against this."""
    return (ensure_utc(now) - ensure_utc(uploaded_at)) / _ONE_DAY


def whole_days(uploaded_at: datetime, now: datetime) -> int:
    """Whole days elapsed (floor), as shown in run detail lines."""
    return (ensure_utc(now) - ensure_utc(uploaded_at)) // _ONE_DAY


def media_kind(key: str) -> Optional[str]:
    lowered = key.lower()
    if lowered.endswith(IMAGE_EXTENSIONS):
        return "image"
    if lowered.endswith(VIDEO_EXTENSIONS):
        return "video"
    return None


def top_level_namespace(key: str) -> str:
    """``photos/evt1/a.jpg`` -> ``photos/``; keys at the bucket root map to ``/``."""
    head, sep, _ = key.partition("/")
    return f"{head}/" if sep else "/"


@dataclass(frozen=True)
class ArchivePlan:
    """Where an eligible object goes and how it is tagged."""

    source_key: str
    target_key: str
    content_type: Optional[str]
    action: str
    kind: Optional[str]

    def custom_metadata(self, when: datetime, original_size: int) -> dict[str, str]:
        return {
            "originalKey": self.source_key,
            "lifecycleAction": self.action,
            "lifecycleDate": to_iso_z(when),
            "originalSize": str(original_size),
        }


@dataclass(frozen=True)
class RetentionPolicy:
    compress_after_days: int = 30
    delete_after_days: int = 365
    control_prefix: str = "_lifecycle/"
    long_term_prefix: str = "long-term/"
    long_term_extension: str = ".webp"

    def __post_init__(self) -> None:
        if self.compress_after_days < 0:
            raise DomainValidationException(
                "compress_after_days must not be negative",
                details={"compress_after_days": self.compress_after_days},
            )
        if self.delete_after_days <= self.compress_after_days:
            raise DomainValidationException(
                "delete_after_days must be greater than compress_after_days",
                details={
                    "compress_after_days": self.compress_after_days,
                    "delete_after_days": self.delete_after_days,
                },
            )
        if not self.control_prefix or not self.long_term_prefix:
            raise DomainValidationException("namespace prefixes must not be empty")

    @classmethod
    def from_settings(cls, lifecycle: Any) -> "RetentionPolicy":
        return cls(
            compress_after_days=lifecycle.compress_after_days,
            delete_after_days=lifecycle.delete_after_days,
            control_prefix=lifecycle.control_prefix,
            long_term_prefix=lifecycle.long_term_prefix,
            long_term_extension=lifecycle.long_term_extension,
        )

    def control_key(self, name: str) -> str:
        return f"{self.control_prefix}{name}"

    def is_control(self, key: str) -> bool:
        return key.startswith(self.control_prefix)

    def is_archived(self, key: str) -> bool:
        return (
            key.startswith(self.long_term_prefix)
            or key.lower().endswith(self.long_term_extension.lower())
        )

    def classify(self, obj: StoredObject, now: datetime) -> RetentionClass:
        # Namespace checks come first so archived objects are never re-transitioned
        if self.is_control(obj.key):
            return RetentionClass.CONTROL
        if self.is_archived(obj.key):
            return RetentionClass.ARCHIVED

        age = age_in_days(obj.uploaded_at, now)
        if age > self.delete_after_days:
            return RetentionClass.ELIGIBLE_DELETE
        if age > self.compress_after_days:
            return RetentionClass.ELIGIBLE_ARCHIVE
        return RetentionClass.ACTIVE

    def archive_plan(self, key: str, content_type: Optional[str] = None) -> ArchivePlan:
        kind = media_kind(key)
        if kind == "image":
            stem, _, _ = key.rpartition(".")
            return ArchivePlan(
                source_key=key,
                target_key=f"{self.long_term_prefix}{stem}{self.long_term_extension}",
                content_type=mimetypes.types_map.get(self.long_term_extension, "image/webp"),
                action=ACTION_COMPRESSED,
                kind=kind,
            )
        if kind == "video":
            return ArchivePlan(
                source_key=key,
                target_key=f"{self.long_term_prefix}{key}",
                content_type=content_type or mimetypes.guess_type(key)[0] or "video/mp4",
                action=ACTION_ARCHIVED,
                kind=kind,
            )
        return ArchivePlan(
            source_key=key,
            target_key=f"{self.long_term_prefix}{key}",
            content_type=content_type,
            action=ACTION_ARCHIVED,
            kind=None,
        )
