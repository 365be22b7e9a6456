"""Domain entities for the storage lifecycle: bucket objects, run records, usage stats."""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_z(dt: datetime) -> str:
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso_datetime(value: str) -> datetime:
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


class RetentionClass(str, Enum):
    """Where an object sits in the retention state machine."""

    CONTROL = "control"
    ARCHIVED = "archived"
    ELIGIBLE_ARCHIVE = "eligible_archive"
    ELIGIBLE_DELETE = "eligible_delete"
    ACTIVE = "active"


@dataclass(frozen=True)
class StoredObject:
    """One object in the bucket as reported by a listing."""

    key: str
    size: int
    uploaded_at: datetime
    content_type: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "uploaded_at", ensure_utc(self.uploaded_at))


@dataclass(frozen=True)
class LifecycleRunResult:
    """Outcome of one lifecycle run. Written once to ``last-run.json`` and history.

    ``scanned == skipped + untouched + compressed + deleted + errors``
    """

    timestamp: datetime
    scanned: int = 0
    compressed: int = 0
    deleted: int = 0
    errors: int = 0
    skipped: int = 0
    untouched: int = 0
    saved_bytes: int = 0
    duration_ms: int = 0
    details: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "details", tuple(self.details))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = to_iso_z(self.timestamp)
        data["details"] = list(self.details)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LifecycleRunResult":
        return cls(
            timestamp=parse_iso_datetime(str(data["timestamp"])),
            scanned=int(data.get("scanned", 0)),
            compressed=int(data.get("compressed", 0)),
            deleted=int(data.get("deleted", 0)),
            errors=int(data.get("errors", 0)),
            skipped=int(data.get("skipped", 0)),
            untouched=int(data.get("untouched", 0)),
            saved_bytes=int(data.get("saved_bytes", 0)),
            duration_ms=int(data.get("duration_ms", 0)),
            details=tuple(str(line) for line in data.get("details", [])),
        )


@dataclass
class PrefixUsage:
    count: int = 0
    size: int = 0


@dataclass
class AgeDistribution:
    recent: int = 0   # < 7d
    month: int = 0    # 7-30d
    quarter: int = 0  # 30-90d
    year: int = 0     # 90-365d
    old: int = 0      # >= 365d

    def add(self, age_days: float) -> None:
        if age_days < 7:
            self.recent += 1
        elif age_days < 30:
            self.month += 1
        elif age_days < 90:
            self.quarter += 1
        elif age_days < 365:
            self.year += 1
        else:
            self.old += 1


@dataclass
class StorageStats:
    """Live usage snapshot of the bucket (control namespace excluded)."""

    total_size: int = 0
    total_count: int = 0
    active_size: int = 0
    active_count: int = 0
    long_term_size: int = 0
    long_term_count: int = 0
    by_prefix: dict[str, PrefixUsage] = field(default_factory=dict)
    age_distribution: AgeDistribution = field(default_factory=AgeDistribution)

    def add(self, namespace: str, size: int, age_days: float, *, long_term: bool) -> None:
        self.total_size += size
        self.total_count += 1

        usage = self.by_prefix.setdefault(namespace, PrefixUsage())
        usage.count += 1
        usage.size += size

        if long_term:
            self.long_term_size += size
            self.long_term_count += 1
        else:
            self.active_size += size
            self.active_count += 1

        self.age_distribution.add(age_days)


@dataclass(frozen=True)
class LifecycleOverview:
    """Admin view: last run, the most recent runs and current usage."""

    last_run: Optional[LifecycleRunResult]
    history: list[LifecycleRunResult]
    stats: StorageStats
