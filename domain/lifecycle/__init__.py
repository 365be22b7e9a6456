"""Storage lifecycle domain exports."""
from .entity import (
    AgeDistribution,
    LifecycleOverview,
    LifecycleRunResult,
    PrefixUsage,
    RetentionClass,
    StorageStats,
    StoredObject,
)
from .policy import ArchivePlan, RetentionPolicy, age_in_days, whole_days

__all__ = [
    "AgeDistribution",
    "ArchivePlan",
    "LifecycleOverview",
    "LifecycleRunResult",
    "PrefixUsage",
    "RetentionClass",
    "RetentionPolicy",
    "StorageStats",
    "StoredObject",
    "age_in_days",
    "whole_days",
]
