"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输

Field names follow the JSON documents stored in ``_lifecycle/`` so that the
HTTP surface and the bucket records read the same.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from domain.lifecycle import (
    AgeDistribution,
    LifecycleOverview,
    LifecycleRunResult,
    PrefixUsage,
    StorageStats,
)


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class LifecycleRunResultDTO(DTOBase):
    """一次生命周期运行的结果"""
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    scanned: int = Field(..., ge=0, description="Objects considered (control namespace excluded)")
    compressed: int = Field(..., ge=0, description="Objects moved into the long-term namespace")
    deleted: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    skipped: int = Field(0, ge=0, description="Already archived objects")
    untouched: int = Field(0, ge=0, description="Objects below the archive threshold")
    saved_bytes: int = Field(0, ge=0)
    duration_ms: int = Field(0, ge=0)
    details: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, result: LifecycleRunResult) -> "LifecycleRunResultDTO":
        return cls(
            timestamp=result.timestamp,
            scanned=result.scanned,
            compressed=result.compressed,
            deleted=result.deleted,
            errors=result.errors,
            skipped=result.skipped,
            untouched=result.untouched,
            saved_bytes=result.saved_bytes,
            duration_ms=result.duration_ms,
            details=list(result.details),
        )


class PrefixUsageDTO(DTOBase):
    count: int
    size: int

    @classmethod
    def from_domain(cls, usage: PrefixUsage) -> "PrefixUsageDTO":
        return cls(count=usage.count, size=usage.size)


class AgeDistributionDTO(DTOBase):
    recent: int = Field(0, description="< 7 days")
    month: int = Field(0, description="7 to 30 days")
    quarter: int = Field(0, description="30 to 90 days")
    year: int = Field(0, description="90 to 365 days")
    old: int = Field(0, description=">= 365 days")

    @classmethod
    def from_domain(cls, dist: AgeDistribution) -> "AgeDistributionDTO":
        return cls(
            recent=dist.recent,
            month=dist.month,
            quarter=dist.quarter,
            year=dist.year,
            old=dist.old,
        )


class StorageStatsDTO(DTOBase):
    """存储使用统计（实时列举得出）"""
    total_size: int
    total_count: int
    active_size: int
    active_count: int
    long_term_size: int
    long_term_count: int
    by_prefix: dict[str, PrefixUsageDTO] = Field(default_factory=dict)
    age_distribution: AgeDistributionDTO = Field(default_factory=AgeDistributionDTO)
    generated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, stats: StorageStats, generated_at: Optional[datetime] = None) -> "StorageStatsDTO":
        return cls(
            total_size=stats.total_size,
            total_count=stats.total_count,
            active_size=stats.active_size,
            active_count=stats.active_count,
            long_term_size=stats.long_term_size,
            long_term_count=stats.long_term_count,
            by_prefix={k: PrefixUsageDTO.from_domain(v) for k, v in stats.by_prefix.items()},
            age_distribution=AgeDistributionDTO.from_domain(stats.age_distribution),
            generated_at=generated_at,
        )


class LifecycleConfigDTO(DTOBase):
    compress_after_days: int
    delete_after_days: int
    cron_schedule: str = Field(..., description="Beat crontab, UTC")


class LifecycleOverviewDTO(DTOBase):
    """管理概览：最近一次运行、近期历史、实时统计与当前配置"""
    last_run: Optional[LifecycleRunResultDTO] = None
    history: list[LifecycleRunResultDTO] = Field(default_factory=list)
    stats: StorageStatsDTO
    config: LifecycleConfigDTO

    @classmethod
    def from_domain(
        cls,
        overview: LifecycleOverview,
        config: LifecycleConfigDTO,
        generated_at: Optional[datetime] = None,
    ) -> "LifecycleOverviewDTO":
        last_run = overview.last_run
        return cls(
            last_run=LifecycleRunResultDTO.from_domain(last_run) if last_run is not None else None,
            history=[LifecycleRunResultDTO.from_domain(r) for r in overview.history],
            stats=StorageStatsDTO.from_domain(overview.stats, generated_at=generated_at),
            config=config,
        )
