"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field
from typing import Optional
from pydantic import model_validator


class RedisSettings(BaseModel):
    # Celery broker / result backend
    url: Optional[str] = None


class StorageSettings(BaseModel):
    type: str = "local"  # local, s3, memory
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint: Optional[str] = None  # S3-compatible endpoints (R2, MinIO)
    # S3 specific
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    # Local storage specific
    local_base_path: str = "/tmp/storage"
    # Advanced settings
    max_retry_attempts: int = 3
    timeout: int = 30
    enable_ssl: bool = True


class LifecycleSettings(BaseModel):
    compress_after_days: int = 30
    delete_after_days: int = 365
    history_limit: int = 30
    list_page_size: int = 500
    control_prefix: str = "_lifecycle/"
    long_term_prefix: str = "long-term/"
    long_term_extension: str = ".webp"
    # 1 = sequential transitions
    max_concurrency: int = 1
    lease_ttl_seconds: int = 3600
    # Daily beat schedule (UTC)
    schedule_hour: int = 3
    schedule_minute: int = 0
    # Bearer token for POST /run and GET /overview; unset leaves them open
    admin_token: Optional[str] = None

    @property
    def cron_schedule(self) -> str:
        return f"{self.schedule_minute} {self.schedule_hour} * * *"


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Media Lifecycle Service")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=True)
    ENVIRONMENT: str = Field(default="development")

    # 分组配置：Redis/Storage/Lifecycle 采用嵌套模型
    redis: RedisSettings = Field(default_factory=RedisSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)

    # Flat aliases kept for deployments that configure the worker with
    # COMPRESS_AFTER_DAYS / DELETE_AFTER_DAYS
    COMPRESS_AFTER_DAYS: Optional[int] = None
    DELETE_AFTER_DAYS: Optional[int] = None

    # 日志配置：LOG_LEVEL 为空时按 DEBUG 取 DEBUG/INFO；LOG_JSON 为空时非 DEBUG 输出 JSON
    LOG_LEVEL: Optional[str] = None
    LOG_JSON: Optional[bool] = None
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True)
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _validate_lifecycle(self):
        if self.COMPRESS_AFTER_DAYS is not None:
            self.lifecycle.compress_after_days = self.COMPRESS_AFTER_DAYS
        if self.DELETE_AFTER_DAYS is not None:
            self.lifecycle.delete_after_days = self.DELETE_AFTER_DAYS

        lc = self.lifecycle
        if lc.compress_after_days < 0:
            raise ValueError("lifecycle.compress_after_days 不能为负数")
        if lc.delete_after_days <= lc.compress_after_days:
            raise ValueError(
                "lifecycle.delete_after_days 必须大于 lifecycle.compress_after_days"
            )
        if lc.history_limit < 1 or lc.list_page_size < 1 or lc.max_concurrency < 1:
            raise ValueError("lifecycle.history_limit/list_page_size/max_concurrency 必须为正数")
        return self


settings = Settings()
