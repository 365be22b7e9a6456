"""领域层业务异常定义，供领域、应用与基础设施使用。

核心（core）层仅负责全局映射与异常处理，避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
        )


class NoLifecycleRunsException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.LIFECYCLE_NO_RUNS,
            message="No lifecycle runs yet",
            error_type="NoLifecycleRuns",
        )


class LifecycleRunInProgressException(BusinessException):
    def __init__(self, owner: Optional[str] = None, expires_at: Optional[str] = None):
        details = {}
        if owner:
            details["owner"] = owner
        if expires_at:
            details["expires_at"] = expires_at
        super().__init__(
            code=BusinessCode.LIFECYCLE_RUN_IN_PROGRESS,
            message="Another lifecycle run is in progress",
            error_type="LifecycleRunInProgress",
            details=details or None,
        )


class LifecycleListingException(BusinessException):
    """Listing the bucket failed; the run aborted before any transition."""

    def __init__(self, reason: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Failed to list storage objects",
            error_type="LifecycleListingFailed",
            details={"reason": reason},
        )


class LifecycleReportException(BusinessException):
    """Objects were transitioned but the run record could not be persisted."""

    def __init__(self, reason: str, *, result: Optional[dict] = None):
        details: dict = {"reason": reason}
        if result is not None:
            details["result"] = result
        super().__init__(
            code=BusinessCode.LIFECYCLE_REPORT_FAILED,
            message="Failed to persist lifecycle run record",
            error_type="LifecycleReportFailed",
            details=details,
        )
