"""Success/failure envelope returned by every rental service operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from video_rental.config import GENERIC_FAILURE_MESSAGE
from video_rental.services.errors import ServiceError

INFRASTRUCTURE_FAILURE_CODE = "infrastructure_error"


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[ServiceError] = None
    infrastructure_failure: bool = False

    @classmethod
    def ok(cls, message: Optional[str] = None, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failed(cls, error: ServiceError) -> "OperationResult":
        return cls(success=False, message=str(error), error=error)

    @classmethod
    def infrastructure_error(
        cls, message: str = GENERIC_FAILURE_MESSAGE
    ) -> "OperationResult":
        """Failure caused by storage, safe to retry; details stay in the logs."""
        return cls(success=False, message=message, infrastructure_failure=True)

    @property
    def error_code(self) -> Optional[str]:
        if self.infrastructure_failure:
            return INFRASTRUCTURE_FAILURE_CODE
        return self.error.code if self.error is not None else None

    @property
    def status_code(self) -> int:
        """Transport status a controller should answer with."""
        if self.success:
            return 200
        if self.infrastructure_failure:
            return 500
        return self.error.status_code if self.error is not None else 400

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.message is not None:
            payload["message"] = self.message
        if not self.success:
            payload["error"] = self.error_code
        payload.update(self.data)
        return payload
