"""Structured results shared by all operations."""

from enum import Enum
from typing import List, Optional


class Status(str, Enum):
    """Overall outcome of an operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class OperationResult:
    """Result of a top-level operation (schedule install, mount, notify...)."""

    def __init__(
        self,
        status: Status,
        exit_code: int = 0,
        details: Optional[List[str]] = None,
    ):
        self.status = status
        self.exit_code = exit_code
        self.details = details or []

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def success(cls, *details: str) -> "OperationResult":
        return cls(Status.SUCCESS, 0, list(details))

    @classmethod
    def failure(cls, *details: str, exit_code: int = 1) -> "OperationResult":
        # A failure never carries exit code 0
        return cls(Status.FAILED, exit_code or 1, list(details))

    def __repr__(self) -> str:
        return (
            f"OperationResult(status={self.status.value}, "
            f"exit_code={self.exit_code}, details={self.details!r})"
        )
