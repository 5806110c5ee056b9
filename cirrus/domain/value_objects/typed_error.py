"""
Typed Cloud Error Value Object

Architectural Intent:
- Immutable record of a failure attached to a client or an instance
- Errors are data, not control flow: a client carrying errors stays listable
  so operators can see what is wrong with a profile
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

CONFIG = "config"
CERTIFICATE = "certificate"
SUBSCRIPTION = "subscription"
PARSE = "parse"
PROVIDER = "provider"
PASSWORD = "password"
LIMIT = "limit"


@dataclass(frozen=True)
class TypedCloudErrorInfo:
    """Value Object describing a profile, client or instance failure."""
    type: str
    message: str
    details: str = ""

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("Error type cannot be empty")

    def __str__(self) -> str:
        return f"[{self.type}] {self.message}"

    @staticmethod
    def from_exception(exc: BaseException, type: Optional[str] = None) -> "TypedCloudErrorInfo":
        error_type = type or getattr(exc, "error_type", CONFIG)
        return TypedCloudErrorInfo(
            type=error_type,
            message=str(exc) or exc.__class__.__name__,
            details=exc.__class__.__name__,
        )

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "message": self.message, "details": self.details}
