"""共有レイヤの公開インターフェース。"""

from .config import AppSettings, get_settings, validate_runtime
from .exceptions import (
    BaseAppError,
    ConfigurationError,
    DomainError,
    ExternalServiceError,
    Result,
)
from .logging import configure_logging, get_logger
from .types import DTO, ReleaseID, ValueObject

__all__ = [
    "AppSettings",
    "get_settings",
    "validate_runtime",
    "configure_logging",
    "get_logger",
    "BaseAppError",
    "ConfigurationError",
    "DomainError",
    "ExternalServiceError",
    "Result",
    "DTO",
    "ValueObject",
    "ReleaseID",
]
