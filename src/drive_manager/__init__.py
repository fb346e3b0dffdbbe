from .config import Settings, get_settings
from .exceptions import (
    AuthenticationError,
    MissingParameterError,
    PermanentError,
)
from .gdrive import GoogleDriveManager
from .gdrive_auth import AuthContext
from .logging_setup import setup_logging
from .retry import (
    DEFAULT_ERRORS,
    UPDATE_ERRORS,
    ErrorPolicy,
    ErrorRule,
    RetryOperation,
    RetryPolicy,
    execute_with_retry,
)

__all__ = [
    "AuthContext",
    "AuthenticationError",
    "DEFAULT_ERRORS",
    "ErrorPolicy",
    "ErrorRule",
    "GoogleDriveManager",
    "MissingParameterError",
    "PermanentError",
    "RetryOperation",
    "RetryPolicy",
    "Settings",
    "UPDATE_ERRORS",
    "execute_with_retry",
    "get_settings",
    "setup_logging",
]
