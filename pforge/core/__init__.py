"""Core types shared by every layer."""

from .config import ConfigError, PforgeConfig, load_config, load_config_or_default
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok
from .secrets import SecretError, SecretRef, resolve_secret

__all__ = [
    # config
    "ConfigError",
    "PforgeConfig",
    "load_config",
    "load_config_or_default",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
    # secrets
    "SecretError",
    "SecretRef",
    "resolve_secret",
]
