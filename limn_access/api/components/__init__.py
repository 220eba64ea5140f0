"""Application components: error handling and logging configuration."""

from .error_handler import APIErrorHandler
from .logging_config import KnownErrorFormatter, LoggingConfigurator

__all__ = ["APIErrorHandler", "KnownErrorFormatter", "LoggingConfigurator"]
