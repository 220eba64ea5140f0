"""Logging configuration for limn_access API.

Authorization denials are routine, so client errors are logged without
stack traces; resolver and server failures keep their full traceback.
"""

import logging
import traceback
from typing import Optional

from starlette.exceptions import HTTPException
from typing_extensions import override

from limn_access.exceptions import LimnAccessAPIException

PACKAGE_LOGGER = "limn_access"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _is_client_error(exc_type, exc_value) -> bool:
    """Check if exception is a known client error (4xx)."""
    if isinstance(exc_value, (HTTPException, LimnAccessAPIException)):
        return getattr(exc_value, "status_code", 500) < 500
    return False


class KnownErrorFormatter(logging.Formatter):
    """Formatter that suppresses stack traces for known client errors."""

    @override
    def formatException(self, ei):  # noqa: N802
        if not ei:
            return ""

        exc_type, exc_value, exc_tb = ei
        if _is_client_error(exc_type, exc_value):
            return ""

        try:
            result = super().formatException(ei)
            if result:
                return result
        except (AttributeError, TypeError):
            pass

        formatted = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        return formatted or f"{exc_type.__name__}: {exc_value}\n"


class LoggingConfigurator:
    """Configures the package logger and its formatter."""

    @staticmethod
    def configure(
        level: str = "info", handler: Optional[logging.Handler] = None
    ) -> logging.Logger:
        """Attach a handler with :class:`KnownErrorFormatter` to the package logger.

        Calling it again replaces the previously installed handler rather
        than stacking a second one.

        Args:
            level: Log level name
            handler: Handler to install, a stderr stream handler by default

        Returns:
            The configured package logger
        """
        logger = logging.getLogger(PACKAGE_LOGGER)
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

        for existing in list(logger.handlers):
            if getattr(existing, "_limn_access_handler", False):
                logger.removeHandler(existing)

        log_handler = handler or logging.StreamHandler()
        log_handler.setFormatter(KnownErrorFormatter(LOG_FORMAT))
        log_handler._limn_access_handler = True  # type: ignore[attr-defined]
        logger.addHandler(log_handler)
        return logger


__all__ = ["KnownErrorFormatter", "LoggingConfigurator", "PACKAGE_LOGGER"]
