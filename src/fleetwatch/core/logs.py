"""Logging helpers shared by engine modules.

Modules obtain a standard library logger through ``get_logger(__name__)`` and
attach structured context with ``extra=``. Handler configuration is left to
the host process.
"""

import logging

_ROOT_LOGGER_NAME = "fleetwatch"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``fleetwatch`` namespace.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        A standard library logger.
    """
    if name != _ROOT_LOGGER_NAME and not name.startswith(f"{_ROOT_LOGGER_NAME}."):
        name = f"{_ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_exception(
    message: str,
    logger: logging.Logger | None = None,
    **attributes: str | int | float | bool | None,
) -> None:
    """Log ``message`` at ERROR with the active exception's traceback.

    Must be called from inside an ``except`` block.

    Args:
        message: The log message
        logger: Logger to use (default: the package root logger)
        **attributes: Additional structured fields passed as ``extra``
    """
    (logger or logging.getLogger(_ROOT_LOGGER_NAME)).error(
        message, exc_info=True, extra=attributes
    )
