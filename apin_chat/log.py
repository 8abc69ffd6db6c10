import logging

logger = logging.getLogger("apin_chat")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_log_level(value: str | int) -> int | None:
    """Numeric level for a name (``"info"``), a number, or a digit string."""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text.upper())


def resolve_log_level(level: str | int | None, fallback: str | int = logging.WARNING) -> int:
    """Resolve ``level``, using ``fallback`` when it is missing or unrecognized.

    The fallback is usually ``Settings.log_level``; if that is unusable too,
    WARNING applies.
    """
    default = parse_log_level(fallback)
    if default is None:
        default = logging.WARNING
    if level is None:
        return default
    resolved = parse_log_level(level)
    if resolved is None:
        logger.warning(
            "[ApinChat] Unsupported log level '%s'; falling back to %s.",
            level,
            logging.getLevelName(default),
        )
        return default
    return resolved


def configure_logging(level: str | int | None = None, fallback: str | int = "WARNING") -> int:
    """Install a basic stderr handler for the ``apin_chat`` loggers."""
    resolved = resolve_log_level(level, fallback)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logger.setLevel(resolved)
    return resolved
