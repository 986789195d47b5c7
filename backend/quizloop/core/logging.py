import logging
import sys

# Loggers that are chatty at INFO: HTTP access lines, SQL echo and the
# per-request debug output of the oracle SDKs.
QUIET_LOGGERS: tuple[str, ...] = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "openai",
    "anthropic",
    "aiosqlite",
)


def configure_logging(level: str | int = "INFO") -> None:
    """Log to stdout in a single line format; unknown level names fall back to INFO."""
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
