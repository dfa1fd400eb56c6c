import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure root logging once and return the package logger.

    Logs go to stderr so they don't interfere with MCP frames on stdout.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    # httpx logs every request at INFO, too chatty next to our own request logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("strapi_mcp")
