from loguru import logger
from pathlib import Path
import sys

from ..config import settings


def setup_logging(log_level: str = "INFO", log_file: str = None):
    """Setup logging configuration."""
    # Remove default logger
    logger.remove()

    # Console logger; stdout is reserved for the MCP stdio transport
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> - <level>{message}</level>",
        level=log_level,
        colorize=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File logger
        logger.add(
            str(log_path),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]} | {name}:{function}:{line} - {message}",
            level=log_level,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )

    return logger.bind(component="graphnexus")


def configure_from_settings():
    """Re-initialize sinks from the current settings.

    Sinks live on the shared loguru core, so loggers already bound by other
    modules pick up the new sinks as well.
    """
    settings.ensure_directories()
    return setup_logging(settings.log_level, str(settings.log_path))


# Initialize logger; file sink is attached by the CLI once settings are final
logger.configure(extra={"component": "graphnexus"})
app_logger = setup_logging(settings.log_level)
