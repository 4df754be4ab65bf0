import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger


def setup_logging(level: int = logging.INFO, json_output: bool = True):
    """Structured logging: JSON lines from the stdlib root logger, structlog routed through it"""

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
        renderer = structlog.processors.JSONRenderer()
    else:
        formatter = logging.Formatter("%(levelname)-8s %(name)s: %(message)s")
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = logging.getLogger()
    # Idempotent so repeated app construction (tests, reloads) does not stack handlers
    if not any(getattr(h, "_healthcomm", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler._healthcomm = True
        logger.addHandler(handler)
    logger.setLevel(level)

    return structlog.get_logger()
