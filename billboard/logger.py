"""
Logging setup shared by the web app and the operator scripts.
"""

import logging
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    Logs go to stdout; chatty third-party loggers are raised to WARNING so
    request handling stays readable.
    """
    logging.basicConfig(
        level=(level or "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("stellar_sdk").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured")
