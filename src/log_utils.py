"""
Logging utilities for the VM Fleet Reconciler.
"""

import logging
import sys


def log_file_for(action: str) -> str:
    return f"fleet-{action}.log"


def setup_logging(
    verbose: bool = False, log_file: str = "fleet-reconcile.log"
) -> logging.Logger:
    """
    Set up logging configuration.

    Handlers serialize each record under their own lock, so whole lines from
    concurrent workers never interleave.

    Args:
        verbose: Enable verbose (DEBUG) logging
        log_file: Path to log file

    Returns:
        Logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file),
        ],
    )

    return logging.getLogger(__name__)
