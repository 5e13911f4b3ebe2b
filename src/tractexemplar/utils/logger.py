"""
Logging utilities for TractExemplar

Console output plus a timestamped run log, and a markdown record of the
parameters each run used.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

PACKAGE_LOGGER = "tractexemplar"

_configured: Optional[logging.Logger] = None


def get_logger(log_dir: str = "logs") -> logging.Logger:
    """
    Get the package logger, attaching its handlers on first use

    Args:
        log_dir: Directory for the run log file, used on the first call only

    Returns:
        The "tractexemplar" logger; module loggers propagate to it
    """
    global _configured
    if _configured is not None:
        return _configured

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.INFO)
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    logger.addHandler(console_handler)

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / f"tractexemplar_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(file_handler)

    logger.info(f"Logging to: {log_file}")

    _configured = logger
    return logger


def log_decision(
    decision_id: str,
    component: str,
    decision: str,
    parameters: dict,
    output_file: str = "logs/decision_log.md"
):
    """
    Append a record of a run's parameters to the decision log

    Args:
        decision_id: Unique identifier for the record
        component: Component/module name
        decision: What was done
        parameters: Dictionary of parameters and values
        output_file: Path to decision log file
    """
    lines = [
        "",
        f"### [{decision_id}] {component}",
        f"**Timestamp**: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        f"**Decision**: {decision}",
        "",
        "**Parameters**:",
    ]
    lines.extend(f"- {key} = {value}" for key, value in parameters.items())
    lines.extend(["", "---", ""])

    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'a', encoding='utf-8') as f:
        f.write("\n".join(lines))

    logging.getLogger(PACKAGE_LOGGER).info(f"Decision logged: {decision_id}")
