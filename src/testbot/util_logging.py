from __future__ import annotations

import json
import logging
import logging.config
import pathlib

DIRECTORY_OF_THIS_FILE = pathlib.Path(__file__).parent
FILENAME_LOGGING_JSON = DIRECTORY_OF_THIS_FILE / "util_logging_config.json"

logger = logging.getLogger(__file__)


def logging_config(level: int | None = None) -> dict:
    config = json.loads(FILENAME_LOGGING_JSON.read_text())
    if level is not None:
        config["handlers"]["console"]["level"] = logging.getLevelName(level)
    return config


def init_logging(level: int | None = None) -> None:
    """
    'level': Overrides the console level from util_logging_config.json.
    """
    logging.config.dictConfig(logging_config(level=level))


def main() -> None:
    init_logging()

    logger.info("Color Test")
    logger.info("[COLOR_INFO]COLOR_INFO")
    logger.info("[COLOR_SUCCESS]COLOR_SUCCESS")
    logger.info("[COLOR_FAILED]COLOR_FAILED")
    logger.info("[COLOR_ERROR]COLOR_ERROR")


if __name__ == "__main__":
    main()
