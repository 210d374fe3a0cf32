from __future__ import annotations

import logging

from testbot.util_logging import logging_config
from testbot.util_logging_handler_color import ColorFormatter, split_color_tag


def _record(msg: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="testbot",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=None,
        exc_info=None,
    )


def test_split_color_tag() -> None:
    assert split_color_tag("[COLOR_SUCCESS]Flashed!") == ("COLOR_SUCCESS", "Flashed!")
    assert split_color_tag("Flashed!") == (None, "Flashed!")


def test_color_formatter() -> None:
    plain = ColorFormatter("%(levelname)s - %(message)s", colored=False)
    colored = ColorFormatter("%(levelname)s - %(message)s")
    record = _record("[COLOR_FAILED]DUT fincm3: Flashing failed")

    assert plain.format(record) == "INFO - DUT fincm3: Flashing failed"
    text = colored.format(record)
    assert "INFO - DUT fincm3: Flashing failed" in text
    assert text != "INFO - DUT fincm3: Flashing failed"
    # The record is left untouched for other handlers
    assert record.msg == "[COLOR_FAILED]DUT fincm3: Flashing failed"

    assert plain.format(_record(ValueError("x"))) == "INFO - x"


def test_logging_config() -> None:
    config = logging_config()
    assert config["handlers"]["console"]["level"] == "INFO"

    config = logging_config(level=logging.DEBUG)
    assert config["handlers"]["console"]["level"] == "DEBUG"
