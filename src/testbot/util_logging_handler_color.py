import logging
import re
import typing_extensions

from rich.style import Style

# https://github.com/Textualize/rich/blob/master/rich/color.py

_STYLE_FALLBACK = Style(color="purple")

_DICT_STYLES = {
    "COLOR_INFO": Style(color="blue"),
    "COLOR_SUCCESS": Style(color="green"),
    "COLOR_FAILED": Style(color="orange1"),
    "COLOR_ERROR": Style(color="red"),
}


def split_color_tag(msg: str) -> tuple[str | None, str]:
    """
    Example: '[COLOR_INFO]DUT powered' -> ('COLOR_INFO', 'DUT powered')
    """
    match = ColorFormatter.RE_TAG.match(msg)
    if match is None:
        return None, msg
    return match.group("tag"), match.group("msg")


class ColorFormatter(logging.Formatter):
    RE_TAG = re.compile(r"^\[(?P<tag>COLOR_[A-Z]+)\](?P<msg>.*$)", re.DOTALL)
    """
    Example: [COLOR_SUCCESS]DUT fincm3: Flashed!
    tag: COLOR_SUCCESS
    msg: DUT fincm3: Flashed!
    """

    def __init__(self, fmt: str | None = None, colored: bool = True) -> None:
        super().__init__(fmt)
        self.colored = colored

    @typing_extensions.override
    def format(self, record: logging.LogRecord) -> str:
        if not isinstance(record.msg, str):
            return super().format(record)
        tag, msg = split_color_tag(record.msg)
        if tag is None:
            return super().format(record)

        msg_before = record.msg
        try:
            # The tag is never written to the log
            record.msg = msg
            message = super().format(record)
            if not self.colored:
                return message
            return _DICT_STYLES.get(tag, _STYLE_FALLBACK).render(message)
        finally:
            record.msg = msg_before
