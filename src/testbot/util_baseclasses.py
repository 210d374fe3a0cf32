from __future__ import annotations

import enum


class TestbotException(Exception):
    """
    Base class of all exceptions raised by the power and flash engine.
    """


class UnsupportedFormatError(TestbotException):
    """
    The image source is an archive format we can not stream (zip).
    """


class FlashTimeoutError(TestbotException):
    """
    A bounded wait expired.
    """

    def __init__(self, text_where: str, text_expect: str, duration_s: float) -> None:
        assert isinstance(text_where, str)
        assert isinstance(text_expect, str)
        self.text_where = text_where
        self.text_expect = text_expect
        self.duration_s = duration_s
        super().__init__(f"{text_where}: {text_expect}: timed out after {duration_s:0.1f}s")


class FlashCancelledError(TestbotException):
    """
    The CancelToken was set while waiting.
    """


class FlashAttemptsExhaustedError(TestbotException):
    def __init__(self, text_where: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"{text_where}: Flashing failed: all {attempts} attempts exhausted!"
        )


class InteractorBusyError(TestbotException):
    """
    Only one DeviceInteractor may drive the hardware at any time.
    """


class FlashOutcome(enum.StrEnum):
    SUCCEEDED = "succeeded"
    ATTEMPTS_EXHAUSTED = "attempts-exhausted"
