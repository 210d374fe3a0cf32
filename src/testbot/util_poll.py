"""
Timing for the power and flash state machines.

* PollConfig: All polling intervals, retry counts and wait budgets.
* Timebase: sleep() and monotonic(). Tests replace it by a simulated clock.
* CancelToken: Allows to abort a wait from another thread.
* Budget: The deadline of one wait.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time

from .util_baseclasses import FlashCancelledError, FlashTimeoutError

logger = logging.getLogger(__file__)


@dataclasses.dataclass(frozen=True, repr=True)
class PollConfig:
    poll_interval_s: float = 1.0
    """
    Interval between the samples of the debounce window.
    """
    poll_tries: int = 20
    """
    Number of consecutive 'off' samples required to accept 'off' as stable.
    """
    boot_poll_s: float = 5.0
    grace_period_s: float = 60.0
    """
    After the DUT booted the flasher image, it will write the internal storage for at least this time.
    """
    completion_poll_s: float = 10.0
    pre_power_settle_s: float = 5.0
    """
    Make sure the DUT does not power on before the mux is actually toggled.
    """
    boot_timeout_s: float | None = 10 * 60.0
    """
    None: Wait forever for the DUT to power up.
    """
    completion_timeout_s: float | None = 60 * 60.0
    """
    None: Wait forever for the DUT to power down after provisioning.
    """

    flash_attempts: int = 3
    usbboot_timeout_s: float | None = 2 * 60.0
    """
    Compute module: Wait for the usbboot device to attach and detach.
    None: Wait forever.
    """
    reattach_timeout_s: float = 5 * 60.0
    """
    Compute module: Wait for the module to reattach as a block device.
    """
    raise_on_attempts_exhausted: bool = True
    """
    False: Return silently if all attempts failed.
    """

    current_poll_s: float = 5.0
    current_timeout_s: float = 6 * 60.0
    current_threshold_a: float = 0.1

    def __post_init__(self) -> None:
        assert self.poll_tries > 0
        assert self.flash_attempts > 0
        for timeout_s in (
            self.boot_timeout_s,
            self.completion_timeout_s,
            self.usbboot_timeout_s,
        ):
            assert isinstance(timeout_s, float | int | None)


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout_s: float) -> bool:
        """
        Return True if cancelled during the wait.
        """
        return self._event.wait(timeout=timeout_s)

    def raise_if_cancelled(self, text_where: str) -> None:
        if self.cancelled:
            raise FlashCancelledError(f"{text_where}: Cancelled!")


class Timebase:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, duration_s: float, cancel_token: CancelToken | None = None) -> None:
        if cancel_token is None:
            time.sleep(duration_s)
            return
        # Wake up immediately if cancelled
        cancel_token.wait(timeout_s=duration_s)


class Budget:
    """
    The deadline of one wait.

    timeout_s=None: The wait is unbounded. However, it may still be cancelled.
    """

    def __init__(
        self,
        timebase: Timebase,
        timeout_s: float | None,
        text_where: str,
        text_expect: str,
        cancel_token: CancelToken | None = None,
    ) -> None:
        assert isinstance(timebase, Timebase)
        assert isinstance(timeout_s, float | int | None)
        self._timebase = timebase
        self.timeout_s = timeout_s
        self.text_where = text_where
        self.text_expect = text_expect
        self._cancel_token = cancel_token
        self.begin_s = timebase.monotonic()

    @property
    def duration_s(self) -> float:
        return self._timebase.monotonic() - self.begin_s

    @property
    def expired(self) -> bool:
        if self.timeout_s is None:
            return False
        return self.duration_s >= self.timeout_s

    @property
    def remaining_s(self) -> float | None:
        if self.timeout_s is None:
            return None
        return max(0.0, self.timeout_s - self.duration_s)

    def check(self) -> None:
        """
        Raise if cancelled or expired.
        """
        if self._cancel_token is not None:
            self._cancel_token.raise_if_cancelled(self.text_where)
        if self.expired:
            raise FlashTimeoutError(
                text_where=self.text_where,
                text_expect=self.text_expect,
                duration_s=self.duration_s,
            )

    def sleep(self, duration_s: float) -> None:
        self._timebase.sleep(duration_s, self._cancel_token)
        if self._cancel_token is not None:
            self._cancel_token.raise_if_cancelled(self.text_where)
