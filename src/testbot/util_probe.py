"""
Probes to find out if the DUT is powered.

The DUT power state can not be observed directly.
It is deduced from indirect and noisy signals:

* the carrier of the ethernet link between testbot and DUT
* a gpio connected to a DUT supply rail
* the current drawn from the testbot voltage rail

A probe may fail (sysfs file missing, gpio not exported).
This is reported as 'ProbeResult.unavailable()' and NOT as 'off'.
"""

from __future__ import annotations

import abc
import dataclasses
import logging
import pathlib
import typing

from .util_constants import DIRECTORY_SYSFS, NETWORK_INTERFACE_DUT

if typing.TYPE_CHECKING:
    from .lib_device_interactor import DeviceInteractor

logger = logging.getLogger(__file__)


@dataclasses.dataclass(frozen=True, repr=True)
class ProbeResult:
    on: bool | None
    """
    None: The probe failed, we do not know.
    """
    reason: str = ""

    @staticmethod
    def ok(on: bool) -> ProbeResult:
        return ProbeResult(on=on)

    @staticmethod
    def unavailable(reason: str) -> ProbeResult:
        return ProbeResult(on=None, reason=reason)

    @property
    def available(self) -> bool:
        return self.on is not None

    @property
    def is_on(self) -> bool:
        return self.on is True

    @property
    def is_off(self) -> bool:
        """
        Confirmed off. An unavailable probe is not 'off'.
        """
        return self.on is False

    @property
    def text(self) -> str:
        if self.on is None:
            return f"unavailable ({self.reason})"
        return "on" if self.on else "off"


class CompletionProbe(abc.ABC):
    LABEL = "dummy"

    @abc.abstractmethod
    def check(self, interactor: DeviceInteractor) -> ProbeResult: ...


def read_sysfs(filename: pathlib.Path) -> str:
    """
    Raise OSError
    """
    return filename.read_text().strip()


def write_sysfs(filename: pathlib.Path, value: str) -> bool:
    """
    Return False if the write failed. The error is logged.
    """
    try:
        filename.write_text(value)
    except OSError as e:
        logger.warning(f"Failed to write '{value}' to {filename}: {e!r}")
        return False
    return True


class NetworkCarrierProbe(CompletionProbe):
    """
    The DUT is 'on' if the ethernet link towards the DUT has a carrier.
    """

    LABEL = "carrier"

    def __init__(
        self,
        interface: str = NETWORK_INTERFACE_DUT,
        directory_sysfs: pathlib.Path = DIRECTORY_SYSFS,
    ) -> None:
        assert isinstance(interface, str)
        assert isinstance(directory_sysfs, pathlib.Path)
        self.interface = interface
        self.directory_sysfs = directory_sysfs

    @property
    def filename(self) -> pathlib.Path:
        return self.directory_sysfs / "class" / "net" / self.interface / "carrier"

    def check(self, interactor: DeviceInteractor | None = None) -> ProbeResult:
        try:
            value = read_sysfs(self.filename)
        except OSError as e:
            # The carrier file may not be readable while the interface is down
            logger.warning(f"{self.filename}: {e!r}")
            return ProbeResult.unavailable(reason=f"{self.filename}: {e.strerror}")
        return ProbeResult.ok(on="1" in value)


class SysfsGpio:
    """
    A gpio of the testbot, controlled via /sys/class/gpio.
    """

    def __init__(
        self, number: int, directory_sysfs: pathlib.Path = DIRECTORY_SYSFS
    ) -> None:
        assert isinstance(number, int)
        assert isinstance(directory_sysfs, pathlib.Path)
        self.number = number
        self.directory_gpio = directory_sysfs / "class" / "gpio"

    def __repr__(self) -> str:
        return f"gpio{self.number}"

    @property
    def filename_value(self) -> pathlib.Path:
        return self.directory_gpio / f"gpio{self.number}" / "value"

    def export(self, direction: str) -> bool:
        assert direction in ("in", "out")
        directory = self.directory_gpio / f"gpio{self.number}"
        if not directory.is_dir():
            # Already exported gpios are fine
            if not write_sysfs(self.directory_gpio / "export", str(self.number)):
                logger.warning(f"Failed to export {self!r}")
                return False
        if not write_sysfs(directory / "direction", direction):
            logger.warning(f"Failed to set {self!r} as {direction}put")
            return False
        return True

    def write(self, value: int) -> bool:
        assert value in (0, 1)
        return write_sysfs(self.filename_value, str(value))

    def read(self) -> ProbeResult:
        try:
            value = read_sysfs(self.filename_value)
        except OSError as e:
            logger.warning(f"{self!r}: {e!r}")
            return ProbeResult.unavailable(reason=f"{self!r}: {e.strerror}")
        return ProbeResult.ok(on="1" in value)


class GpioProbe(CompletionProbe):
    """
    The DUT is 'on' if the gpio reads '1'.
    """

    LABEL = "gpio"

    def __init__(self, gpio: SysfsGpio) -> None:
        assert isinstance(gpio, SysfsGpio)
        self.gpio = gpio

    def check(self, interactor: DeviceInteractor) -> ProbeResult:
        return self.gpio.read()


class CurrentWindowProbe(CompletionProbe):
    """
    The DUT is 'on' if the current drawn from the rail is within [low_a, high_a).

    'high_a': Sometimes the current sensor reports ~80A while the DUT is powering off.
    """

    LABEL = "current"

    def __init__(self, low_a: float, high_a: float | None = None) -> None:
        assert isinstance(low_a, float)
        assert isinstance(high_a, float | None)
        self.low_a = low_a
        self.high_a = high_a

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(low_a={self.low_a}, high_a={self.high_a})"

    def check(self, interactor: DeviceInteractor) -> ProbeResult:
        current_a = interactor.driver.read_vout_amperage()
        logger.debug(f"{interactor.label}: Out current is: {current_a:0.3f}A")
        on = current_a > self.low_a
        if self.high_a is not None:
            on = on and (current_a < self.high_a)
        return ProbeResult.ok(on=on)
