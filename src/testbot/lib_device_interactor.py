"""
The power and flash contract of a DUT.

A DeviceInteractor is NOT subclassed per DUT type.
Instead, a DeviceSpec selects the strategies which differ between DUT families:

* PowerControl: How to switch the DUT power (voltage rail or relay).
* PowerOnSequence: How to power on the DUT.
* FlashStrategy: How to get the image onto the DUT.
* CompletionWait: How to find out that the DUT finished provisioning its internal storage.
* CompletionProbe: How to find out if the DUT is powered.
"""

from __future__ import annotations

import abc
import dataclasses
import enum
import logging
import pathlib
import typing
from collections.abc import Callable

from .lib_hardware_driver import HardwareDriver
from .util_baseclasses import FlashOutcome
from .util_constants import SETTLE_MUX_MS
from .util_image import ImageSource
from .util_poll import Budget, CancelToken, PollConfig, Timebase
from .util_probe import CompletionProbe, ProbeResult
from .util_pyudev import UsbScanner, UsbScannerABC
from .util_usb_power import UsbHubPower
from .util_usbboot import UsbbootHandoff

logger = logging.getLogger(__file__)


class FlashState(enum.StrEnum):
    IDLE = "idle"
    EXTERNAL_FLASH = "external-flash"
    AWAIT_BOOT = "await-boot"
    GRACE_PERIOD = "grace-period"
    AWAIT_COMPLETION = "await-completion"
    DETACH = "detach"
    DONE = "done"
    FAILED = "failed"


class PowerControl:
    """
    Switches the DUT power using the voltage rail of the testbot.
    """

    def power_on_dut(self, interactor: DeviceInteractor) -> None:
        interactor.driver.power_on_dut()

    def power_off_dut(self, interactor: DeviceInteractor) -> None:
        interactor.driver.power_off_dut()

    def power_off(self, interactor: DeviceInteractor) -> None:
        """
        Stop capturing the serial output and remove the DUT power.
        """
        interactor.driver.close_dut_serial()
        self.power_off_dut(interactor)


class PowerOnSequence(abc.ABC):
    @abc.abstractmethod
    def power_on(self, interactor: DeviceInteractor) -> None:
        """
        On return: Target voltage applied and the DUT is out of reset.
        """

    @property
    def description(self) -> str:
        return self.__class__.__name__


class SdMuxPowerOn(PowerOnSequence):
    """
    The DUT boots from the SD card in the mux.
    """

    def __init__(self, settle_before_power_s: float = 0.0) -> None:
        assert isinstance(settle_before_power_s, float)
        self.settle_before_power_s = settle_before_power_s

    def power_on(self, interactor: DeviceInteractor) -> None:
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.driver.switch_sd_to_dut(SETTLE_MUX_MS)
        if self.settle_before_power_s > 0.0:
            interactor.sleep(self.settle_before_power_s)
        interactor.power_control.power_on_dut(interactor)

    @property
    def description(self) -> str:
        if self.settle_before_power_s > 0.0:
            return f"vout, mux-to-dut, settle {self.settle_before_power_s:0.0f}s, on"
        return "vout, mux-to-dut, on"


class FlasherPowerOn(PowerOnSequence):
    """
    The DUT boots from its internal storage.
    The flasher media is only muxed to the DUT by the flashing.
    """

    def power_on(self, interactor: DeviceInteractor) -> None:
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.driver.switch_sd_to_host(SETTLE_MUX_MS)
        interactor.power_control.power_on_dut(interactor)

    @property
    def description(self) -> str:
        return "vout, mux-to-host, on"


class FlashStrategy(abc.ABC):
    LABEL = "dummy"

    @abc.abstractmethod
    def flash(self, interactor: DeviceInteractor, source: ImageSource) -> None:
        """
        Return after the image was written and the flashing reached a terminal state.
        """


class DirectFlash(FlashStrategy):
    """
    Write the image to the media in the mux.
    """

    LABEL = "direct"

    def flash(self, interactor: DeviceInteractor, source: ImageSource) -> None:
        interactor.set_flash_state(FlashState.EXTERNAL_FLASH)
        flash_image(interactor, source)


class CompletionWait(abc.ABC):
    @abc.abstractmethod
    def wait_internal_flash(self, interactor: DeviceInteractor) -> None:
        """
        Wait for the DUT to finish provisioning its internal storage.
        """


@dataclasses.dataclass(frozen=True, repr=True)
class DeviceSpec:
    """
    Specification of a DUT type, for example:

    >>> DeviceSpec(
        device_type=DeviceType.RASPBERRYPI,
        doc="Raspberry Pi like devices",
        power_voltage=5.0,
        power_on=SdMuxPowerOn(),
        flash_strategy=DirectFlash(),
    )
    """

    device_type: enum.StrEnum
    doc: str
    power_voltage: float
    power_on: PowerOnSequence
    flash_strategy: FlashStrategy
    completion_wait: CompletionWait | None = None
    completion_probe: CompletionProbe | None = None
    diagnostic_probe: CompletionProbe | None = None
    """
    Only used for logging.
    """
    power_control_factory: Callable[[], PowerControl] = PowerControl
    """
    The power control may keep state (gpios exported): Every interactor gets its own instance.
    """

    def __post_init__(self) -> None:
        assert isinstance(self.device_type, enum.StrEnum)
        assert isinstance(self.doc, str)
        assert isinstance(self.power_voltage, float)
        assert isinstance(self.power_on, PowerOnSequence)
        assert isinstance(self.flash_strategy, FlashStrategy)
        assert isinstance(self.completion_wait, CompletionWait | None)
        assert isinstance(self.completion_probe, CompletionProbe | None)
        assert isinstance(self.diagnostic_probe, CompletionProbe | None)


class DeviceInteractor:
    """
    Powers and flashes one DUT.

    The livetime starts when the DUT type is selected and
    ends when the process terminates.

    The HardwareDriver is shared: Only one interactor may be active at any time.
    """

    def __init__(
        self,
        spec: DeviceSpec,
        driver: HardwareDriver,
        config: PollConfig | None = None,
        timebase: Timebase | None = None,
        cancel_token: CancelToken | None = None,
        usb_power: UsbHubPower | None = None,
        scanner_factory: Callable[[], UsbScannerABC] | None = None,
        usbboot: UsbbootHandoff | None = None,
    ) -> None:
        assert isinstance(spec, DeviceSpec)
        assert isinstance(driver, HardwareDriver)
        self.spec = spec
        self.driver = driver
        self.config = PollConfig() if config is None else config
        self.timebase = Timebase() if timebase is None else timebase
        self.cancel_token = CancelToken() if cancel_token is None else cancel_token
        self.usb_power = UsbHubPower() if usb_power is None else usb_power
        self.scanner_factory: Callable[[], UsbScannerABC] = (
            (lambda: UsbScanner(timebase=self.timebase))
            if scanner_factory is None
            else scanner_factory
        )
        self.usbboot = UsbbootHandoff() if usbboot is None else usbboot
        self._power_voltage = spec.power_voltage
        self.power_control = spec.power_control_factory()
        self.label = f"DUT {spec.device_type}"
        self.flash_states: list[FlashState] = [FlashState.IDLE]
        self.last_flash_outcome: FlashOutcome | None = None
        self._last_power_on = False
        """
        The last available probe reading.
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.spec.device_type}, {self.power_voltage}V)"

    @property
    def power_voltage(self) -> float:
        return self._power_voltage

    @property
    def device_type(self) -> enum.StrEnum:
        return self.spec.device_type

    @property
    def flash_state(self) -> FlashState:
        return self.flash_states[-1]

    def set_flash_state(self, state: FlashState) -> None:
        assert isinstance(state, FlashState)
        logger.info(f"{self.label}: {self.flash_state} -> {state}")
        self.flash_states.append(state)

    def sleep(self, duration_s: float) -> None:
        self.timebase.sleep(duration_s, self.cancel_token)
        self.cancel_token.raise_if_cancelled(self.label)

    def budget(self, timeout_s: float | None, text_expect: str) -> Budget:
        return Budget(
            timebase=self.timebase,
            timeout_s=timeout_s,
            text_where=self.label,
            text_expect=text_expect,
            cancel_token=self.cancel_token,
        )

    def probe_dut_power(self) -> ProbeResult:
        probe = self.spec.completion_probe
        if probe is None:
            raise NotImplementedError(f"{self.label}: No completion probe!")
        result = probe.check(self)
        logger.debug(f"{self.label}: DUT is currently {result.text}")
        if result.available:
            assert result.on is not None
            self._last_power_on = result.on
        return result

    def check_dut_power(self) -> bool:
        """
        Return True if the DUT is on.
        If the probe fails, the last reading is returned.
        """
        self.probe_dut_power()
        return self._last_power_on

    def power_on(self) -> None:
        with self.driver.claim(self.label):
            self.spec.power_on.power_on(self)

    def power_off(self) -> None:
        with self.driver.claim(self.label):
            self.power_control.power_off(self)

    def open_dut_serial(self) -> typing.BinaryIO | None:
        """
        Capture the serial output of the DUT. Return None if the DUT has no serial console.
        'power_off()' closes it.
        """
        with self.driver.claim(self.label):
            logger.info(f"{self.label}: Opening the serial console")
            return self.driver.open_dut_serial()

    def flash(self, source: ImageSource | pathlib.Path | str) -> None:
        """
        Raise UnsupportedFormatError before touching the hardware if 'source' is a zip file.
        """
        image_source = ImageSource.factory(source)
        with self.driver.claim(self.label):
            self.flash_states = [FlashState.IDLE]
            try:
                self.spec.flash_strategy.flash(self, image_source)
            except Exception:
                self.set_flash_state(FlashState.FAILED)
                raise
            if self.flash_state != FlashState.DONE:
                self.set_flash_state(FlashState.DONE)

    def flash_from_file(self, filename: pathlib.Path | str) -> None:
        self.flash(ImageSource(filename=pathlib.Path(filename)))

    def wait_internal_flash(self) -> None:
        with self.driver.claim(self.label):
            self.run_completion_wait()

    def run_completion_wait(self) -> None:
        """
        Same as 'wait_internal_flash()' but to be called from within a power or flash sequence.
        """
        completion_wait = self.spec.completion_wait
        if completion_wait is None:
            raise NotImplementedError(
                f"{self.label}: Does not provision internal storage!"
            )
        completion_wait.wait_internal_flash(self)


def flash_image(interactor: DeviceInteractor, source: ImageSource) -> None:
    """
    Write the image to the media currently muxed to the testbot.
    """
    with source.open() as stream:
        interactor.driver.flash(stream)
