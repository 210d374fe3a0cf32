"""
Jetson TX2

We turn the TX2 on and off using GPIO26 on the testbot HAT, which is
connected to a 5V relay simulating the power button.
GPIO13 is connected to J21.1 (3v3) on the TX2 to determine the DUT power state.

* short press on the power button: power on
* long press on the power button: forced power off
"""

from __future__ import annotations

import logging
import pathlib

from .lib_device_interactor import DeviceInteractor, FlashState, PowerControl, PowerOnSequence
from .lib_flasher import FlasherCompletionWait
from .lib_hardware_driver import HIGH, LOW
from .util_baseclasses import FlashTimeoutError
from .util_constants import DIRECTORY_SYSFS, SETTLE_MUX_MS
from .util_probe import CompletionProbe, ProbeResult, SysfsGpio

logger = logging.getLogger(__file__)

PIN_DUT_PW_EN = 14
PIN_OE_TXB = 13
PIN_OE_TXS = 15
GPIO_POWER_BUTTON = 26
GPIO_POWER_SENSE = 13

PRESS_SHORT_S = 3.0
PRESS_LONG_S = 10.0
OFF_CHECKS = 10
OFF_CHECK_INTERVAL_S = 10.0


class Tx2PowerControl(PowerControl):
    """
    The 5V relay does not work reliably if powered from the HAT:
    The relay is supplied from the testbot voltage rail.
    """

    def __init__(self, directory_sysfs: pathlib.Path = DIRECTORY_SYSFS) -> None:
        self.gpio_button = SysfsGpio(GPIO_POWER_BUTTON, directory_sysfs=directory_sysfs)
        self.gpio_sense = SysfsGpio(GPIO_POWER_SENSE, directory_sysfs=directory_sysfs)
        self.gpios_enabled = False

    def enable_gpios(self, interactor: DeviceInteractor) -> None:
        if self.gpios_enabled:
            return
        interactor.driver.digital_write(PIN_OE_TXB, HIGH)
        interactor.driver.digital_write(PIN_OE_TXS, HIGH)
        interactor.sleep(0.1)

        # Released power button
        if self.gpio_button.export(direction="out"):
            self.gpio_button.write(1)
        self.gpio_sense.export(direction="in")
        interactor.sleep(0.1)
        self.gpios_enabled = True

    def power_relay(self, interactor: DeviceInteractor, on: bool) -> None:
        if on:
            interactor.driver.set_vout(interactor.power_voltage)
            interactor.driver.digital_write(PIN_DUT_PW_EN, HIGH)
            return
        interactor.driver.digital_write(PIN_DUT_PW_EN, LOW)

    def press_power_button(self, interactor: DeviceInteractor, duration_s: float) -> None:
        self.gpio_button.write(0)
        interactor.sleep(duration_s)
        self.gpio_button.write(1)

    def power_on_dut(self, interactor: DeviceInteractor) -> None:
        self.enable_gpios(interactor)
        self.power_relay(interactor, on=True)
        interactor.sleep(1.0)
        self.press_power_button(interactor, duration_s=PRESS_SHORT_S)
        interactor.sleep(3.0)
        logger.info(f"{interactor.label}: Triggered power on sequence on TX2")

    def power_off_dut(self, interactor: DeviceInteractor) -> None:
        """
        Forcedly power off device, even if it is on
        """
        self.enable_gpios(interactor)
        self.power_relay(interactor, on=True)
        interactor.sleep(1.0)
        self.press_power_button(interactor, duration_s=PRESS_LONG_S)
        logger.info(f"{interactor.label}: Triggered power off sequence on TX2")
        interactor.sleep(1.0)

        if interactor.check_dut_power():
            logger.warning(
                f"{interactor.label}: Triggered force shutdown but TX2 did not power off"
            )
        self.power_relay(interactor, on=False)

    def power_off(self, interactor: DeviceInteractor) -> None:
        logger.info(f"{interactor.label}: Will turn off TX2")
        if not interactor.check_dut_power():
            logger.info(f"{interactor.label}: TX2 is not booted, no power toggle needed")
            return
        logger.info(f"{interactor.label}: TX2 is booted, trigger shutdown")
        self.power_off_dut(interactor)


def tx2_power_control(interactor: DeviceInteractor) -> Tx2PowerControl:
    power_control = interactor.power_control
    assert isinstance(power_control, Tx2PowerControl), power_control
    return power_control


class Tx2GpioProbe(CompletionProbe):
    LABEL = "gpio13"

    def check(self, interactor: DeviceInteractor) -> ProbeResult:
        power_control = tx2_power_control(interactor)
        power_control.enable_gpios(interactor)
        return power_control.gpio_sense.read()


class Tx2PowerOn(PowerOnSequence):
    def power_on(self, interactor: DeviceInteractor) -> None:
        interactor.driver.switch_sd_to_host(SETTLE_MUX_MS)
        interactor.power_control.power_on_dut(interactor)

    @property
    def description(self) -> str:
        return "mux-to-host, relay short press"


class Tx2CompletionWait(FlasherCompletionWait):
    def wait_internal_flash(self, interactor: DeviceInteractor) -> None:
        try:
            super().wait_internal_flash(interactor)
        except FlashTimeoutError as e:
            logger.error(f"{interactor.label}: Failed to flash internal storage: {e}")
            interactor.power_control.power_off_dut(interactor)
            raise

    def boot_flasher(self, interactor: DeviceInteractor) -> None:
        logger.info(f"{interactor.label}: Ensure TX2 is powered off")
        interactor.power_control.power_off(interactor)

        # Leave some time for the TX2 to gracefully shut down in case it was on for any reason
        checks = 1
        while interactor.check_dut_power():
            if checks >= OFF_CHECKS:
                raise FlashTimeoutError(
                    text_where=interactor.label,
                    text_expect="Failed to power off the TX2 before flashing",
                    duration_s=(checks - 1) * OFF_CHECK_INTERVAL_S,
                )
            logger.info(
                f"{interactor.label}: Waiting for TX2 to be off - Will check again at most {OFF_CHECKS - checks} times"
            )
            interactor.sleep(OFF_CHECK_INTERVAL_S)
            checks += 1

        interactor.driver.switch_sd_to_dut(SETTLE_MUX_MS)
        logger.info(f"{interactor.label}: Booting TX2 with the flasher image")
        interactor.power_control.power_on_dut(interactor)

    def detach(self, interactor: DeviceInteractor) -> None:
        # The TX2 powered itself off, FlasherFlash switches the media back to the testbot.
        interactor.set_flash_state(FlashState.DETACH)
        logger.info(f"{interactor.label}: TX2 finished provisioning and turned off")
