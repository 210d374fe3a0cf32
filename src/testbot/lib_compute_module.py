"""
Compute modules (balenaFin, Revolution Pi, 243390-Rpi3) have no removable media.

Flashing:
* Power cycle the module with USB connected: It enters its ROM usbboot mode.
* rpiboot sends the bootloader to the usbboot device, which then detaches.
* The module reattaches as a block device 'Compute Module'.
* The image is written to this block device.

The usb power sequence differs between the board revisions: See PowerOnFlash.
"""

from __future__ import annotations

import dataclasses
import logging

from .lib_device_interactor import (
    DeviceInteractor,
    FlashState,
    FlashStrategy,
    PowerOnSequence,
)
from .util_baseclasses import FlashAttemptsExhaustedError, FlashOutcome
from .util_image import ImageSource
from .util_pyudev import (
    DESCRIPTION_COMPUTE_MODULE,
    BlockDevice,
    UsbbootDrive,
    UsbScannerABC,
    UsbScannerTimeoutException,
    match_block_device_attach,
    match_detach,
    match_usbboot_attach,
)

logger = logging.getLogger(__file__)


class PowerOnFlash:
    """
    balenaFin v1.1.x (V10+):
    Power cycle the usb port. The DUT power is left untouched.
    """

    def __init__(self, settle_usb_off_s: float = 2.0) -> None:
        self.settle_usb_off_s = settle_usb_off_s

    def power_on_flash(self, interactor: DeviceInteractor) -> None:
        interactor.usb_power.set_power(on=False)
        interactor.sleep(self.settle_usb_off_s)
        interactor.usb_power.set_power(on=True)

    @property
    def description(self) -> str:
        return f"usb off, {self.settle_usb_off_s:0.0f}s, usb on"


class PowerOnFlashV09(PowerOnFlash):
    """
    balenaFin v1.0.0 (V09), Revolution Pi:
    The usb power sequence is followed by powering the DUT.
    This sequence may damage a balenaFin V10+!
    """

    def __init__(
        self, settle_usb_off_s: float = 1.0, settle_usb_on_s: float = 0.0
    ) -> None:
        super().__init__(settle_usb_off_s=settle_usb_off_s)
        self.settle_usb_on_s = settle_usb_on_s

    def power_on_flash(self, interactor: DeviceInteractor) -> None:
        super().power_on_flash(interactor)
        if self.settle_usb_on_s > 0.0:
            interactor.sleep(self.settle_usb_on_s)
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.power_control.power_on_dut(interactor)

    @property
    def description(self) -> str:
        text = super().description
        if self.settle_usb_on_s > 0.0:
            text += f", {self.settle_usb_on_s:0.0f}s"
        return text + ", vout, on"


class ComputeModulePowerOn(PowerOnSequence):
    """
    Boot from the internal eMMC: USB must be unpowered, else the module enters usbboot.
    """

    def __init__(self, settle_usb_off_s: float = 1.0) -> None:
        self.settle_usb_off_s = settle_usb_off_s

    def power_on(self, interactor: DeviceInteractor) -> None:
        logger.info(f"{interactor.label}: Powering on")
        interactor.usb_power.set_power(on=False)
        interactor.sleep(self.settle_usb_off_s)
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.power_control.power_on_dut(interactor)

    @property
    def description(self) -> str:
        return f"usb off, {self.settle_usb_off_s:0.0f}s, vout, on"


@dataclasses.dataclass
class FlashAttempt:
    source: ImageSource
    attempt: int
    """
    0..flash_attempts-1
    """
    outcome: FlashOutcome | None = None


class ComputeModuleFlash(FlashStrategy):
    LABEL = "compute-module"

    def __init__(
        self,
        power_on_flash: PowerOnFlash,
        settle_power_off_s: float = 8.0,
        settle_before_flash_s: float = 1.0,
        description: str = DESCRIPTION_COMPUTE_MODULE,
    ) -> None:
        assert isinstance(power_on_flash, PowerOnFlash)
        self.power_on_flash = power_on_flash
        self.settle_power_off_s = settle_power_off_s
        self.settle_before_flash_s = settle_before_flash_s
        self.description = description

    def flash(self, interactor: DeviceInteractor, source: ImageSource) -> None:
        config = interactor.config
        interactor.set_flash_state(FlashState.EXTERNAL_FLASH)
        attempts: list[FlashAttempt] = []
        try:
            for i in range(config.flash_attempts):
                attempt = FlashAttempt(source=source, attempt=i)
                attempts.append(attempt)
                logger.info(
                    f"{interactor.label}: Entering flash method, attempt {i + 1} of {config.flash_attempts}"
                )
                if self.flash_attempt(interactor, attempt):
                    attempt.outcome = FlashOutcome.SUCCEEDED
                    break
                logger.warning(f"{interactor.label}: Flashing failed")
        finally:
            interactor.usb_power.set_power(on=False)
            interactor.power_control.power_off_dut(interactor)

        if attempts[-1].outcome == FlashOutcome.SUCCEEDED:
            interactor.last_flash_outcome = FlashOutcome.SUCCEEDED
            return

        attempts[-1].outcome = FlashOutcome.ATTEMPTS_EXHAUSTED
        interactor.last_flash_outcome = FlashOutcome.ATTEMPTS_EXHAUSTED
        if config.raise_on_attempts_exhausted:
            raise FlashAttemptsExhaustedError(
                text_where=interactor.label, attempts=len(attempts)
            )
        logger.error(
            f"{interactor.label}: All {len(attempts)} attempts exhausted, no image was written!"
        )

    def flash_attempt(self, interactor: DeviceInteractor, attempt: FlashAttempt) -> bool:
        """
        Return True if the image was written.
        Return False if the compute module did not show up in time.
        """
        interactor.usb_power.set_power(on=False)
        interactor.power_control.power_off_dut(interactor)
        interactor.sleep(self.settle_power_off_s)

        # The usbboot device attaches right after power on: Listen before.
        with interactor.scanner_factory() as scanner:
            scanner.flush_events()
            self.power_on_flash.power_on_flash(interactor)
            destination = self.wait_block_device(interactor, scanner)
        if destination is None:
            return False

        interactor.sleep(self.settle_before_flash_s)
        logger.info(f"{interactor.label}: Flashing started: {destination}")
        with attempt.source.open() as stream:
            interactor.driver.flash_to_disk(destination, stream)
        logger.info(f"{interactor.label}: Flashed!")
        return True

    def wait_block_device(
        self, interactor: DeviceInteractor, scanner: UsbScannerABC
    ) -> BlockDevice | None:
        """
        Return None on timeout or if the usbboot handoff failed.
        """
        config = interactor.config
        try:
            logger.info(f"{interactor.label}: Waiting for compute module")
            event = scanner.expect_event(
                matcher=match_usbboot_attach,
                text_where=interactor.label,
                text_expect="Expect compute module to enter usbboot mode",
                timeout_s=config.usbboot_timeout_s,
                cancel_token=interactor.cancel_token,
            )
            logger.info(f"{interactor.label}: Compute module attached")
            assert isinstance(event.drive, UsbbootDrive)
            if not interactor.usbboot.boot(event.drive):
                return None
            scanner.expect_event(
                matcher=match_detach(event.drive),
                text_where=interactor.label,
                text_expect="Expect usbboot to hand over",
                timeout_s=config.usbboot_timeout_s,
                cancel_token=interactor.cancel_token,
            )
            logger.info(
                f"{interactor.label}: Waiting for compute module to reattach as a block device"
            )
            event = scanner.expect_event(
                matcher=match_block_device_attach(self.description),
                text_where=interactor.label,
                text_expect=f"Expect '{self.description}' to reattach as a block device",
                timeout_s=config.reattach_timeout_s,
                cancel_token=interactor.cancel_token,
            )
        except UsbScannerTimeoutException as e:
            logger.warning(f"{interactor.label}: {e}")
            return None

        assert isinstance(event.drive, BlockDevice)
        logger.info(f"{interactor.label}: Attached {event.drive}")
        return event.drive
