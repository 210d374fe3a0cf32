"""
Flasher DUTs boot a flasher image from external media (SD card, USB thumb drive).
The flasher image provisions the internal storage and then powers the DUT off.

FlasherFlash:
  Writes the flasher image to the external media and waits for the DUT to power off.

FlasherCompletionWait:
  IDLE -> EXTERNAL_FLASH -> AWAIT_BOOT -> GRACE_PERIOD -> AWAIT_COMPLETION -> DETACH -> DONE

The power signal is noisy: An 'off' reading is only accepted
if it is confirmed by a DebounceWindow.
"""

from __future__ import annotations

import logging

from .lib_device_interactor import (
    CompletionWait,
    DeviceInteractor,
    FlashState,
    FlashStrategy,
    flash_image,
)
from .util_constants import SETTLE_MUX_MS
from .util_image import ImageSource

logger = logging.getLogger(__file__)


class DebounceWindow:
    """
    'off' is stable if 'tries' consecutive samples, 'interval_s' apart, read off.
    Any sample not reading off (on or unavailable) discards the window.
    """

    def __init__(self, tries: int, interval_s: float) -> None:
        assert isinstance(tries, int)
        assert tries > 0
        self.tries = tries
        self.interval_s = interval_s

    def confirm_off(self, interactor: DeviceInteractor) -> bool:
        for offcount in range(self.tries):
            interactor.sleep(self.interval_s)
            result = interactor.probe_dut_power()
            if not result.is_off:
                logger.info(
                    f"{interactor.label}: DUT stayed off for {offcount} checks, expected: {self.tries}. Now {result.text}."
                )
                return False
        logger.info(f"{interactor.label}: DUT stayed off for {self.tries} checks")
        return True


class FlasherCompletionWait(CompletionWait):
    def wait_internal_flash(self, interactor: DeviceInteractor) -> None:
        """
        Power on the DUT and wait for the OS to be provisioned onto internal media
        """
        self.boot_flasher(interactor)
        self.await_boot(interactor)
        self.grace_period(interactor)
        self.await_completion(interactor)
        self.detach(interactor)

    def boot_flasher(self, interactor: DeviceInteractor) -> None:
        """
        Boot the DUT from the external media.
        """
        interactor.power_control.power_off_dut(interactor)
        interactor.driver.switch_sd_to_dut(SETTLE_MUX_MS)
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.sleep(interactor.config.pre_power_settle_s)

        logger.info(f"{interactor.label}: Booting DUT with the flasher image")
        interactor.power_control.power_on_dut(interactor)

    def await_boot(self, interactor: DeviceInteractor) -> None:
        config = interactor.config
        interactor.set_flash_state(FlashState.AWAIT_BOOT)
        budget = interactor.budget(
            timeout_s=config.boot_timeout_s,
            text_expect="Expect DUT to power on with the flasher image",
        )
        while True:
            budget.check()
            logger.info(f"{interactor.label}: Waiting for DUT to be on")
            result = interactor.probe_dut_power()
            budget.sleep(config.boot_poll_s)
            if result.is_on:
                return

    def grace_period(self, interactor: DeviceInteractor) -> None:
        interactor.set_flash_state(FlashState.GRACE_PERIOD)
        interactor.sleep(interactor.config.grace_period_s)

    def await_completion(self, interactor: DeviceInteractor) -> None:
        """
        Wait for the DUT to power down: The flasher finished provisioning.
        """
        config = interactor.config
        interactor.set_flash_state(FlashState.AWAIT_COMPLETION)
        debounce_window = DebounceWindow(
            tries=config.poll_tries, interval_s=config.poll_interval_s
        )
        budget = interactor.budget(
            timeout_s=config.completion_timeout_s,
            text_expect="Expect DUT to power off after provisioning",
        )
        kernel_booted = False
        while True:
            budget.check()
            budget.sleep(config.completion_poll_s)
            logger.info(f"{interactor.label}: Waiting for DUT to be off")
            result = interactor.probe_dut_power()
            kernel_booted = self._log_diagnostics(interactor, kernel_booted)
            if not result.is_off:
                continue

            # Occasionally the DUT appears to be powered down, but it isn't.
            logger.info(f"{interactor.label}: Detected DUT has powered off - confirming...")
            if debounce_window.confirm_off(interactor):
                return

    def _log_diagnostics(self, interactor: DeviceInteractor, kernel_booted: bool) -> bool:
        """
        Return True once the diagnostic probe signalled on.
        """
        probe = interactor.spec.diagnostic_probe
        if probe is None:
            return kernel_booted
        if kernel_booted:
            logger.info(f"{interactor.label}: DUT is on and the kernel booted")
            return True
        result = probe.check(interactor)
        logger.debug(f"{interactor.label}: {probe.LABEL} is {result.text}")
        return result.is_on

    def detach(self, interactor: DeviceInteractor) -> None:
        interactor.set_flash_state(FlashState.DETACH)
        logger.info(f"{interactor.label}: Internally flashed - powering off DUT")
        interactor.power_control.power_off_dut(interactor)
        interactor.driver.switch_sd_to_host(SETTLE_MUX_MS)


class FlasherFlash(FlashStrategy):
    LABEL = "flasher"

    def flash(self, interactor: DeviceInteractor, source: ImageSource) -> None:
        interactor.set_flash_state(FlashState.EXTERNAL_FLASH)
        flash_image(interactor, source)

        # Wait for the DUT to self-shutdown after the flasher provisioned the internal media
        interactor.run_completion_wait()

        # Detach the external media from the DUT
        if interactor.flash_state != FlashState.DETACH:
            interactor.set_flash_state(FlashState.DETACH)
        interactor.driver.switch_sd_to_host(SETTLE_MUX_MS)
        interactor.set_flash_state(FlashState.DONE)
