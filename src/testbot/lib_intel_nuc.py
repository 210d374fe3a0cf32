"""
Intel NUC: Boots the flasher image from the usb media in the mux.

The flasher provisions the internal storage and powers the NUC down.
Completion is detected by the current drawn from the rail dropping below a threshold.
This is the only wait with a hard timeout: FlashTimeoutError.
"""

from __future__ import annotations

import logging

from .lib_device_interactor import (
    CompletionWait,
    DeviceInteractor,
    FlashState,
    PowerOnSequence,
)
from .util_constants import SETTLE_MUX_MS

logger = logging.getLogger(__file__)

SETTLE_MUX_NUC_MS = 5000


class CurrentDrawCompletionWait(CompletionWait):
    def wait_internal_flash(self, interactor: DeviceInteractor) -> None:
        config = interactor.config
        interactor.set_flash_state(FlashState.AWAIT_COMPLETION)
        budget = interactor.budget(
            timeout_s=config.current_timeout_s,
            text_expect="Timed out while waiting for DUT to flash",
        )
        current_a = interactor.driver.read_vout_amperage()
        logger.info(f"{interactor.label}: Initial current measurement: {current_a}A")

        while current_a > config.current_threshold_a:
            budget.check()
            budget.sleep(config.current_poll_s)
            current_a = interactor.driver.read_vout_amperage()
            logger.info(
                f"{interactor.label}: Awaiting DUT to flash and power down, current: {current_a}A"
            )

        interactor.set_flash_state(FlashState.DETACH)
        logger.info(f"{interactor.label}: Internally flashed - powering off DUT")
        interactor.power_control.power_off_dut(interactor)
        interactor.driver.switch_sd_to_host(SETTLE_MUX_MS)
        # The usb media is disconnected: The NUC will now boot from internal storage
        interactor.power_control.power_on_dut(interactor)
        logger.info(f"{interactor.label}: Powering on DUT - should now boot from internal storage")


class NucPowerOn(PowerOnSequence):
    """
    Boots the flasher from the mux, waits for the provisioning
    and then boots the internal storage.
    """

    def __init__(self, settle_before_measure_s: float = 5.0) -> None:
        self.settle_before_measure_s = settle_before_measure_s

    def power_on(self, interactor: DeviceInteractor) -> None:
        interactor.power_control.power_off_dut(interactor)
        interactor.driver.set_vout(interactor.power_voltage)
        interactor.driver.switch_sd_to_dut(SETTLE_MUX_NUC_MS)
        interactor.power_control.power_on_dut(interactor)

        # Measuring too early may power off again during flashing!
        interactor.sleep(self.settle_before_measure_s)
        interactor.run_completion_wait()

    @property
    def description(self) -> str:
        return "off, vout, mux-to-dut, on, wait current drop, off, mux-to-host, on"
