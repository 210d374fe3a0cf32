from __future__ import annotations

import dataclasses
import logging

from .lib_device_interactor import DeviceInteractor

logger = logging.getLogger(__file__)

MAX_DEVIATION = 0.08
"""
The measured voltage may exceed the target voltage by 8%.
"""
MIN_CURRENT_A = 0.05
SETTLE_S = 1.0


@dataclasses.dataclass(frozen=True, repr=True)
class PowerReport:
    target_v: float
    vout_v: float
    current_a: float

    @property
    def voltage_ok(self) -> bool:
        return self.target_v <= self.vout_v <= self.target_v * (1.0 + MAX_DEVIATION)

    @property
    def current_ok(self) -> bool:
        return self.current_a > MIN_CURRENT_A

    @property
    def ok(self) -> bool:
        return self.voltage_ok and self.current_ok

    @property
    def text(self) -> str:
        return (
            f"target {self.target_v:0.2f}V, "
            f"vout {self.vout_v:0.2f}V ({'ok' if self.voltage_ok else 'out of range'}), "
            f"current {self.current_a:0.3f}A ({'ok' if self.current_ok else 'too low'})"
        )


def verify_power(interactor: DeviceInteractor) -> PowerReport:
    """
    Verify that the testbot is able to power the DUT.

    The DUT is left powered on.
    """
    assert isinstance(interactor, DeviceInteractor)
    driver = interactor.driver
    with driver.claim(interactor.label):
        driver.set_vout(interactor.power_voltage)
        interactor.power_control.power_on_dut(interactor)
        interactor.sleep(SETTLE_S)
        report = PowerReport(
            target_v=interactor.power_voltage,
            vout_v=driver.read_vout(),
            current_a=driver.read_vout_amperage(),
        )
    if report.ok:
        logger.info(f"[COLOR_SUCCESS]{interactor.label}: Power ok: {report.text}")
    else:
        logger.warning(f"[COLOR_FAILED]{interactor.label}: Power failed: {report.text}")
    return report
