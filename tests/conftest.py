"""
Replaces the testbot hardware: No test touches real hardware.

* FakeDriver: Records all calls in order.
* FakeTimebase: A simulated clock. 'sleep()' advances 'monotonic()'.
* ScriptedProbe: Returns scripted power readings.
* FakeUsbBus: Feeds scripted usb events into FakeUsbScanners.
* FakeUsbbootHandoff: Records the rpiboot calls.
"""

from __future__ import annotations

import dataclasses
import typing

import pytest

from testbot.lib_device_interactor import DeviceInteractor
from testbot.lib_devices import DICT_DEVICE_SPECS, DeviceType
from testbot.lib_hardware_driver import HardwareDriver
from testbot.util_poll import CancelToken, PollConfig, Timebase
from testbot.util_probe import CompletionProbe, ProbeResult
from testbot.util_pyudev import (
    BlockDevice,
    UsbEvent,
    UsbbootDrive,
    UsbEventMatcher,
    UsbScannerABC,
    UsbScannerTimeoutException,
)
from testbot.util_usb_power import UsbHubPower
from testbot.util_usbboot import UsbbootHandoff

Call = tuple[typing.Any, ...]


class FakeDriver(HardwareDriver):
    def __init__(
        self, currents_a: list[float] | None = None, vout_v: float = 0.0
    ) -> None:
        super().__init__()
        self.calls: list[Call] = []
        self.currents_a = [0.0] if currents_a is None else list(currents_a)
        self.amperage_reads = 0
        self.vout_v = vout_v
        self.flashed: bytes | None = None
        self.flashed_to: BlockDevice | None = None

    def set_vout(self, volts: float) -> None:
        self.calls.append(("set_vout", volts))

    def power_on_dut(self) -> None:
        self.calls.append(("power_on_dut",))

    def power_off_dut(self) -> None:
        self.calls.append(("power_off_dut",))

    def switch_sd_to_dut(self, settle_ms: int) -> None:
        self.calls.append(("switch_sd_to_dut", settle_ms))

    def switch_sd_to_host(self, settle_ms: int) -> None:
        self.calls.append(("switch_sd_to_host", settle_ms))

    def read_vout(self) -> float:
        return self.vout_v

    def read_vout_amperage(self) -> float:
        """
        Returns the scripted currents, the last one is repeated forever.
        """
        self.amperage_reads += 1
        if len(self.currents_a) > 1:
            return self.currents_a.pop(0)
        return self.currents_a[0]

    def digital_write(self, pin: int, level: int) -> None:
        self.calls.append(("digital_write", pin, level))

    def open_dut_serial(self) -> typing.BinaryIO | None:
        self.calls.append(("open_dut_serial",))
        return None

    def close_dut_serial(self) -> None:
        self.calls.append(("close_dut_serial",))

    def flash(self, stream: typing.BinaryIO) -> None:
        self.flashed = stream.read()
        self.calls.append(("flash",))

    def flash_to_disk(self, destination: BlockDevice, stream: typing.BinaryIO) -> None:
        self.flashed = stream.read()
        self.flashed_to = destination
        self.calls.append(("flash_to_disk", destination.device_node))


class FakeTimebase(Timebase):
    def __init__(self) -> None:
        self.now_s = 0.0
        self.sleeps_s: list[float] = []

    def monotonic(self) -> float:
        return self.now_s

    def sleep(self, duration_s: float, cancel_token: CancelToken | None = None) -> None:
        self.sleeps_s.append(duration_s)
        self.now_s += duration_s


ON = ProbeResult.ok(on=True)
OFF = ProbeResult.ok(on=False)
UNAVAILABLE = ProbeResult.unavailable(reason="scripted")


class ScriptedProbe(CompletionProbe):
    """
    Returns the scripted results, the last one is repeated forever.
    """

    LABEL = "scripted"

    def __init__(self, results: list[ProbeResult]) -> None:
        assert len(results) > 0
        self.results = list(results)
        self.count = 0

    def check(self, interactor: DeviceInteractor) -> ProbeResult:
        self.count += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class FakeUsbHubPower(UsbHubPower):
    def __init__(self, calls: list[Call]) -> None:
        super().__init__()
        self.calls = calls

    def set_power(self, on: bool) -> bool:
        self.calls.append(("usb_power", on))
        return True


class FakeUsbbootHandoff(UsbbootHandoff):
    def __init__(self, calls: list[Call], ok: bool = True) -> None:
        super().__init__()
        self.calls = calls
        self.ok = ok

    def boot(self, drive: UsbbootDrive) -> bool:
        self.calls.append(("usbboot", drive.sys_path))
        return self.ok


class FakeUsbBus:
    """
    The scripted events are shared by all scanner sessions.
    'None' in 'events': The scanner times out at this point.
    'calls': Scanner starts and matched events are recorded here.
    """

    def __init__(
        self,
        timebase: FakeTimebase,
        events: list[UsbEvent | None],
        calls: list[Call] | None = None,
    ) -> None:
        self.timebase = timebase
        self.events = list(events)
        self.calls: list[Call] = [] if calls is None else calls
        self.timeouts_s: list[float | None] = []
        self.sessions = 0

    def scanner(self) -> FakeUsbScanner:
        return FakeUsbScanner(bus=self)


class FakeUsbScanner(UsbScannerABC):
    def __init__(self, bus: FakeUsbBus) -> None:
        self.bus = bus
        self.started = False

    def start(self) -> None:
        assert not self.started
        self.started = True
        self.bus.sessions += 1
        self.bus.calls.append(("scanner_start",))

    def stop(self) -> None:
        self.started = False

    def expect_event(
        self,
        matcher: UsbEventMatcher,
        text_where: str,
        text_expect: str,
        timeout_s: float | None,
        cancel_token: CancelToken | None = None,
    ) -> UsbEvent:
        assert self.started
        while len(self.bus.events) > 0:
            event = self.bus.events.pop(0)
            if event is None:
                break
            if matcher(event):
                self.bus.calls.append(("usb_event", event.action))
                return event
        self.bus.timeouts_s.append(timeout_s)
        if timeout_s is not None:
            self.bus.timebase.now_s += timeout_s
        raise UsbScannerTimeoutException(f"{text_where}: {text_expect}")


@dataclasses.dataclass
class Rig:
    driver: FakeDriver
    timebase: FakeTimebase
    usb_bus: FakeUsbBus
    cancel_token: CancelToken
    usbboot: FakeUsbbootHandoff

    def interactor(
        self,
        dut_type: DeviceType,
        probe: CompletionProbe | None = None,
        config: PollConfig | None = None,
        **spec_changes: typing.Any,
    ) -> DeviceInteractor:
        """
        'probe': Replaces the completion probe of the DUT type.
        'spec_changes': Replaces fields of the DeviceSpec.
        """
        spec = DICT_DEVICE_SPECS[dut_type]
        if probe is not None:
            spec_changes["completion_probe"] = probe
        if len(spec_changes) > 0:
            spec = dataclasses.replace(spec, **spec_changes)
        return DeviceInteractor(
            spec=spec,
            driver=self.driver,
            config=config,
            timebase=self.timebase,
            cancel_token=self.cancel_token,
            usb_power=FakeUsbHubPower(calls=self.driver.calls),
            scanner_factory=self.usb_bus.scanner,
            usbboot=self.usbboot,
        )


@pytest.fixture
def rig() -> Rig:
    driver = FakeDriver()
    timebase = FakeTimebase()
    return Rig(
        driver=driver,
        timebase=timebase,
        usb_bus=FakeUsbBus(timebase=timebase, events=[], calls=driver.calls),
        cancel_token=CancelToken(),
        usbboot=FakeUsbbootHandoff(calls=driver.calls),
    )
