"""
Watches the USB bus of the testbot for two kinds of drives:

* UsbbootDrive: A compute module in its ROM usbboot mode.
* BlockDevice: A mass storage device, for example a compute module
  after the usbboot handoff. System drives are ignored.
"""

from __future__ import annotations

import abc
import dataclasses
import enum
import logging
import re
import select
import syslog
import typing
from collections.abc import Callable
from typing import Any, Self

import pyudev

from .util_baseclasses import TestbotException
from .util_poll import CancelToken, Timebase

logger = logging.getLogger(__file__)

USBBOOT_VENDOR_ID = 0x0A5C
"""
Broadcom
"""
USBBOOT_PRODUCT_IDS = (
    0x2763,  # BCM2837: CM3, CM3+
    0x2764,  # BCM2835: CM1
    0x2711,  # BCM2711: CM4
)
DESCRIPTION_COMPUTE_MODULE = "Compute Module"

_RE_ESCAPED = re.compile(r"\\x(?P<hex>[0-9a-fA-F]{2})")
"""
Input: Compute\\x20Module
Output: Compute Module
"""


class UsbScannerException(TestbotException):
    pass


class UsbScannerTimeoutException(UsbScannerException):
    pass


class UsbAction(enum.StrEnum):
    ATTACH = "attach"
    DETACH = "detach"

    @staticmethod
    def factory(udev_action: str) -> UsbAction | None:
        return {
            "add": UsbAction.ATTACH,
            "remove": UsbAction.DETACH,
        }.get(udev_action, None)


@dataclasses.dataclass(frozen=True, repr=True)
class UsbbootDrive:
    """
    The identity of a drive is its sys_path: It is only valid during one scanner session.
    """

    sys_path: str
    id_vendor: int
    id_product: int

    def __str__(self) -> str:
        return f"usbboot 0x{self.id_vendor:04X}:0x{self.id_product:04X} {self.sys_path}"


@dataclasses.dataclass(frozen=True, repr=True)
class BlockDevice:
    sys_path: str
    device_node: str
    description: str

    def __str__(self) -> str:
        return f"block device {self.device_node} '{self.description}'"


UsbDrive = UsbbootDrive | BlockDevice


@dataclasses.dataclass(frozen=True, repr=True)
class UsbEvent:
    action: UsbAction
    drive: UsbDrive


UsbEventMatcher = Callable[[UsbEvent], bool]


def decode_udev_escaped(text: str) -> str:
    return _RE_ESCAPED.sub(lambda m: chr(int(m.group("hex"), 16)), text).strip()


def parse_product(product: str) -> tuple[int, int] | None:
    """
    Example 'product': a5c/2764/1
    Return: (0x0A5C, 0x2764)
    """
    parts = product.split("/")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0], 16), int(parts[1], 16)
    except ValueError:
        return None


def block_device_description(properties: typing.Mapping[str, str]) -> str:
    model_enc = properties.get("ID_MODEL_ENC", None)
    if model_enc is not None:
        return decode_udev_escaped(model_enc)
    return properties.get("ID_MODEL", "").replace("_", " ").strip()


def classify_device(device: Any) -> UsbEvent | None:
    """
    Convert a udev event into a UsbEvent.
    Return None if the event is not relevant.

    'device' is a 'pyudev.Device' as returned by 'pyudev.Monitor.poll()'.
    """
    action = UsbAction.factory(device.action)
    if action is None:
        return None

    properties = device.properties
    if device.subsystem == "usb" and device.device_type == "usb_device":
        ids = parse_product(properties.get("PRODUCT", ""))
        if ids is None:
            return None
        id_vendor, id_product = ids
        if id_vendor != USBBOOT_VENDOR_ID:
            return None
        if id_product not in USBBOOT_PRODUCT_IDS:
            return None
        return UsbEvent(
            action=action,
            drive=UsbbootDrive(
                sys_path=device.sys_path,
                id_vendor=id_vendor,
                id_product=id_product,
            ),
        )

    if device.subsystem == "block" and device.device_type == "disk":
        if properties.get("ID_BUS", None) != "usb":
            # Never touch the system drives
            return None
        return UsbEvent(
            action=action,
            drive=BlockDevice(
                sys_path=device.sys_path,
                device_node=device.device_node,
                description=block_device_description(properties),
            ),
        )

    return None


def match_usbboot_attach(event: UsbEvent) -> bool:
    return event.action == UsbAction.ATTACH and isinstance(event.drive, UsbbootDrive)


def match_detach(drive: UsbDrive) -> UsbEventMatcher:
    def matcher(event: UsbEvent) -> bool:
        return event.action == UsbAction.DETACH and event.drive == drive

    return matcher


def match_block_device_attach(description: str) -> UsbEventMatcher:
    def matcher(event: UsbEvent) -> bool:
        if event.action != UsbAction.ATTACH:
            return False
        if not isinstance(event.drive, BlockDevice):
            return False
        if event.drive.description != description:
            logger.info(f"Drive is '{event.drive.description}'")
            return False
        return True

    return matcher


class UsbScannerABC(abc.ABC):
    """
    Usage:

    with scanner:
        event = scanner.expect_event(...)
    """

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()

    @abc.abstractmethod
    def start(self) -> None: ...

    @abc.abstractmethod
    def stop(self) -> None: ...

    def flush_events(self) -> None:
        """
        Drop the events which arrived before the stimulus.
        """

    @abc.abstractmethod
    def expect_event(
        self,
        matcher: UsbEventMatcher,
        text_where: str,
        text_expect: str,
        timeout_s: float | None,
        cancel_token: CancelToken | None = None,
    ) -> UsbEvent:
        """
        Return the first event accepted by 'matcher'.
        timeout_s=None: Wait forever.

        Raise UsbScannerTimeoutException
        """


class UsbScanner(UsbScannerABC):
    def __init__(
        self, timebase: Timebase | None = None, poll_interval_s: float = 0.5
    ) -> None:
        self._timebase = Timebase() if timebase is None else timebase
        self.poll_interval_s = poll_interval_s
        self._context: pyudev.Context | None = None
        self._monitor: pyudev.Monitor | None = None
        self._epoll: select.epoll | None = None

    def start(self) -> None:
        assert self._monitor is None, "Scanner already started"
        try:
            self._context = pyudev.Context()
            self._context.log_priority = syslog.LOG_NOTICE
            self._monitor = pyudev.Monitor.from_netlink(self._context)
            self._monitor.filter_by(subsystem="usb", device_type="usb_device")
            self._monitor.filter_by(subsystem="block", device_type="disk")
            self._monitor.start()
        except (OSError, pyudev.DeviceNotFoundError) as e:
            self._monitor = None
            raise UsbScannerException(f"Failed to start the usb scanner: {e!r}") from e
        self._epoll = select.epoll()
        self._epoll.register(self._monitor.fileno(), select.POLLIN)
        logger.debug("usb scanner started")

    def stop(self) -> None:
        if self._epoll is not None:
            self._epoll.close()
            self._epoll = None
        self._monitor = None
        self._context = None
        logger.debug("usb scanner stopped")

    def flush_events(self) -> None:
        assert self._monitor is not None, "Scanner not started"
        flushed_events_count = 0
        while self._monitor.poll(timeout=0) is not None:
            flushed_events_count += 1
        if flushed_events_count > 0:
            logger.debug(f"{flushed_events_count} events flushed")

    def expect_event(
        self,
        matcher: UsbEventMatcher,
        text_where: str,
        text_expect: str,
        timeout_s: float | None,
        cancel_token: CancelToken | None = None,
    ) -> UsbEvent:
        assert self._monitor is not None, "Scanner not started"
        assert self._epoll is not None

        begin_s = self._timebase.monotonic()
        while True:
            duration_s = self._timebase.monotonic() - begin_s
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(text_where)
            if (timeout_s is not None) and (duration_s > timeout_s):
                raise UsbScannerTimeoutException(
                    f"{text_where}: {text_expect}: duration_s {duration_s:0.3f}s of {timeout_s:0.3f}s."
                )
            events = self._epoll.poll(timeout=self.poll_interval_s)
            if len(events) == 0:
                continue

            for fileno, _ in events:
                if fileno != self._monitor.fileno():
                    continue
                device = self._monitor.poll(timeout=0)
                if device is None:
                    continue
                event = classify_device(device)
                if event is None:
                    continue
                if matcher(event):
                    logger.debug(f"{text_where}: matched: {event.action} {event.drive}")
                    return event
                logger.debug(f"{text_where}: not matched: {event.action} {event.drive}")


def do_udev_monitor(print_cb: Callable[[str], None] = print) -> None:
    """
    This does something similar as: udevadm monitor -p
    But only for the usbboot and block devices relevant to flashing.
    """
    print_cb("Monitoring usbboot and block device events...")
    with UsbScanner() as scanner:
        while True:
            event = scanner.expect_event(
                matcher=lambda event: True,
                text_where="monitor",
                text_expect="any event",
                timeout_s=None,
            )
            print_cb(f"{event.action}: {event.drive}")
