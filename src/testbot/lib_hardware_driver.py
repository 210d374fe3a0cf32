from __future__ import annotations

import abc
import contextlib
import logging
import typing

from .util_baseclasses import InteractorBusyError

if typing.TYPE_CHECKING:
    from .util_pyudev import BlockDevice

logger = logging.getLogger(__file__)

HIGH = 1
LOW = 0


class HardwareDriver(abc.ABC):
    """
    The primitive operations of the testbot rig:
    voltage rail, sd mux, gpio, serial capture and raw media writes.

    The wire protocol towards the rig controller is implemented by subclasses.

    There is exactly one rig. Many DeviceInteractors may reference the
    same driver, but only one of them may be active at any time: see 'claim()'.
    """

    def __init__(self) -> None:
        self._active_label: str | None = None

    @contextlib.contextmanager
    def claim(self, label: str) -> typing.Iterator[None]:
        """
        Mark the driver as used by 'label' while in the context.
        """
        if self._active_label is not None:
            raise InteractorBusyError(
                f"{label}: The testbot is already used by '{self._active_label}'!"
            )
        self._active_label = label
        try:
            yield
        finally:
            self._active_label = None

    @property
    def active_label(self) -> str | None:
        return self._active_label

    @abc.abstractmethod
    def set_vout(self, volts: float) -> None: ...

    @abc.abstractmethod
    def power_on_dut(self) -> None: ...

    @abc.abstractmethod
    def power_off_dut(self) -> None: ...

    @abc.abstractmethod
    def switch_sd_to_dut(self, settle_ms: int) -> None:
        """
        Route the boot media to the DUT and wait 'settle_ms'.
        """

    @abc.abstractmethod
    def switch_sd_to_host(self, settle_ms: int) -> None:
        """
        Route the boot media to the testbot and wait 'settle_ms'.
        """

    @abc.abstractmethod
    def read_vout(self) -> float: ...

    @abc.abstractmethod
    def read_vout_amperage(self) -> float: ...

    @abc.abstractmethod
    def digital_write(self, pin: int, level: int) -> None: ...

    @abc.abstractmethod
    def open_dut_serial(self) -> typing.BinaryIO | None:
        """
        Start capturing the DUT serial output.
        """

    @abc.abstractmethod
    def close_dut_serial(self) -> None: ...

    @abc.abstractmethod
    def flash(self, stream: typing.BinaryIO) -> None:
        """
        Write the uncompressed image to the media currently muxed to the testbot.
        """

    @abc.abstractmethod
    def flash_to_disk(self, destination: BlockDevice, stream: typing.BinaryIO) -> None:
        """
        Write the uncompressed image to a block device attached to the testbot.
        """
