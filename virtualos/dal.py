"""Descriptor-based access to registered devices: open, read, write, seek, ioctl."""

from __future__ import annotations

from enum import Enum
from typing import Any

from virtualos.driver import Device, DriverRegistry

DEFAULT_RESERVED_FDS = 3


class DalError(Exception):
    """Base of device-access errors; also raised for invalid seeks."""


class DeviceNotFoundError(DalError):
    """No device is registered under the given name."""


class DescriptorOverflowError(DalError):
    """Every descriptor is in use."""


class InvalidDescriptorError(DalError):
    """The descriptor is reserved, out of range or not open."""


class OperationUnsupportedError(DalError):
    """The device's driver does not provide the requested operation."""


class Whence(Enum):
    """Reference point for lseek."""

    HEAD = 0
    SET = 1  # relative to the current offset
    TAIL = 2


class DeviceAccess:
    """Table of descriptors onto the devices of a registry.

    The first ``reserved`` descriptors are never handed out.
    """

    def __init__(self, registry: DriverRegistry, max_devices: int | None = None,
                 reserved: int = DEFAULT_RESERVED_FDS) -> None:
        if max_devices is None:
            max_devices = registry.capacity
        if max_devices < 0 or reserved < 0:
            raise ValueError("descriptor counts must not be negative")
        self.registry = registry
        self.reserved = reserved
        self._slots: list[Device | None] = [None] * (reserved + max_devices)
        self._used = [index < reserved for index in range(reserved + max_devices)]

    def _alloc(self) -> int:
        for fd in range(self.reserved, len(self._slots)):
            if not self._used[fd]:
                self._used[fd] = True
                return fd
        raise DescriptorOverflowError("no free descriptor")

    def _free(self, fd: int) -> None:
        if self.reserved <= fd < len(self._slots):
            self._used[fd] = False
            self._slots[fd] = None

    def _device(self, fd: int) -> Device:
        if not isinstance(fd, int) or not self.reserved <= fd < len(self._slots) or not self._used[fd]:
            raise InvalidDescriptorError(f"invalid descriptor {fd!r}")
        device = self._slots[fd]
        if device is None:
            raise InvalidDescriptorError(f"invalid descriptor {fd!r}")
        return device

    @staticmethod
    def _operation(device: Device, name: str) -> Any:
        operations = device.file.operations if device.file is not None else None
        operation = getattr(operations, name, None) if operations is not None else None
        if operation is None:
            raise OperationUnsupportedError(f"device {device.name!r} does not support {name}")
        return operation

    @staticmethod
    def _clip(device: Device, length: int) -> int:
        if device.size > 0:
            remaining = device.size - device.offset
            if 0 <= remaining < length:
                return remaining
        return length

    def open(self, name: str) -> int:
        """Open the named device and return a new descriptor."""
        device = self.registry.find(name)
        if device is None:
            raise DeviceNotFoundError(f"no device named {name!r}")
        fd = self._alloc()
        try:
            opener = self._operation(device, "open")
            opener(device.file)
        except BaseException:
            self._free(fd)
            raise
        self._slots[fd] = device
        return fd

    def close(self, fd: int) -> None:
        """Close a descriptor; it stays open if the driver's close raises."""
        device = self._device(fd)
        self._operation(device, "close")(device.file)
        self._free(fd)

    def read(self, fd: int, length: int) -> bytes:
        """Read up to ``length`` bytes from the current offset, advancing it."""
        device = self._device(fd)
        reader = self._operation(device, "read")
        data = bytes(reader(device.file, self._clip(device, length), device.offset))
        device.offset += len(data)
        return data

    def write(self, fd: int, data: bytes) -> int:
        """Write ``data`` at the current offset, clipped to the device size."""
        device = self._device(fd)
        writer = self._operation(device, "write")
        payload = bytes(data)
        payload = payload[:self._clip(device, len(payload))]
        written = writer(device.file, payload, device.offset)
        device.offset += written
        return written

    def ioctl(self, fd: int, cmd: int, arg: Any = None) -> Any:
        """Pass a control command to the driver and return its result."""
        device = self._device(fd)
        return self._operation(device, "ioctl")(device.file, cmd, arg)

    def lseek(self, fd: int, offset: int, whence: Whence | int) -> int:
        """Move the device offset and return it.

        Devices without a fixed size are left alone and 0 is returned.
        """
        device = self._device(fd)
        if device.size == 0:
            return 0
        try:
            whence = Whence(whence)
        except ValueError:
            raise DalError(f"invalid whence {whence!r}") from None

        if whence is Whence.HEAD:
            if offset < 0:
                raise DalError(f"negative offset {offset}")
            dest = offset
        else:
            base = device.offset if whence is Whence.SET else device.size
            dest = base + offset
            if not 0 <= dest <= device.size:
                raise DalError(f"offset {dest} outside device of {device.size} bytes")
        device.offset = dest
        return dest