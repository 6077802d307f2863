"""Device registry: drivers register named devices with file operations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

DEFAULT_CAPACITY = 16
DEFAULT_MAX_NAME_LEN = 16


class DriverError(Exception):
    """Raised when a device cannot be registered."""


@dataclass
class FileOperations:
    """Callbacks a driver provides; any of them may be left out.

    ``open(file)`` and ``close(file)`` raise to report failure.
    ``read(file, length, offset)`` returns the bytes read.
    ``write(file, data, offset)`` returns the number of bytes written.
    ``ioctl(file, cmd, arg)`` returns whatever the driver chooses.
    """

    open: Callable[[DriverFile], Any] | None = None
    close: Callable[[DriverFile], Any] | None = None
    read: Callable[[DriverFile, int, int], bytes] | None = None
    write: Callable[[DriverFile, bytes, int], int] | None = None
    ioctl: Callable[[DriverFile, int, Any], Any] | None = None


@dataclass
class DriverFile:
    """The file side of a device: its operations and driver-private data."""

    operations: FileOperations | None = None
    private: Any = None


@dataclass
class Device:
    """A registered device. ``size`` of 0 means the device has no fixed size."""

    file: DriverFile = field(default_factory=DriverFile)
    size: int = 0
    offset: int = 0
    name: str = ""


class DriverRegistry:
    """Named devices, at most ``capacity`` of them."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, max_name_len: int = DEFAULT_MAX_NAME_LEN) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, not {capacity!r}")
        if max_name_len < 2:
            raise ValueError(f"max_name_len must be at least 2, not {max_name_len!r}")
        self.capacity = capacity
        self.max_name_len = max_name_len
        self._devices: dict[str, Device] = {}

    def register(
        self,
        init: Callable[[Device], bool],
        operations: FileOperations | None,
        name: str,
    ) -> Device:
        """Create a device, let ``init`` set it up, and store it under ``name``.

        Names of ``max_name_len - 1`` characters or more are cut to that length.
        Raises DriverError if ``init`` fails, the name is taken or the registry is full.
        """
        device = Device(file=DriverFile(operations=operations))
        if not init(device):
            raise DriverError(f"initialisation of device {name!r} failed")

        limit = self.max_name_len - 1
        key = name[:limit] if len(name) >= limit else name
        if key in self._devices:
            raise DriverError(f"device {key!r} is already registered")
        if len(self._devices) >= self.capacity:
            raise DriverError(f"registry is full ({self.capacity} devices)")
        device.name = key
        self._devices[key] = device
        return device

    def find(self, name: str) -> Device | None:
        """Return the device registered under ``name``, or None."""
        return self._devices.get(name)

    def device_names(self) -> list[str]:
        """Names of all registered devices."""
        return list(self._devices)

    def fill_device_names(self, limit: int) -> str:
        """All device names, each followed by CRLF, keeping within ``limit`` characters."""
        if limit <= 0:
            return ""
        parts = []
        remaining = limit
        for name in self._devices:
            needed = len(name) + 2
            if needed > remaining:
                break
            parts.append(name + "\r\n")
            remaining -= needed
        return "".join(parts)

    def set_private(self, device: Device | None, private: Any) -> None:
        """Attach driver-private data to a device's file."""
        if device is None or device.file is None:
            return
        device.file.private = private

    def get_private(self, name: str) -> Any:
        """Private data of the named device, or None."""
        device = self.find(name)
        if device is None or device.file is None:
            return None
        return device.file.private


def show_device(registry: DriverRegistry, argv: list[str], buf_size: int) -> bytes:
    """Shell command listing all devices; empty output on bad use or overflow."""
    if len(argv) != 1:
        return b""
    message = registry.fill_device_names(registry.capacity * registry.max_name_len).encode()
    if len(message) > buf_size:
        return b""
    return message