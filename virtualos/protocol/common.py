"""Modbus RTU definitions shared by the master and the slave."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

FRAME_BYTES_MAX = 256
RX_BUFFER_SIZE = FRAME_BYTES_MAX * 2
CRC_BYTES = 2
REG_BYTES = 2
REG_LEN_BYTES = 2
MAX_READ_REG_NUM = 125
MAX_WRITE_REG_NUM = 123
EXCEPTION_FLAG = 0x80
CRC_INIT = 0xFFFF
_CRC_POLY = 0xA001


class FunctionCode(IntEnum):
    """Function codes understood by this stack."""

    READ_HOLDING_REGISTERS = 0x03
    WRITE_MULTIPLE_REGISTERS = 0x10


class ResponseError(IntEnum):
    """Exception codes carried in an error response."""

    NONE = 0x00
    ILLEGAL_FUNCTION = 0x01
    ILLEGAL_DATA_ADDRESS = 0x02
    ILLEGAL_DATA_VALUE = 0x03
    DEVICE_FAILURE = 0x04
    ACKNOWLEDGE = 0x05
    BUSY = 0x06


@dataclass
class SerialPort:
    """Callbacks to the serial line.

    ``init()`` prepares the port and returns whether it succeeded,
    ``read(size)`` returns up to ``size`` received bytes (empty when none)
    and ``write(data)`` sends a frame.
    """

    init: Callable[[], bool]
    read: Callable[[int], bytes]
    write: Callable[[bytes], Any]

    def __post_init__(self) -> None:
        for name in ("init", "read", "write"):
            if not callable(getattr(self, name)):
                raise TypeError(f"serial port callback {name!r} must be callable")


def crc16_update(crc: int, byte: int) -> int:
    """Feed one byte into a Modbus CRC-16."""
    crc ^= byte & 0xFF
    for _ in range(8):
        if crc & 1:
            crc = (crc >> 1) ^ _CRC_POLY
        else:
            crc >>= 1
    return crc & 0xFFFF


def crc16(data: Iterable[int], crc: int = CRC_INIT) -> int:
    """Modbus CRC-16 of ``data``, continuing from ``crc``."""
    for byte in bytes(data):
        crc = crc16_update(crc, byte)
    return crc


def append_crc(frame: Iterable[int]) -> bytes:
    """Return ``frame`` followed by its CRC, low byte first."""
    body = bytes(frame)
    crc = crc16(body)
    return body + bytes((crc & 0xFF, crc >> 8))


def reg_count_valid(count: int, func: int) -> bool:
    """Whether ``count`` registers may be transferred by function ``func``."""
    if func == FunctionCode.READ_HOLDING_REGISTERS:
        return 1 <= count <= MAX_READ_REG_NUM
    if func == FunctionCode.WRITE_MULTIPLE_REGISTERS:
        return 1 <= count <= MAX_WRITE_REG_NUM
    return False