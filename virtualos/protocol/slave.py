"""Modbus RTU slave: parses requests from a byte stream and answers them."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum, auto

from virtualos.protocol.common import (
    CRC_BYTES,
    CRC_INIT,
    EXCEPTION_FLAG,
    FRAME_BYTES_MAX,
    MAX_READ_REG_NUM,
    RX_BUFFER_SIZE,
    FunctionCode,
    ResponseError,
    SerialPort,
    append_crc,
    crc16_update,
    reg_count_valid,
)

_READ_INFO_LEN = 4
_WRITE_INFO_LEN = 5
_REGISTER_SLOTS = max(MAX_READ_REG_NUM, FRAME_BYTES_MAX // 2)

Handler = Callable[[int, int, int, list], int]


@dataclass
class SlaveWork:
    """A handler for the registers ``start`` to ``end`` inclusive.

    ``handler(func, reg, count, registers)`` returns a ResponseError code.
    For reads it fills ``registers[:count]``; for writes those entries hold
    the values received.
    """

    start: int
    end: int
    handler: Handler | None


class _RxState(Enum):
    ADDR = auto()
    FUNC = auto()
    INFO = auto()
    DATA = auto()
    CRC = auto()


def _covers(work: SlaveWork, reg: int, count: int, func: int) -> bool:
    return (
        reg_count_valid(count, func)
        and work.start <= reg
        and reg + count - 1 <= work.end
    )


class ModbusSlave:
    """A slave at ``address`` answering register reads and writes through ``work_table``."""

    def __init__(self, port: SerialPort, address: int, work_table: Iterable[SlaveWork] = ()) -> None:
        if not 0 <= address <= 0xFF:
            raise ValueError(f"slave address must fit in a byte, not {address!r}")
        for name in ("init", "read", "write"):
            if not callable(getattr(port, name, None)):
                raise TypeError(f"serial port lacks a callable {name!r}")
        self.port = port
        self.address = address
        self.work_table = list(work_table)

        self._rx = bytearray()
        self._forward = 0
        self._state = _RxState.ADDR
        self._crc = CRC_INIT
        self._func = 0
        self._pdu = bytearray()
        self._pdu_len = 0
        self._registers = [0] * _REGISTER_SLOTS

        if not port.init():
            raise OSError("serial port initialisation failed")

    # -- receive window ----------------------------------------------------

    def _rebase(self) -> None:
        """Drop the first buffered byte and rescan from there."""
        self._state = _RxState.ADDR
        del self._rx[:1]
        self._forward = 0

    def _flush(self) -> None:
        """Discard everything consumed by a complete frame."""
        self._state = _RxState.ADDR
        del self._rx[:self._forward]
        self._forward = 0

    def _extension_len(self) -> int:
        length = self._pdu[4]
        count = self._pdu[2] << 8 | self._pdu[3]
        if length != count * 2 or length > FRAME_BYTES_MAX:
            return 0
        return length

    def _parse(self) -> bool:
        """Advance the parser over buffered bytes; True once a valid frame is complete."""
        while self._forward < len(self._rx):
            c = self._rx[self._forward]
            self._forward += 1
            state = self._state

            if state is _RxState.ADDR:
                if c == self.address:
                    self._state = _RxState.FUNC
                    self._crc = crc16_update(CRC_INIT, c)
                else:
                    self._rebase()

            elif state is _RxState.FUNC:
                if c in (FunctionCode.READ_HOLDING_REGISTERS, FunctionCode.WRITE_MULTIPLE_REGISTERS):
                    self._state = _RxState.INFO
                    self._func = c
                    self._pdu = bytearray()
                    self._pdu_len = (
                        _READ_INFO_LEN if c == FunctionCode.READ_HOLDING_REGISTERS else _WRITE_INFO_LEN
                    )
                    self._crc = crc16_update(self._crc, c)
                else:
                    self._rebase()

            elif state is _RxState.INFO:
                self._pdu.append(c)
                self._crc = crc16_update(self._crc, c)
                if len(self._pdu) >= self._pdu_len:
                    if self._func == FunctionCode.READ_HOLDING_REGISTERS:
                        self._pdu_len += CRC_BYTES
                        self._state = _RxState.CRC
                    else:
                        extra = self._extension_len()
                        if not extra:
                            self._rebase()
                        else:
                            self._pdu_len += extra
                            self._state = _RxState.DATA

            elif state is _RxState.DATA:
                self._pdu.append(c)
                self._crc = crc16_update(self._crc, c)
                if len(self._pdu) >= self._pdu_len:
                    self._pdu_len += CRC_BYTES
                    self._state = _RxState.CRC

            elif state is _RxState.CRC:
                self._pdu.append(c)
                if len(self._pdu) >= self._pdu_len:
                    received = self._pdu[-1] << 8 | self._pdu[-2]
                    if self._crc == received:
                        self._flush()
                        return True
                    self._rebase()
        return False

    # -- request handling --------------------------------------------------

    def _handle(self, reg: int, count: int) -> int:
        for work in self.work_table:
            if work.handler is not None and _covers(work, reg, count, self._func):
                return int(work.handler(self._func, reg, count, self._registers)) & 0xFF
        return ResponseError.BUSY

    def _reply(self) -> bytes:
        reg = self._pdu[0] << 8 | self._pdu[1]
        count = self._pdu[2] << 8 | self._pdu[3]
        frame = bytearray([self.address])

        if self._func == FunctionCode.WRITE_MULTIPLE_REGISTERS:
            length = self._pdu[4]
            data = self._pdu[_WRITE_INFO_LEN:_WRITE_INFO_LEN + length]
            for index in range(len(data) // 2):
                self._registers[index] = data[2 * index] << 8 | data[2 * index + 1]

        error = self._handle(reg, count)
        if error != ResponseError.NONE:
            frame += bytes([(self._func | EXCEPTION_FLAG) & 0xFF, error])
        elif self._func == FunctionCode.READ_HOLDING_REGISTERS:
            frame += bytes([FunctionCode.READ_HOLDING_REGISTERS, (count << 1) & 0xFF])
            for value in self._registers[:count]:
                frame += (value & 0xFFFF).to_bytes(2, "big")
        else:
            frame += bytes([FunctionCode.WRITE_MULTIPLE_REGISTERS])
            frame += reg.to_bytes(2, "big") + count.to_bytes(2, "big")
        return append_crc(frame)

    def poll(self) -> bytes | None:
        """Read from the port, answer a complete request if there is one.

        Returns the reply sent, or None when nothing was answered.
        """
        data = bytes(self.port.read(FRAME_BYTES_MAX))
        if not data:
            return None
        if len(data) > RX_BUFFER_SIZE - len(self._rx):
            return None
        self._rx += data

        if not self._parse():
            return None

        reply = self._reply()
        self.port.write(reply)
        return reply