from collections import deque

import pytest

from virtualos.protocol.common import ResponseError, SerialPort, append_crc
from virtualos.protocol.slave import ModbusSlave, SlaveWork

ADDRESS = 0x01


class FakeLine:
    def __init__(self, init_ok=True):
        self.incoming = deque()
        self.sent = []
        self.init_ok = init_ok

    def port(self):
        return SerialPort(init=lambda: self.init_ok, read=self.read, write=self.sent.append)

    def read(self, size):
        return self.incoming.popleft() if self.incoming else b""


def make_slave(handler, start=0, end=99):
    line = FakeLine()
    slave = ModbusSlave(line.port(), ADDRESS, [SlaveWork(start, end, handler)])
    return line, slave


def read_handler(func, reg, count, registers):
    for index in range(count):
        registers[index] = 0x1234 + index
    return ResponseError.NONE


READ_ONE = bytes.fromhex("010300000001840A")


def test_read_request_is_answered():
    line, slave = make_slave(read_handler)
    line.incoming.append(READ_ONE)
    reply = slave.poll()
    assert reply == append_crc(bytes([0x01, 0x03, 0x02, 0x12, 0x34]))
    assert line.sent == [reply]


def test_write_request_stores_values_and_echoes():
    seen = {}

    def handler(func, reg, count, registers):
        seen["args"] = (func, reg, count, list(registers[:count]))
        return ResponseError.NONE

    line, slave = make_slave(handler)
    line.incoming.append(append_crc(bytes([0x01, 0x10, 0x00, 0x01, 0x00, 0x02, 0x04, 0x00, 0x0A, 0x01, 0x02])))
    reply = slave.poll()
    assert seen["args"] == (0x10, 1, 2, [0x000A, 0x0102])
    assert reply == append_crc(bytes([0x01, 0x10, 0x00, 0x01, 0x00, 0x02]))


def test_other_address_is_ignored():
    line, slave = make_slave(read_handler)
    line.incoming.append(append_crc(bytes([0x02, 0x03, 0x00, 0x00, 0x00, 0x01])))
    assert slave.poll() is None
    assert line.sent == []


def test_bad_crc_is_ignored():
    line, slave = make_slave(read_handler)
    line.incoming.append(READ_ONE[:-1] + bytes([READ_ONE[-1] ^ 0xFF]))
    assert slave.poll() is None
    assert line.sent == []


def test_split_frame_is_reassembled():
    line, slave = make_slave(read_handler)
    line.incoming.extend([READ_ONE[:3], READ_ONE[3:]])
    assert slave.poll() is None
    assert slave.poll() == append_crc(bytes([0x01, 0x03, 0x02, 0x12, 0x34]))


def test_leading_garbage_is_skipped():
    line, slave = make_slave(read_handler)
    line.incoming.append(b"\x01\x07\xff" + READ_ONE)
    assert slave.poll() == append_crc(bytes([0x01, 0x03, 0x02, 0x12, 0x34]))


def test_second_frame_in_chunk_waits_for_next_data():
    line, slave = make_slave(read_handler)
    line.incoming.append(READ_ONE + READ_ONE)
    first = slave.poll()
    assert first == append_crc(bytes([0x01, 0x03, 0x02, 0x12, 0x34]))
    assert slave.poll() is None
    line.incoming.append(b"\xee")
    assert slave.poll() == first
    assert len(line.sent) == 2


def test_no_matching_handler_replies_busy():
    line, slave = make_slave(read_handler, start=10, end=20)
    line.incoming.append(READ_ONE)
    assert slave.poll() == append_crc(bytes([0x01, 0x83, ResponseError.BUSY]))


def test_handler_error_code_is_returned():
    line, slave = make_slave(lambda func, reg, count, registers: ResponseError.ILLEGAL_DATA_ADDRESS)
    line.incoming.append(READ_ONE)
    assert slave.poll() == append_crc(bytes([0x01, 0x83, ResponseError.ILLEGAL_DATA_ADDRESS]))


def test_write_error_uses_write_exception_code():
    line, slave = make_slave(lambda func, reg, count, registers: ResponseError.DEVICE_FAILURE)
    line.incoming.append(append_crc(bytes([0x01, 0x10, 0x00, 0x00, 0x00, 0x01, 0x02, 0x00, 0x05])))
    assert slave.poll() == append_crc(bytes([0x01, 0x90, ResponseError.DEVICE_FAILURE]))


def test_write_with_wrong_byte_count_is_ignored():
    line, slave = make_slave(read_handler)
    line.incoming.append(append_crc(bytes([0x01, 0x10, 0x00, 0x00, 0x00, 0x02, 0x03, 0x00, 0x05, 0x06])))
    assert slave.poll() is None
    assert line.sent == []


def test_oversized_chunk_is_dropped():
    line, slave = make_slave(read_handler)
    line.incoming.extend([b"\x00" * 600, READ_ONE])
    assert slave.poll() is None
    assert slave.poll() == append_crc(bytes([0x01, 0x03, 0x02, 0x12, 0x34]))


def test_failed_port_init_raises():
    line = FakeLine(init_ok=False)
    with pytest.raises(OSError):
        ModbusSlave(line.port(), ADDRESS, [])


def test_invalid_address_raises():
    line = FakeLine()
    with pytest.raises(ValueError):
        ModbusSlave(line.port(), 300, [])