# virtualos

Building blocks for small embedded-style runtimes, in plain Python with no
dependencies outside the standard library.

## What is inside

- `virtualos.pool` – `BufferPool`, a best-fit buffer allocator over a single
  `bytearray` (`pool.memory`). Buffers are identified by the integer offset of
  their first usable byte. `allocate`, `allocate_zeroed`, `reallocate`,
  `release`, `usable_size`, `read` and `write` work on those offsets;
  `add_region` grows the pool. Released buffers merge with free neighbours and
  free space is wiped with the byte `0x55`. Misuse raises `PoolError`; running
  out of space raises `MemoryError`.
- `virtualos.pool_inspect` – `iter_blocks` and `free_blocks` yield `BlockInfo`
  records, `stats` returns a `PoolStats`, and `validate` checks headers,
  free-list links and the wipe pattern of free blocks.
- `virtualos.pool_dump` – `dump_bytes`, `dump_buffer` and `dump_pool` return
  hex/ASCII listings as lists of lines; runs of repeated lines are collapsed.
- `virtualos.memory` – `MemoryManager(pool_size)` with `malloc`, `calloc`,
  `realloc`, `free` and `view` (a writable `memoryview` of a buffer).
- `virtualos.driver` – `DriverRegistry` stores named `Device` objects, each
  with a `DriverFile` holding its `FileOperations` and private data.
  `register` raises `DriverError` when the init callback fails, the name is
  taken or the registry is full; over-long names are cut. `show_device`
  returns the registered names, CRLF-separated, the way a shell command would.
- `virtualos.dal` – `DeviceAccess` hands out file descriptors onto registered
  devices (the first `reserved` descriptors, 3 by default, are never used) and
  offers `open`, `close`, `read`, `write`, `ioctl` and `lseek` with `Whence`.
  Reads and writes are clipped to a device's `size` when it is non-zero.
  Failures raise `DeviceNotFoundError`, `DescriptorOverflowError`,
  `InvalidDescriptorError`, `OperationUnsupportedError` or `DalError`.
- `virtualos.protocol.common` – Modbus RTU helpers: `crc16_update`, `crc16`,
  `append_crc`, `reg_count_valid`, the `FunctionCode` and `ResponseError`
  enums, and `SerialPort`, a dataclass of `init`, `read` and `write`
  callbacks.
- `virtualos.protocol.slave` – `ModbusSlave(port, address, work_table)`
  answers read-holding-registers (0x03) and write-multiple-registers (0x10)
  requests. Each `SlaveWork(start, end, handler)` covers a register range; the
  handler is called as `handler(func, reg, count, registers)` and returns a
  `ResponseError` code. Requests no handler covers are answered with `BUSY`.
  The parser copes with frames split across reads or preceded by noise.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
from virtualos.memory import MemoryManager

mm = MemoryManager(4096)
offset = mm.malloc(16)
mm.view(offset, 4)[:] = b"abcd"
offset = mm.realloc(offset, 64)   # contents are kept
mm.free(offset)
```

```python
from virtualos.protocol.common import ResponseError, SerialPort, append_crc
from virtualos.protocol.slave import ModbusSlave, SlaveWork

incoming = [append_crc(bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x02]))]
sent = []

def read_registers(func, reg, count, registers):
    registers[:count] = range(reg, reg + count)
    return ResponseError.NONE

port = SerialPort(
    init=lambda: True,
    read=lambda size: incoming.pop(0) if incoming else b"",
    write=sent.append,
)
slave = ModbusSlave(port, 0x01, [SlaveWork(0, 99, read_registers)])
reply = slave.poll()   # the reply frame, also passed to port.write
```

Polling is driven by the caller: call `ModbusSlave.poll()` from your own loop.

## What it does not do

- Only the slave side of Modbus RTU is provided; there is no master that
  sends requests, tracks timeouts or retries.
- There is no aligned allocator on top of the buffer pool.
- Nothing talks to real serial hardware; the `SerialPort` callbacks are
  yours to supply.