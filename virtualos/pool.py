"""Buffer pool allocator with boundary tags, best-fit search and free-block wiping.

Every buffer lives inside ``memory``, a single bytearray that grows with each
region added to the pool. Buffers are identified by the offset of their first
usable byte.

Each block begins with an 8-byte header of two signed 32-bit fields. The first
is the size of the free block just before it, or 0 when that block is in use.
The second is the block size: positive when the block is free, negative when
it is allocated. Free blocks also hold forward and backward free-list links
(offsets, with ``FREE_LIST`` standing for the list head) right after the
header. Each region ends with a dummy allocated block whose size is
``END_SENTINEL``, so no block ever merges across a region boundary.
"""

from __future__ import annotations

import struct
from collections.abc import Iterator

SIZE_QUANT = 4
HEADER_SIZE = 8
LINKS_SIZE = 8
FREE_HEADER_SIZE = HEADER_SIZE + LINKS_SIZE
MIN_QUANTUM = max(SIZE_QUANT, LINKS_SIZE)
END_SENTINEL = -(1 << 31)
MAX_BLOCK_SIZE = (1 << 31) - 1
WIPE_BYTE = 0x55
FREE_LIST = -1

HEADER = struct.Struct("<ii")
LINKS = struct.Struct("<ii")
_INT = struct.Struct("<i")


class PoolError(ValueError):
    """Raised when the pool is misused: bad sizes or offsets that are not live buffers."""


class BufferPool:
    """A pool of memory regions from which variable-sized buffers are allocated."""

    def __init__(self, size: int) -> None:
        self.memory = bytearray()
        self.regions: list[tuple[int, int]] = []
        self.free_head = FREE_LIST
        self.free_tail = FREE_LIST
        self.add_region(size)

    # -- header and link access -------------------------------------------

    def _prevfree(self, block: int) -> int:
        return _INT.unpack_from(self.memory, block)[0]

    def _bsize(self, block: int) -> int:
        return _INT.unpack_from(self.memory, block + 4)[0]

    def _set_prevfree(self, block: int, value: int) -> None:
        _INT.pack_into(self.memory, block, value)

    def _set_bsize(self, block: int, value: int) -> None:
        _INT.pack_into(self.memory, block + 4, value)

    def _links(self, block: int) -> tuple[int, int]:
        if block == FREE_LIST:
            return self.free_head, self.free_tail
        return LINKS.unpack_from(self.memory, block + HEADER_SIZE)

    def _set_flink(self, block: int, value: int) -> None:
        if block == FREE_LIST:
            self.free_head = value
        else:
            _INT.pack_into(self.memory, block + HEADER_SIZE, value)

    def _set_blink(self, block: int, value: int) -> None:
        if block == FREE_LIST:
            self.free_tail = value
        else:
            _INT.pack_into(self.memory, block + HEADER_SIZE + 4, value)

    def _append_free(self, block: int) -> None:
        tail = self.free_tail
        self._set_flink(block, FREE_LIST)
        self._set_blink(block, tail)
        self.free_tail = block
        self._set_flink(tail, block)

    def _unlink(self, block: int) -> None:
        forward, backward = self._links(block)
        self._set_flink(backward, forward)
        self._set_blink(forward, backward)

    def _iter_free(self) -> Iterator[int]:
        block = self.free_head
        while block != FREE_LIST:
            yield block
            block = self._links(block)[0]

    def _wipe(self, start: int, end: int) -> None:
        if end > start:
            self.memory[start:end] = bytes([WIPE_BYTE]) * (end - start)

    def _allocated_block(self, offset: int) -> int:
        """Return the block header for a live buffer, or raise PoolError."""
        if not isinstance(offset, int):
            raise PoolError(f"buffer offset must be an integer, not {offset!r}")
        target = offset - HEADER_SIZE
        for start, length in self.regions:
            if not start <= target < start + length:
                continue
            block = start
            while block < target:
                size = self._bsize(block)
                if size == END_SENTINEL:
                    break
                block += abs(size)
            if block == target:
                size = self._bsize(block)
                if size < 0 and size != END_SENTINEL:
                    return block
            break
        raise PoolError(f"offset {offset} is not an allocated buffer")

    # -- public interface ---------------------------------------------------

    def add_region(self, size: int) -> int:
        """Add a region of ``size`` bytes (rounded down to the size quantum).

        Returns the offset of the region within ``memory``.
        """
        if not isinstance(size, int):
            raise PoolError(f"region size must be an integer, not {size!r}")
        length = size & ~(SIZE_QUANT - 1) if size > 0 else 0
        if length < FREE_HEADER_SIZE + HEADER_SIZE:
            raise PoolError(f"region of {size} bytes is too small")
        if length - HEADER_SIZE > MAX_BLOCK_SIZE:
            raise PoolError(f"region of {size} bytes is too large")

        start = len(self.memory)
        self.memory.extend(bytes(length))
        self.regions.append((start, length))

        body = length - HEADER_SIZE
        self._set_prevfree(start, 0)
        self._append_free(start)
        self._set_bsize(start, body)
        self._wipe(start + FREE_HEADER_SIZE, start + body)

        sentinel = start + body
        self._set_prevfree(sentinel, body)
        self._set_bsize(sentinel, END_SENTINEL)
        return start

    def allocate(self, size: int) -> int:
        """Allocate a buffer of at least ``size`` bytes and return its offset.

        Raises MemoryError when no free block is large enough.
        """
        if not isinstance(size, int) or size <= 0:
            raise PoolError(f"allocation size must be a positive integer, not {size!r}")

        request = max(size, MIN_QUANTUM)
        request = (request + SIZE_QUANT - 1) & ~(SIZE_QUANT - 1)
        request += HEADER_SIZE

        best = None
        best_size = 0
        for block in self._iter_free():
            block_size = self._bsize(block)
            if block_size >= request and (best is None or block_size < best_size):
                best, best_size = block, block_size
        if best is None:
            raise MemoryError(f"no free block can hold {size} bytes")

        if best_size - request > MIN_QUANTUM + HEADER_SIZE:
            remaining = best_size - request
            allocated = best + remaining
            following = allocated + request
            self._set_bsize(best, remaining)
            self._set_prevfree(allocated, remaining)
            self._set_bsize(allocated, -request)
            self._set_prevfree(following, 0)
            return allocated + HEADER_SIZE

        following = best + best_size
        self._unlink(best)
        self._set_bsize(best, -best_size)
        self._set_prevfree(following, 0)
        return best + HEADER_SIZE

    def allocate_zeroed(self, size: int) -> int:
        """Allocate a buffer and clear its whole usable area to zero."""
        offset = self.allocate(size)
        usable = self.usable_size(offset)
        self.memory[offset:offset + usable] = bytes(usable)
        return offset

    def reallocate(self, offset: int | None, size: int) -> int:
        """Move a buffer into a new one of ``size`` bytes, keeping its contents.

        With ``offset`` None this is a plain allocation. If no space is found
        MemoryError is raised and the original buffer is left untouched.
        """
        old_size = None if offset is None else self.usable_size(offset)
        new_offset = self.allocate(size)
        if offset is None:
            return new_offset
        count = min(size, old_size)
        self.memory[new_offset:new_offset + count] = self.memory[offset:offset + count]
        self.release(offset)
        return new_offset

    def release(self, offset: int) -> None:
        """Return a buffer to the pool, merging it with free neighbours."""
        block = self._allocated_block(offset)
        size = self._bsize(block)
        prevfree = self._prevfree(block)

        if prevfree != 0:
            block -= prevfree
            self._set_bsize(block, self._bsize(block) - size)
        else:
            self._append_free(block)
            self._set_bsize(block, -size)

        following = block + self._bsize(block)
        following_size = self._bsize(following)
        if following_size > 0:
            self._unlink(following)
            self._set_bsize(block, self._bsize(block) + following_size)
            following = block + self._bsize(block)

        merged = self._bsize(block)
        self._wipe(block + FREE_HEADER_SIZE, block + merged)
        self._set_prevfree(following, merged)

    def usable_size(self, offset: int) -> int:
        """Number of bytes the caller may use in the buffer at ``offset``."""
        block = self._allocated_block(offset)
        return -self._bsize(block) - HEADER_SIZE

    def read(self, offset: int, length: int) -> bytes:
        """Read the first ``length`` bytes of a buffer."""
        usable = self.usable_size(offset)
        if not 0 <= length <= usable:
            raise PoolError(f"cannot read {length} bytes from a {usable}-byte buffer")
        return bytes(self.memory[offset:offset + length])

    def write(self, offset: int, data: bytes) -> None:
        """Write ``data`` at the start of a buffer."""
        usable = self.usable_size(offset)
        payload = bytes(data)
        if len(payload) > usable:
            raise PoolError(f"cannot write {len(payload)} bytes into a {usable}-byte buffer")
        self.memory[offset:offset + len(payload)] = payload