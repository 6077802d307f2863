"""Memory manager that serves every allocation from one fixed-size buffer pool."""

from __future__ import annotations

from virtualos.pool import BufferPool, PoolError


class MemoryManager:
    """malloc/calloc/realloc/free over a single pool obtained once at start-up.

    Buffers are identified by their offset in the pool. Allocation failures
    raise MemoryError; misuse of offsets raises PoolError.
    """

    def __init__(self, pool_size: int) -> None:
        self.pool = BufferPool(pool_size)

    def malloc(self, size: int) -> int:
        """Allocate ``size`` bytes and return the buffer offset."""
        return self.pool.allocate(size)

    def calloc(self, num: int, per_size: int) -> int:
        """Allocate ``num`` elements of ``per_size`` bytes, cleared to zero."""
        if not isinstance(num, int) or not isinstance(per_size, int) or num < 0 or per_size < 0:
            raise PoolError(f"invalid element count or size: {num!r} x {per_size!r}")
        return self.pool.allocate_zeroed(num * per_size)

    def realloc(self, offset: int | None, size: int) -> int:
        """Resize a buffer, keeping its contents; None allocates a new one."""
        return self.pool.reallocate(offset, size)

    def free(self, offset: int) -> None:
        """Release a buffer back to the pool."""
        self.pool.release(offset)

    def view(self, offset: int, length: int) -> memoryview:
        """Writable view of the first ``length`` bytes of a buffer."""
        usable = self.pool.usable_size(offset)
        if not isinstance(length, int) or not 0 <= length <= usable:
            raise PoolError(f"cannot view {length!r} bytes of a {usable}-byte buffer")
        return memoryview(self.pool.memory)[offset:offset + length]