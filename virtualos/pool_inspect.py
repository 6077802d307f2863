"""Read-only inspection of a BufferPool: block walks, statistics and validation."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from virtualos.pool import (
    END_SENTINEL,
    FREE_HEADER_SIZE,
    FREE_LIST,
    HEADER,
    HEADER_SIZE,
    LINKS,
    WIPE_BYTE,
    BufferPool,
)


@dataclass(frozen=True)
class BlockInfo:
    """One block of a pool region, as seen in its header."""

    region: int
    offset: int
    size: int
    free: bool
    prevfree: int

    @property
    def data_offset(self) -> int:
        """Offset of the first byte a caller may use in this block."""
        return self.offset + HEADER_SIZE


@dataclass(frozen=True)
class PoolStats:
    """Allocation statistics of a pool.

    ``current_allocated`` counts allocated blocks including their headers;
    ``total_free`` and ``max_free`` are taken over the free list.
    """

    current_allocated: int
    total_free: int
    max_free: int
    free_count: int
    allocated_count: int


def _links(pool: BufferPool, block: int) -> tuple[int, int]:
    if block == FREE_LIST:
        return pool.free_head, pool.free_tail
    return LINKS.unpack_from(pool.memory, block + HEADER_SIZE)


def _info(pool: BufferPool, region: int, block: int) -> BlockInfo:
    prevfree, bsize = HEADER.unpack_from(pool.memory, block)
    return BlockInfo(region=region, offset=block, size=abs(bsize), free=bsize > 0, prevfree=prevfree)


def _region_of(pool: BufferPool, block: int) -> int:
    for index, (start, length) in enumerate(pool.regions):
        if start <= block < start + length:
            return index
    return -1


def iter_blocks(pool: BufferPool) -> Iterator[BlockInfo]:
    """Yield every block of every region in ascending memory order.

    The end sentinel of each region is not yielded.
    """
    for index, (start, length) in enumerate(pool.regions):
        block = start
        end = start + length
        while block + HEADER_SIZE <= end:
            _, bsize = HEADER.unpack_from(pool.memory, block)
            if bsize == END_SENTINEL or bsize == 0:
                break
            yield _info(pool, index, block)
            block += abs(bsize)


def free_blocks(pool: BufferPool) -> Iterator[BlockInfo]:
    """Yield the blocks on the free list, in list order."""
    block = pool.free_head
    seen = set()
    while block != FREE_LIST and block not in seen:
        seen.add(block)
        yield _info(pool, _region_of(pool, block), block)
        block = _links(pool, block)[0]


def stats(pool: BufferPool) -> PoolStats:
    """Compute the pool's allocation statistics."""
    allocated = [block.size for block in iter_blocks(pool) if not block.free]
    free = [block.size for block in free_blocks(pool)]
    return PoolStats(
        current_allocated=sum(allocated),
        total_free=sum(free),
        max_free=max(free, default=0),
        free_count=len(free),
        allocated_count=len(allocated),
    )


def _free_block_ok(pool: BufferPool, block: int, size: int) -> bool:
    forward, backward = _links(pool, block)
    if _links(pool, backward)[0] != block or _links(pool, forward)[1] != block:
        return False
    if size > FREE_HEADER_SIZE:
        body = pool.memory[block + FREE_HEADER_SIZE:block + size]
        if body.count(WIPE_BYTE) != len(body):
            return False
    return True


def validate(pool: BufferPool) -> bool:
    """Check every region for broken headers, bad free-list links and overwritten free space."""
    for start, length in pool.regions:
        block = start
        end = start + length
        while True:
            if block + HEADER_SIZE > end:
                return False
            _, bsize = HEADER.unpack_from(pool.memory, block)
            if bsize == END_SENTINEL:
                break
            if bsize == 0:
                return False
            if bsize > 0 and not _free_block_ok(pool, block, bsize):
                return False
            block += abs(bsize)
    return True