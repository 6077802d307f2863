"""Text dumps of buffer contents and of every block in a BufferPool."""

from __future__ import annotations

from virtualos.pool import (
    FREE_HEADER_SIZE,
    FREE_LIST,
    HEADER_SIZE,
    LINKS,
    WIPE_BYTE,
    BufferPool,
    PoolError,
)
from virtualos.pool_inspect import BlockInfo, iter_blocks

_LINE = 16


def _printable(byte: int) -> str:
    return chr(byte) if 0x20 <= byte <= 0x7E else " "


def _format_line(chunk: bytes) -> str:
    hex_part = "".join(f"{byte:02X} " for byte in chunk)
    ascii_part = "".join(_printable(byte) for byte in chunk)
    return f"{hex_part:<48}   {ascii_part}"


def dump_bytes(data: bytes) -> list[str]:
    """Format ``data`` as hex/ASCII lines of 16 bytes.

    Runs of two or more lines identical to the one before are collapsed into
    a single note saying how many lines were skipped.
    """
    data = bytes(data)
    lines: list[str] = []
    pos = 0
    remaining = len(data)
    while remaining > 0:
        count = min(remaining, _LINE)
        lines.append(_format_line(data[pos:pos + count]))
        pos += count
        remaining -= count
        dupes = 0
        while remaining > _LINE and data[pos - _LINE:pos] == data[pos:pos + _LINE]:
            dupes += 1
            pos += _LINE
            remaining -= _LINE
        if dupes > 1:
            lines.append(
                f"     ({dupes} lines [{dupes * _LINE} bytes] identical to above line skipped)"
            )
        elif dupes == 1:
            pos -= _LINE
            remaining += _LINE
    return lines


def _find_block(pool: BufferPool, offset: int) -> BlockInfo:
    for block in iter_blocks(pool):
        if block.data_offset == offset:
            return block
    raise PoolError(f"offset {offset} is not the start of a buffer")


def _block_contents(pool: BufferPool, block: BlockInfo) -> bytes:
    if block.free:
        start = block.offset + FREE_HEADER_SIZE
        end = block.offset + block.size
    else:
        start = block.data_offset
        end = block.offset + block.size
    return bytes(pool.memory[start:max(start, end)])


def dump_buffer(pool: BufferPool, offset: int) -> list[str]:
    """Dump the contents of the allocated or free buffer whose data starts at ``offset``."""
    return dump_bytes(_block_contents(pool, _find_block(pool, offset)))


def _links(pool: BufferPool, block: int) -> tuple[int, int]:
    if block == FREE_LIST:
        return pool.free_head, pool.free_tail
    return LINKS.unpack_from(pool.memory, block + HEADER_SIZE)


def _links_ok(pool: BufferPool, block: int) -> bool:
    forward, backward = _links(pool, block)
    return _links(pool, backward)[0] == block and _links(pool, forward)[1] == block


def _overstored(pool: BufferPool, block: BlockInfo) -> bool:
    if block.size <= FREE_HEADER_SIZE:
        return False
    body = pool.memory[block.offset + FREE_HEADER_SIZE:block.offset + block.size]
    return body.count(WIPE_BYTE) != len(body)


def dump_pool(pool: BufferPool, dump_alloc: bool = False, dump_free: bool = False) -> list[str]:
    """List every block of the pool in memory order.

    Allocated contents are dumped when ``dump_alloc`` is true, free contents
    when ``dump_free`` is true. Free blocks whose wipe pattern has been
    overwritten are always dumped.
    """
    lines: list[str] = []
    for block in iter_blocks(pool):
        if not block.free:
            lines.append(f"Allocated buffer: size {block.size:6d} bytes.")
            if dump_alloc:
                lines.extend(dump_bytes(_block_contents(pool, block)))
            continue
        note = "" if _links_ok(pool, block.offset) else "  (Bad free list links)"
        lines.append(f"Free block:       size {block.size:6d} bytes.{note}")
        if _overstored(pool, block):
            lines.append("(Contents of above free block have been overstored.)")
            lines.extend(dump_bytes(_block_contents(pool, block)))
        elif dump_free:
            lines.extend(dump_bytes(_block_contents(pool, block)))
    return lines