import struct

import pytest

from virtualos.pool import FREE_HEADER_SIZE, HEADER_SIZE, BufferPool, PoolError
from virtualos.pool_dump import dump_buffer, dump_bytes, dump_pool
from virtualos.pool_inspect import free_blocks, iter_blocks


def test_dump_bytes_short_line():
    assert dump_bytes(b"ABC") == ["41 42 43".ljust(48) + "   ABC"]


def test_dump_bytes_empty():
    assert dump_bytes(b"") == []


def test_dump_bytes_non_printable_shown_as_space():
    line = dump_bytes(b"\x00A\x7f")[0]
    assert line.endswith("   " + " A ")
    assert line.startswith("00 41 7F ")


def test_dump_bytes_full_line_width():
    lines = dump_bytes(bytes(range(0x41, 0x51)))
    assert len(lines) == 1
    assert lines[0].endswith("ABCDEFGHIJKLMNOP")
    assert len(lines[0]) == 48 + 3 + 16


def test_dump_bytes_skips_repeated_lines():
    lines = dump_bytes(bytes(64))
    assert len(lines) == 3
    assert "(2 lines [32 bytes] identical to above line skipped)" in lines[1]
    assert lines[0] == lines[2]


def test_dump_bytes_single_duplicate_not_collapsed():
    lines = dump_bytes(bytes(48))
    assert len(lines) == 3
    assert lines[0] == lines[1] == lines[2]
    assert not any("skipped" in line for line in lines)


def test_dump_bytes_distinct_lines():
    data = b"a" * 16 + b"b" * 16 + b"c" * 5
    lines = dump_bytes(data)
    assert len(lines) == 3
    assert lines[2].endswith("ccccc")


def test_dump_buffer_free_block_is_wipe_pattern():
    pool = BufferPool(512)
    block = next(iter(free_blocks(pool)))
    lines = dump_buffer(pool, block.data_offset)
    assert lines
    assert lines[0].startswith("55 55 ")
    assert lines[0].endswith("U" * 16)


def test_dump_buffer_rejects_unknown_offset():
    pool = BufferPool(512)
    offset = pool.allocate(16)
    with pytest.raises(PoolError):
        dump_buffer(pool, offset + 1)


def test_dump_pool_fresh_pool_single_free_block():
    pool = BufferPool(1024)
    (block,) = list(iter_blocks(pool))
    assert dump_pool(pool) == [f"Free block:       size {block.size:6d} bytes."]


def test_dump_pool_lists_blocks_in_memory_order():
    pool = BufferPool(1024)
    pool.allocate(40)
    lines = dump_pool(pool)
    blocks = list(iter_blocks(pool))
    assert len(lines) == len(blocks) == 2
    assert lines[0].startswith("Free block:")
    assert lines[1].startswith("Allocated buffer: size")


def test_dump_pool_dump_alloc_adds_contents():
    pool = BufferPool(1024)
    offset = pool.allocate_zeroed(20)
    pool.write(offset, b"XYZ")
    plain = dump_pool(pool)
    detailed = dump_pool(pool, dump_alloc=True)
    assert len(detailed) > len(plain)
    assert any(line.startswith("58 59 5A") for line in detailed)


def test_dump_pool_dump_free_adds_contents():
    pool = BufferPool(256)
    plain = dump_pool(pool)
    detailed = dump_pool(pool, dump_free=True)
    assert len(plain) == 1
    assert len(detailed) > 1
    assert detailed[1].startswith("55 55")


def test_dump_pool_reports_overstored_free_block():
    pool = BufferPool(256)
    block = next(iter(free_blocks(pool)))
    pool.memory[block.offset + FREE_HEADER_SIZE + 3] = 0x00
    lines = dump_pool(pool)
    assert "(Contents of above free block have been overstored.)" in lines
    assert len(lines) > 2


def test_dump_pool_reports_bad_links():
    pool = BufferPool(256)
    pool.allocate(16)
    second = pool.add_region(256)
    struct.pack_into("<i", pool.memory, second + HEADER_SIZE + 4, second)
    lines = dump_pool(pool)
    assert any(line.endswith("(Bad free list links)") for line in lines)