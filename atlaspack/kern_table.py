"""
Pair kerning from a raw legacy `kern` table.

Both header flavours are read: the Microsoft one (version 0, 16-bit
counts) and the Apple one (version 1.0, 32-bit counts). Subtable formats 0
(sorted pair list) and 2 (class arrays) are supported; other formats,
vertical, cross-stream and variation subtables are skipped.
"""

from .sfnt import read_i16, read_u16, read_u32


def _subtables(kern: bytes):
    """Yield (format, data offset, subtable offset) for each horizontal subtable."""
    version = read_u16(kern, 0)
    if version == 0:
        count = read_u16(kern, 2) or 0
        offset = 4
        for _ in range(count):
            length = read_u16(kern, offset + 2)
            coverage = read_u16(kern, offset + 4)
            if length is None or coverage is None or length < 6:
                return
            fmt = coverage >> 8
            horizontal = coverage & 0x01
            cross_stream = coverage & 0x04
            if horizontal and not cross_stream:
                yield fmt, offset + 6, offset
            offset += length
    elif version == 1 and read_u16(kern, 2) == 0:
        count = read_u32(kern, 4) or 0
        offset = 8
        for _ in range(count):
            length = read_u32(kern, offset)
            coverage = read_u16(kern, offset + 4)
            if length is None or coverage is None or length < 8:
                return
            fmt = coverage & 0xFF
            vertical = coverage & 0x8000
            cross_stream = coverage & 0x4000
            variation = coverage & 0x2000
            if not (vertical or cross_stream or variation):
                yield fmt, offset + 8, offset
            offset += length


def _format0_value(kern: bytes, data: int, left: int, right: int) -> int | None:
    pair_count = read_u16(kern, data)
    if pair_count is None:
        return None
    key = (left << 16) | right
    lo, hi = 0, pair_count - 1
    while lo <= hi:
        mid = (lo + hi) // 2
        rec = data + 8 + mid * 6
        pair = read_u32(kern, rec)
        if pair is None:
            return None
        if pair == key:
            return read_i16(kern, rec + 4)
        if pair < key:
            lo = mid + 1
        else:
            hi = mid - 1
    return None


def _class_offset(kern: bytes, table: int, glyph_id: int) -> int:
    first = read_u16(kern, table)
    count = read_u16(kern, table + 2)
    if first is None or count is None:
        return 0
    idx = glyph_id - first
    if idx < 0 or idx >= count:
        return 0
    return read_u16(kern, table + 4 + idx * 2) or 0


def _format2_value(kern: bytes, data: int, subtable: int, left: int, right: int) -> int | None:
    # Class table and array offsets are relative to the subtable start.
    left_table = read_u16(kern, data + 2)
    right_table = read_u16(kern, data + 4)
    array = read_u16(kern, data + 6)
    if left_table is None or right_table is None or array is None:
        return None
    left_value = _class_offset(kern, subtable + left_table, left)
    right_value = _class_offset(kern, subtable + right_table, right)
    if left_value < array:
        return None
    return read_i16(kern, subtable + left_value + right_value)


def kern_table_value(kern: bytes, left: int, right: int) -> int:
    """Sum of horizontal kerning for a glyph pair over every subtable, in font units."""
    total = 0
    for fmt, data, subtable in _subtables(kern):
        if fmt == 0:
            value = _format0_value(kern, data, left, right)
        elif fmt == 2:
            value = _format2_value(kern, data, subtable, left, right)
        else:
            value = None
        if value:
            total += value
    return total


def kern_table_pairs(kern: bytes, chars: list[str],
                     glyph_ids: list[int | None]) -> list[tuple[str, str, int]]:
    """Kerning for every ordered pair of `chars`, in font units."""
    pairs = []
    for left, left_gid in zip(chars, glyph_ids):
        if left_gid is None:
            continue
        for right, right_gid in zip(chars, glyph_ids):
            if right_gid is None:
                continue
            value = kern_table_value(kern, left_gid, right_gid)
            if value:
                pairs.append((left, right, value))
    return pairs
