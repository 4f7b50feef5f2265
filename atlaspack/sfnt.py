"""
Big-endian read-at-offset helpers for OpenType table bytes.

Every reader returns None when the read would run past the end of the
buffer (or starts at a negative offset), so table walkers can treat
truncated or corrupt data as "absent" instead of raising.
"""


def read_u8(data: bytes, offset: int) -> int | None:
    if offset < 0 or offset + 1 > len(data):
        return None
    return data[offset]


def read_u16(data: bytes, offset: int) -> int | None:
    if offset < 0 or offset + 2 > len(data):
        return None
    return (data[offset] << 8) | data[offset + 1]


def read_i16(data: bytes, offset: int) -> int | None:
    value = read_u16(data, offset)
    if value is None:
        return None
    return value - 0x10000 if value & 0x8000 else value


def read_u32(data: bytes, offset: int) -> int | None:
    if offset < 0 or offset + 4 > len(data):
        return None
    return int.from_bytes(data[offset:offset + 4], "big")


def read_tag(data: bytes, offset: int) -> bytes | None:
    """Read a 4-byte table/feature/script tag."""
    if offset < 0 or offset + 4 > len(data):
        return None
    return bytes(data[offset:offset + 4])


def coverage_index(data: bytes, coverage: int, glyph_id: int) -> int | None:
    """
    Look up a glyph in a Coverage table.

    Returns the glyph's coverage index, or None if the glyph is not covered
    or the table is unreadable. Formats 1 (glyph array) and 2 (ranges) are
    supported.
    """
    fmt = read_u16(data, coverage)
    count = read_u16(data, coverage + 2)
    if fmt is None or count is None:
        return None

    if fmt == 1:
        for i in range(count):
            gid = read_u16(data, coverage + 4 + i * 2)
            if gid is None:
                return None
            if gid == glyph_id:
                return i
        return None

    if fmt == 2:
        for i in range(count):
            rec = coverage + 4 + i * 6
            start = read_u16(data, rec)
            end = read_u16(data, rec + 2)
            start_index = read_u16(data, rec + 4)
            if start is None or end is None or start_index is None:
                return None
            if start <= glyph_id <= end:
                return start_index + (glyph_id - start)
        return None

    return None


def class_def_value(data: bytes, class_def: int, glyph_id: int) -> int | None:
    """
    Look up a glyph's class in a ClassDef table (formats 1 and 2).

    Glyphs not listed belong to class 0. Returns None only when the table
    header itself cannot be read.
    """
    fmt = read_u16(data, class_def)
    if fmt is None:
        return None

    if fmt == 1:
        start = read_u16(data, class_def + 2)
        count = read_u16(data, class_def + 4)
        if start is None or count is None:
            return None
        idx = glyph_id - start
        if idx < 0 or idx >= count:
            return 0
        return read_u16(data, class_def + 6 + idx * 2)

    if fmt == 2:
        count = read_u16(data, class_def + 2)
        if count is None:
            return None
        for i in range(count):
            rec = class_def + 4 + i * 6
            start = read_u16(data, rec)
            end = read_u16(data, rec + 2)
            cls = read_u16(data, rec + 4)
            if start is None or end is None or cls is None:
                return 0
            if start <= glyph_id <= end:
                return cls
        return 0

    return 0
