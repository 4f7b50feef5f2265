"""
Pair kerning from a raw OpenType GPOS table.

Only what a bitmap font atlas needs is walked: the script/feature lists to
find the `kern` lookups, and PairPos (lookup type 2, optionally wrapped in an
Extension lookup, type 9) subtables in formats 1 and 2. Horizontal
components of the value records are summed; vertical components and device
tables are skipped.

All offsets are absolute positions in the GPOS byte string. Unreadable
structures are treated as absent, never as errors.
"""

from .sfnt import class_def_value, coverage_index, read_tag, read_u16, read_u32, read_i16

PAIR_ADJUSTMENT = 2
EXTENSION = 9
NO_REQUIRED_FEATURE = 0xFFFF

# ValueFormat flags
X_PLACEMENT = 0x0001
Y_PLACEMENT = 0x0002
X_ADVANCE = 0x0004
Y_ADVANCE = 0x0008
X_PLA_DEVICE = 0x0010
Y_PLA_DEVICE = 0x0020
X_ADV_DEVICE = 0x0040
Y_ADV_DEVICE = 0x0080


def value_record_size(value_format: int) -> int:
    """Size in bytes of a ValueRecord with the given format."""
    return bin(value_format & 0xFF).count("1") * 2


def read_value_record_x(gpos: bytes, offset: int, value_format: int) -> int | None:
    """Return X placement + X advance of a ValueRecord, or None if truncated."""
    total = 0
    cursor = offset
    for flag in (X_PLACEMENT, Y_PLACEMENT, X_ADVANCE, Y_ADVANCE,
                 X_PLA_DEVICE, Y_PLA_DEVICE, X_ADV_DEVICE, Y_ADV_DEVICE):
        if not value_format & flag:
            continue
        if flag in (X_PLACEMENT, X_ADVANCE):
            value = read_i16(gpos, cursor)
            if value is None:
                return None
            total += value
        cursor += 2
    return total


def _pick_script(gpos: bytes, script_list: int) -> int | None:
    """Offset of the DFLT script, else the first latn script, else the first script."""
    script_count = read_u16(gpos, script_list) or 0
    latn = None
    first = None
    for i in range(script_count):
        rec = script_list + 2 + i * 6
        tag = read_tag(gpos, rec)
        off = read_u16(gpos, rec + 4)
        if tag is None or off is None:
            break
        script = script_list + off
        if tag == b"DFLT":
            return script
        if tag == b"latn" and latn is None:
            latn = script
        if first is None:
            first = script
    return latn if latn is not None else first


def _pick_lang_sys(gpos: bytes, script: int) -> int | None:
    """Default LangSys of a script, else its first non-null LangSys record."""
    default_off = read_u16(gpos, script)
    if default_off:
        return script + default_off

    lang_sys_count = read_u16(gpos, script + 2) or 0
    for i in range(lang_sys_count):
        off = read_u16(gpos, script + 4 + i * 6 + 4)
        if off:
            return script + off
    return None


def select_kern_feature_lookups(gpos: bytes, script_list: int, feature_list: int) -> list[int]:
    """
    Collect lookup indices of the `kern` features reachable from the chosen
    script's language system (the required feature included).
    """
    script = _pick_script(gpos, script_list)
    if script is None:
        return []
    lang_sys = _pick_lang_sys(gpos, script)
    if lang_sys is None:
        return []

    # LangSys: lookupOrder, requiredFeatureIndex, featureIndexCount, featureIndices[]
    required = read_u16(gpos, lang_sys + 2)
    feature_count = read_u16(gpos, lang_sys + 4) or 0
    feature_indices = []
    for i in range(feature_count):
        idx = read_u16(gpos, lang_sys + 6 + i * 2)
        if idx is None:
            break
        feature_indices.append(idx)
    if required is not None and required != NO_REQUIRED_FEATURE:
        feature_indices.append(required)

    list_feature_count = read_u16(gpos, feature_list) or 0
    lookup_indices = []
    for feature_index in feature_indices:
        if feature_index >= list_feature_count:
            continue
        rec = feature_list + 2 + feature_index * 6
        if read_tag(gpos, rec) != b"kern":
            continue
        off = read_u16(gpos, rec + 4)
        if off is None:
            continue
        feature = feature_list + off
        lookup_count = read_u16(gpos, feature + 2) or 0
        for i in range(lookup_count):
            lookup_index = read_u16(gpos, feature + 4 + i * 2)
            if lookup_index is None:
                break
            lookup_indices.append(lookup_index)
    return lookup_indices


def all_lookup_indices(gpos: bytes, lookup_list: int) -> list[int]:
    return list(range(read_u16(gpos, lookup_list) or 0))


def pair_pos_x(gpos: bytes, subtable: int, left: int, right: int) -> int | None:
    """
    Horizontal adjustment for (left, right) from one PairPos subtable.

    Returns 0 when the subtable does not cover the pair, None when the
    subtable is truncated.
    """
    pos_format = read_u16(gpos, subtable)
    coverage_off = read_u16(gpos, subtable + 2)
    value_format_1 = read_u16(gpos, subtable + 4)
    value_format_2 = read_u16(gpos, subtable + 6)
    if None in (pos_format, coverage_off, value_format_1, value_format_2):
        return None
    size_1 = value_record_size(value_format_1)
    size_2 = value_record_size(value_format_2)

    if pos_format == 1:
        pair_set_count = read_u16(gpos, subtable + 8) or 0
        left_index = coverage_index(gpos, subtable + coverage_off, left)
        if left_index is None or left_index >= pair_set_count:
            return 0
        pair_set_off = read_u16(gpos, subtable + 10 + left_index * 2)
        if not pair_set_off:
            return 0
        pair_set = subtable + pair_set_off
        pair_value_count = read_u16(gpos, pair_set) or 0
        stride = 2 + size_1 + size_2
        for i in range(pair_value_count):
            record = pair_set + 2 + i * stride
            second = read_u16(gpos, record)
            if second is None:
                return None
            if second != right:
                continue
            v1 = read_value_record_x(gpos, record + 2, value_format_1)
            v2 = read_value_record_x(gpos, record + 2 + size_1, value_format_2)
            if v1 is None or v2 is None:
                return None
            return v1 + v2
        return 0

    if pos_format == 2:
        class_def_1_off = read_u16(gpos, subtable + 8)
        class_def_2_off = read_u16(gpos, subtable + 10)
        class_count_1 = read_u16(gpos, subtable + 12)
        class_count_2 = read_u16(gpos, subtable + 14)
        if None in (class_def_1_off, class_def_2_off, class_count_1, class_count_2):
            return None
        if coverage_index(gpos, subtable + coverage_off, left) is None:
            return 0
        class_1 = class_def_value(gpos, subtable + class_def_1_off, left) or 0
        class_2 = class_def_value(gpos, subtable + class_def_2_off, right) or 0
        if class_1 >= class_count_1 or class_2 >= class_count_2:
            return 0
        class2_record_size = size_1 + size_2
        class1_record_size = class2_record_size * class_count_2
        base = subtable + 16 + class_1 * class1_record_size + class_2 * class2_record_size
        v1 = read_value_record_x(gpos, base, value_format_1)
        v2 = read_value_record_x(gpos, base + size_1, value_format_2)
        if v1 is None or v2 is None:
            return None
        return v1 + v2

    return 0


def _resolve_subtable(gpos: bytes, lookup_type: int, subtable: int) -> tuple[int, int] | None:
    """Unwrap an Extension subtable to (lookup type, absolute offset)."""
    if lookup_type != EXTENSION:
        return lookup_type, subtable
    if read_u16(gpos, subtable) != 1:
        return None
    ext_type = read_u16(gpos, subtable + 2)
    ext_off = read_u32(gpos, subtable + 4)
    if ext_type is None or not ext_off:
        return None
    return ext_type, subtable + ext_off


def pair_adjustment(gpos: bytes, lookup_list: int, lookup_indices: list[int],
                    left: int, right: int) -> int:
    """
    First non-zero horizontal adjustment for a glyph pair across the given
    lookups, in font units. 0 if no PairPos subtable adjusts the pair.
    """
    lookup_count = read_u16(gpos, lookup_list) or 0
    for lookup_index in lookup_indices:
        if lookup_index >= lookup_count:
            continue
        lookup_off = read_u16(gpos, lookup_list + 2 + lookup_index * 2)
        if not lookup_off:
            continue
        lookup = lookup_list + lookup_off
        lookup_type = read_u16(gpos, lookup)
        subtable_count = read_u16(gpos, lookup + 4)
        if lookup_type is None or subtable_count is None:
            continue
        for s in range(subtable_count):
            off = read_u16(gpos, lookup + 6 + s * 2)
            if not off:
                continue
            resolved = _resolve_subtable(gpos, lookup_type, lookup + off)
            if resolved is None:
                continue
            resolved_type, subtable = resolved
            if resolved_type != PAIR_ADJUSTMENT:
                continue
            value = pair_pos_x(gpos, subtable, left, right)
            if value:
                return value
    return 0


def gpos_kerning_pairs(gpos: bytes, chars: list[str],
                       glyph_ids: list[int | None]) -> list[tuple[str, str, int]]:
    """
    Kerning for every ordered pair of `chars`, in font units.

    `glyph_ids[i]` is the glyph id of `chars[i]` (None if unmapped). Lookups
    come from the `kern` feature; fonts that carry pair adjustments without
    tagging them `kern` are handled by scanning every lookup instead.
    """
    if read_u16(gpos, 0) != 1:
        return []

    script_list = read_u16(gpos, 4)
    feature_list = read_u16(gpos, 6)
    lookup_list = read_u16(gpos, 8)
    if script_list is None or feature_list is None or not lookup_list:
        return []

    lookup_indices = []
    if script_list and feature_list:
        lookup_indices = select_kern_feature_lookups(gpos, script_list, feature_list)
    if not lookup_indices:
        lookup_indices = all_lookup_indices(gpos, lookup_list)
        if not lookup_indices:
            return []

    pairs = []
    for left, left_gid in zip(chars, glyph_ids):
        if left_gid is None:
            continue
        for right, right_gid in zip(chars, glyph_ids):
            if right_gid is None:
                continue
            value = pair_adjustment(gpos, lookup_list, lookup_indices, left_gid, right_gid)
            if value:
                pairs.append((left, right, value))
    return pairs
