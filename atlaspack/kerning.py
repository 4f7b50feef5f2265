"""
Kerning for a font atlas charset.

Two sources are supported:

- table kerning, read from the font's GPOS `kern` lookups or, failing that,
  its legacy `kern` table, scaled from font units to pixels;
- optical kerning, measured from the rendered glyph masks so that adjacent
  ink ends up a fixed number of pixels apart.
"""

import io
import math
from dataclasses import dataclass
from enum import Enum

from fontTools.ttLib import TTFont, TTLibError

from .gpos import gpos_kerning_pairs
from .kern_table import kern_table_pairs

# Drops near-zero noise while keeping sub-pixel kerning.
KERN_EPS_PX = 1e-6


class OpticalKerningMode(Enum):
    OFF = "off"
    FILL = "fill"
    OUTLINE = "outline"


@dataclass(frozen=True)
class KerningPair:
    left: str
    right: str
    # Pixels at the atlas pixel size; add to the left glyph's advance.
    kern: float


@dataclass(frozen=True)
class InkProfile:
    # Baseline-relative y of row 0 (y grows downward).
    top: int
    # Per row: (leftmost, rightmost) inked column relative to the pen
    # origin, inclusive, or None.
    rows: tuple[tuple[int, int] | None, ...]


def unique_chars(charset: str) -> list[str]:
    return list(dict.fromkeys(charset))


def _open_font(font_bytes: bytes) -> TTFont | None:
    try:
        return TTFont(io.BytesIO(font_bytes), lazy=True)
    except (TTLibError, OSError, AssertionError, ValueError):
        return None


def _glyph_ids(font: TTFont, chars: list[str]) -> list[int | None]:
    cmap = font.getBestCmap() or {}
    glyph_ids = []
    for ch in chars:
        name = cmap.get(ord(ch))
        glyph_ids.append(font.getGlyphID(name) if name is not None else None)
    return glyph_ids


def _scaled(pairs: list[tuple[str, str, int]], scale: float) -> list[KerningPair]:
    out = []
    for left, right, units in pairs:
        kern_px = units * scale
        if abs(kern_px) >= KERN_EPS_PX:
            out.append(KerningPair(left, right, kern_px))
    return out


def compute_kerning_table(font_bytes: bytes, charset: str, px: float) -> list[KerningPair]:
    """
    Table-derived kerning for every ordered pair of characters in `charset`.

    GPOS wins outright when it yields anything; the legacy `kern` table is
    only consulted otherwise. Missing or malformed tables produce an empty
    list rather than an error.
    """
    font = _open_font(font_bytes)
    if font is None:
        return []
    try:
        units_per_em = font["head"].unitsPerEm
        chars = unique_chars(charset)
        glyph_ids = _glyph_ids(font, chars)
        gpos = font.getTableData("GPOS") if "GPOS" in font else None
        kern = font.getTableData("kern") if "kern" in font else None
    except (TTLibError, KeyError, AssertionError, ValueError, IndexError):
        return []
    if not units_per_em:
        return []
    scale = px / units_per_em

    if gpos:
        pairs = _scaled(gpos_kerning_pairs(gpos, chars, glyph_ids), scale)
        if pairs:
            return pairs

    if kern:
        return _scaled(kern_table_pairs(kern, chars, glyph_ids), scale)
    return []


def ink_profile_from_alpha(alpha: bytes, width: int, height: int, top: int,
                           left: int = 0, threshold: int = 0) -> InkProfile:
    """
    Build an ink profile from row-major 8-bit alpha.

    `top` and `left` place the bitmap relative to the baseline and the pen
    origin, so profiles of different glyphs can be compared directly.
    """
    rows = []
    if width == 0 or height == 0:
        return InkProfile(top, ())
    for y in range(height):
        row = alpha[y * width:(y + 1) * width]
        inked = [x for x, a in enumerate(row) if a > threshold]
        rows.append((left + inked[0], left + inked[-1]) if inked else None)
    return InkProfile(top, tuple(rows))


def _min_gap(left: InkProfile, right: InkProfile, advance: float) -> float | None:
    """
    Smallest horizontal distance between the left glyph's right ink edge and
    the right glyph's left ink edge, with the right glyph placed at `advance`.
    """
    y0 = max(left.top, right.top)
    y1 = min(left.top + len(left.rows), right.top + len(right.rows))
    if y1 <= y0:
        return None

    min_gap = None
    for y in range(y0, y1):
        left_row = left.rows[y - left.top]
        right_row = right.rows[y - right.top]
        if left_row is None or right_row is None:
            continue
        gap = advance + right_row[0] - (left_row[1] + 1)
        if min_gap is None or gap < min_gap:
            min_gap = gap
    return min_gap


def compute_optical_kerning_pairs(
    advances: dict[str, float],
    profiles: dict[str, InkProfile],
    target_gap: int,
) -> list[KerningPair]:
    """
    Kerning that brings every pair's closest ink to `target_gap` pixels.

    Pairs farther apart than the target are tightened by the floored excess,
    pairs closer than the target are loosened by the rounded-up deficit.
    Spaces are left alone, and adjustments under one pixel are dropped.
    """
    out = []
    for left, advance in advances.items():
        if left == " " or left not in profiles:
            continue
        for right in advances:
            if right == " " or right not in profiles:
                continue
            gap = _min_gap(profiles[left], profiles[right], advance)
            if gap is None:
                continue
            delta = gap - target_gap
            if delta >= 0:
                kern_px = -float(math.floor(delta))
            else:
                kern_px = float(math.ceil(-delta))
            if abs(kern_px) >= 1.0:
                out.append(KerningPair(left, right, kern_px))
    return out
