import io
import sys
from pathlib import Path

import pytest
from PIL import Image

from fontTools.feaLib.builder import addOpenTypeFeaturesFromString
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.t2CharStringPen import T2CharStringPen
from fontTools.ttLib import newTable
from fontTools.ttLib.tables._k_e_r_n import KernTable_format_0

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

UNITS_PER_EM = 1000
# Font units per bitmap pixel.
PIXEL = 100

GLYPHS = {
    "A": [
        ".###.",
        "#...#",
        "#...#",
        "#####",
        "#...#",
        "#...#",
        "#...#",
    ],
    "B": [
        "####.",
        "#...#",
        "#...#",
        "####.",
        "#...#",
        "#...#",
        "####.",
    ],
    "T": [
        "#####",
        "..#..",
        "..#..",
        "..#..",
        "..#..",
        "..#..",
        "..#..",
    ],
    "V": [
        "#...#",
        "#...#",
        "#...#",
        "#...#",
        ".#.#.",
        ".#.#.",
        "..#..",
    ],
    "o": [
        ".###.",
        "#...#",
        "#...#",
        "#...#",
        ".###.",
    ],
    "g": [
        ".####",
        "#...#",
        "#...#",
        ".####",
        "....#",
        "....#",
        ".###.",
    ],
    "period": [
        "#",
    ],
}

Y_OFFSETS = {"g": -2}
CHARACTERS = {"A": "A", "B": "B", "T": "T", "V": "V", "o": "o", "g": "g", "period": "."}


def bitmap_to_rectangles(bitmap: list[str], y_offset: int = 0) -> list[tuple[int, int, int, int]]:
    """One (x, y, w, h) square per "on" pixel, in font units, y=0 at baseline."""
    rectangles = []
    height = len(bitmap)
    for row_idx, row in enumerate(bitmap):
        y = (y_offset + height - 1 - row_idx) * PIXEL
        for col_idx, c in enumerate(row):
            if c == "#":
                rectangles.append((col_idx * PIXEL, y, PIXEL, PIXEL))
    return rectangles


def build_test_font(fea: str | None = None, kern_pairs: dict | None = None) -> bytes:
    """
    Build a small CFF pixel font in memory.

    Args:
        fea: optional OpenType feature code compiled into GPOS
        kern_pairs: optional {(left glyph, right glyph): value} written as a
                    legacy Microsoft `kern` table

    Every inked glyph is drawn one pixel in from the left of an advance of
    (bitmap width + 2) pixels; space has a 4-pixel advance.
    """
    glyph_order = [".notdef", "space"] + sorted(GLYPHS)
    cmap = {32: "space"}
    for name, ch in CHARACTERS.items():
        cmap[ord(ch)] = name

    fb = FontBuilder(UNITS_PER_EM, isTTF=False)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)

    charstrings = {}
    metrics = {}

    pen = T2CharStringPen(width=500, glyphSet=None)
    pen.moveTo((50, 0))
    pen.lineTo((50, 500))
    pen.lineTo((450, 500))
    pen.lineTo((450, 0))
    pen.closePath()
    charstrings[".notdef"] = pen.getCharString()
    metrics[".notdef"] = (500, 50)

    pen = T2CharStringPen(width=4 * PIXEL, glyphSet=None)
    charstrings["space"] = pen.getCharString()
    metrics["space"] = (4 * PIXEL, 0)

    for name, bitmap in GLYPHS.items():
        width = max(len(row) for row in bitmap)
        advance = (width + 2) * PIXEL
        pen = T2CharStringPen(width=advance, glyphSet=None)
        for x, y, w, h in bitmap_to_rectangles(bitmap, Y_OFFSETS.get(name, 0)):
            x += PIXEL
            pen.moveTo((x, y))
            pen.lineTo((x, y + h))
            pen.lineTo((x + w, y + h))
            pen.lineTo((x + w, y))
            pen.closePath()
        charstrings[name] = pen.getCharString()
        metrics[name] = (advance, PIXEL)

    fb.setupCFF(
        psName="AtlasTest-Regular",
        fontInfo={"FamilyName": "Atlas Test", "FullName": "Atlas Test Regular"},
        charStringsDict=charstrings,
        privateDict={},
    )
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "Atlas Test", "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()

    if fea:
        addOpenTypeFeaturesFromString(fb.font, fea)

    if kern_pairs:
        kern = newTable("kern")
        kern.version = 0
        subtable = KernTable_format_0()
        subtable.version = 0
        subtable.coverage = 1
        subtable.kernTable = dict(kern_pairs)
        kern.kernTables = [subtable]
        fb.font["kern"] = kern

    buf = io.BytesIO()
    fb.save(buf)
    return buf.getvalue()


@pytest.fixture(scope="session")
def plain_font() -> bytes:
    return build_test_font()


@pytest.fixture(scope="session")
def kerned_font() -> bytes:
    return build_test_font(fea="""
feature kern {
    pos A B -50;
    pos A V -80;
    pos T o -120;
} kern;
""")


def write_png(path: Path, size: tuple[int, int], color=(255, 0, 0, 255)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path)
    return path


@pytest.fixture
def sprite_tree(tmp_path):
    """A small images folder with nested directories."""
    images = tmp_path / "images"
    write_png(images / "big.png", (64, 64), (255, 0, 0, 255))
    write_png(images / "ui" / "ok.png", (32, 32), (0, 255, 0, 255))
    write_png(images / "ui" / "ok-highlight.png", (32, 32), (0, 0, 255, 255))
    write_png(images / "ui" / "icons" / "star.png", (16, 24), (255, 255, 0, 128))
    return images
