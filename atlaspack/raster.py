"""
Glyph rasterization on top of Pillow's FreeType backend.

Coordinates follow image conventions: y grows downward and is measured from
the baseline, so ink above the baseline has a negative `top`.
"""

import io
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont

from .errors import InputError


@dataclass(frozen=True)
class RasterGlyph:
    char: str
    width: int
    height: int
    left: int
    top: int
    advance: float
    mask: Image.Image | None = None

    @property
    def empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def alpha(self) -> bytes:
        """Row-major 8-bit alpha, width*height bytes."""
        if self.mask is None:
            return b""
        return self.mask.tobytes()


class GlyphRasterizer:
    """Rasterizes characters of one font at integer pixel sizes."""

    def __init__(self, font_bytes: bytes, source: str = "<font>"):
        self.font_bytes = font_bytes
        self.source = source
        self._fonts: dict[int, ImageFont.FreeTypeFont] = {}
        # Fail early on data FreeType cannot open.
        self.font_at(1)

    def font_at(self, px: int) -> ImageFont.FreeTypeFont:
        font = self._fonts.get(px)
        if font is None:
            try:
                font = ImageFont.truetype(io.BytesIO(self.font_bytes), size=px)
            except OSError as e:
                raise InputError(f"failed to parse font {self.source}: {e}") from e
            self._fonts[px] = font
        return font

    def rasterize(self, char: str, px: int) -> RasterGlyph:
        """
        Render one character at `px` pixels per em.

        The returned mask is cropped to the ink; characters without ink
        (space, unmapped control characters) come back as a 0x0 glyph that
        still carries its advance width.
        """
        font = self.font_at(px)
        advance = float(font.getlength(char))

        x0, y0, x1, y1 = font.getbbox(char, anchor="ls")
        if x1 <= x0 or y1 <= y0:
            return RasterGlyph(char, 0, 0, 0, 0, advance)

        canvas = Image.new("L", (x1 - x0, y1 - y0), 0)
        ImageDraw.Draw(canvas).text((-x0, -y0), char, font=font, fill=255, anchor="ls")
        ink = canvas.getbbox()
        if ink is None:
            return RasterGlyph(char, 0, 0, 0, 0, advance)

        mask = canvas.crop(ink)
        return RasterGlyph(
            char=char,
            width=mask.width,
            height=mask.height,
            left=x0 + ink[0],
            top=y0 + ink[1],
            advance=advance,
            mask=mask,
        )

    def rasterize_all(self, charset: str, px: int) -> list[RasterGlyph]:
        return [self.rasterize(ch, px) for ch in charset]
