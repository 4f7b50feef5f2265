"""
Bitmap font atlases.

A charset is rasterized at a single pixel size into a grid of square cells,
one cell per character in charset order (left-to-right, top-to-bottom).
Every glyph shares one baseline row inside its cell. Optionally a second,
outlined atlas is produced on the same grid: a black stroke made by dilating
each glyph's alpha, with the original glyph drawn in white on top.
"""

import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageChops, ImageFilter

from .errors import CapacityError, ConfigError, InputError
from .kerning import (
    InkProfile,
    KerningPair,
    OpticalKerningMode,
    compute_kerning_table,
    compute_optical_kerning_pairs,
    ink_profile_from_alpha,
)
from .raster import GlyphRasterizer, RasterGlyph

DEFAULT_CHARSET = "".join(chr(c) for c in range(32, 127))
FIT_PASSES = 4


@dataclass(frozen=True)
class FontAtlasOptions:
    cell: int = 16
    padding: int = 1
    width: int = 1024
    height: int = 1024
    charset: str = DEFAULT_CHARSET
    outline: int = 0
    optical_kerning: OpticalKerningMode = OpticalKerningMode.OFF
    optical_kerning_gap: int = 1

    @property
    def inner(self) -> int:
        return self.cell - 2 * self.padding

    @property
    def columns(self) -> int:
        return self.width // self.cell

    @property
    def rows(self) -> int:
        return self.height // self.cell

    @property
    def capacity(self) -> int:
        return self.columns * self.rows


@dataclass(frozen=True)
class GlyphMeta:
    char: str
    index: int
    col: int
    row: int
    cell_x: int
    cell_y: int
    cell_w: int
    cell_h: int
    draw_x: int
    draw_y: int
    draw_w: int
    draw_h: int
    # Advance width in pixels at the atlas pixel size.
    advance: float

    def to_dict(self) -> dict:
        return {
            "ch": self.char,
            "index": self.index,
            "col": self.col,
            "row": self.row,
            "cellX": self.cell_x,
            "cellY": self.cell_y,
            "cellW": self.cell_w,
            "cellH": self.cell_h,
            "drawX": self.draw_x,
            "drawY": self.draw_y,
            "drawW": self.draw_w,
            "drawH": self.draw_h,
            "advance": self.advance,
        }


@dataclass(frozen=True)
class FontAtlasMeta:
    width: int
    height: int
    cell: int
    padding: int
    inner: int
    px: int
    baseline: int
    charset: str
    glyphs: tuple[GlyphMeta, ...]
    kerning: tuple[KerningPair, ...]

    def to_dict(self) -> dict:
        return {
            "atlasW": self.width,
            "atlasH": self.height,
            "cell": self.cell,
            "padding": self.padding,
            "inner": self.inner,
            "px": self.px,
            "baseline": self.baseline,
            "charset": self.charset,
            "glyphs": [g.to_dict() for g in self.glyphs],
            "kerning": [
                {"left": k.left, "right": k.right, "kern": k.kern}
                for k in self.kerning
            ],
        }


@dataclass
class FontAtlas:
    image: Image.Image
    meta: FontAtlasMeta
    outline_image: Image.Image | None = None
    outline_meta: FontAtlasMeta | None = None
    # Where the kerning came from: "gpos/kern", "optical" or "none".
    kerning_source: str = "none"


def parse_size(text: str) -> tuple[int, int]:
    """Parse an atlas size given as "WxH"."""
    width_s, sep, height_s = text.partition("x")
    if not sep:
        raise ConfigError(f"invalid size (expected WxH): {text}")
    try:
        width = int(width_s)
    except ValueError:
        raise ConfigError(f"invalid size width: {width_s!r}") from None
    try:
        height = int(height_s)
    except ValueError:
        raise ConfigError(f"invalid size height: {height_s!r}") from None
    return width, height


def validate_font_options(options: FontAtlasOptions) -> None:
    """Reject impossible geometry before any font work is done."""
    if options.cell <= 0:
        raise ConfigError("cell must be > 0")
    if options.padding < 0:
        raise ConfigError("padding must be >= 0")
    if options.cell <= options.padding * 2:
        raise ConfigError(
            f"cell must be > 2*padding (got cell {options.cell}, padding {options.padding})"
        )
    if options.outline < 0:
        raise ConfigError("outline must be >= 0")
    if options.outline > 0 and options.padding < options.outline:
        raise ConfigError(
            "padding must be >= outline when outline is enabled "
            f"(got padding {options.padding}, outline {options.outline})"
        )
    if options.width <= 0 or options.height <= 0:
        raise ConfigError(f"size must be > 0x0 (got {options.width}x{options.height})")
    if options.width % options.cell or options.height % options.cell:
        raise ConfigError(
            "size must be divisible by cell "
            f"(got size {options.width}x{options.height}, cell {options.cell})"
        )
    if not options.charset:
        raise ConfigError("charset must not be empty")
    if len(options.charset) > options.capacity:
        raise CapacityError(
            f"charset has {len(options.charset)} glyph(s) but atlas capacity is "
            f"{options.capacity} cell(s) ({options.columns}x{options.rows} cells)"
        )
    if options.optical_kerning_gap < 0:
        raise ConfigError("optical kerning gap must be >= 0")


def ink_extent(glyphs: list[RasterGlyph]) -> tuple[int, int] | None:
    """Union of baseline-relative (top, bottom) over glyphs with ink."""
    inked = [g for g in glyphs if not g.empty]
    if not inked:
        return None
    return min(g.top for g in inked), max(g.bottom for g in inked)


def fit_pixel_size(rasterizer: GlyphRasterizer, charset: str, inner: int) -> int:
    """
    Largest pixel size (starting from `inner`) at which every glyph, and the
    shared ascent-to-descent span of the whole charset, fits the inner box.
    """
    px = max(inner, 1)
    for _ in range(FIT_PASSES):
        glyphs = rasterizer.rasterize_all(charset, px)
        max_w = max(g.width for g in glyphs)
        max_h = max(g.height for g in glyphs)
        extent = ink_extent(glyphs)
        if extent is None:
            # Nothing in the charset has ink; any size is as good as another.
            return px
        span = extent[1] - extent[0]

        worst = max(max_w, max_h, span)
        if worst <= inner:
            return px

        next_px = max(1, math.floor(px * inner / worst))
        if next_px == px:
            return px
        px = next_px
    return px


def dilate_alpha(mask: Image.Image, radius: int) -> Image.Image:
    """
    Square max-filter of `mask` after padding it by `radius` on every side.

    The result is (w + 2r) x (h + 2r), with the original glyph centred.
    """
    if radius <= 0:
        return mask.copy()
    expanded = Image.new("L", (mask.width + 2 * radius, mask.height + 2 * radius), 0)
    expanded.paste(mask, (radius, radius))
    return expanded.filter(ImageFilter.MaxFilter(2 * radius + 1))


def _blit_max(layer: Image.Image, mask: Image.Image, x: int, y: int) -> None:
    box = (x, y, x + mask.width, y + mask.height)
    layer.paste(ImageChops.lighter(layer.crop(box), mask), box)


def _compose(fill: Image.Image, stroke: Image.Image | None = None) -> Image.Image:
    """White where the glyph fill has ink, black stroke elsewhere."""
    white = fill.point(lambda a: 255 if a else 0)
    alpha = fill if stroke is None else ImageChops.lighter(stroke, fill)
    return Image.merge("RGBA", (white, white, white, alpha))


def build_font_atlas(font_bytes: bytes, options: FontAtlasOptions,
                     source: str = "<font>") -> FontAtlas:
    """
    Rasterize `options.charset` from a font into an atlas image plus metadata.

    Args:
        font_bytes: TTF/OTF file contents
        options: grid geometry, charset, outline and kerning settings
        source: name used in error messages (usually the font path)

    Raises ConfigError/CapacityError for invalid geometry (before the font
    is touched) and InputError when the font cannot be parsed.
    """
    validate_font_options(options)
    inner = options.inner
    radius = options.outline
    outline_enabled = radius > 0
    mode = options.optical_kerning

    rasterizer = GlyphRasterizer(font_bytes, source)
    px = fit_pixel_size(rasterizer, options.charset, inner)
    glyphs = rasterizer.rasterize_all(options.charset, px)

    extent = ink_extent(glyphs)
    baseline_in_inner = max(0, -extent[0]) if extent else 0
    baseline = options.padding + baseline_in_inner

    fill = Image.new("L", (options.width, options.height), 0)
    stroke = Image.new("L", (options.width, options.height), 0) if outline_enabled else None

    glyph_metas = []
    outline_metas = []
    profiles: dict[str, InkProfile] = {}
    advances: dict[str, float] = {}

    for i, glyph in enumerate(glyphs):
        col = i % options.columns
        row = i // options.columns
        cell_x = col * options.cell
        cell_y = row * options.cell

        draw_x = cell_x + options.padding
        draw_y = cell_y + options.padding
        drawn = not glyph.empty and glyph.width <= inner and glyph.height <= inner

        if drawn:
            draw_x = cell_x + options.padding + (inner - glyph.width) // 2
            draw_y = max(0, cell_y + options.padding + baseline_in_inner + glyph.top)
            _blit_max(fill, glyph.mask, draw_x, draw_y)

            if stroke is not None:
                dilated = dilate_alpha(glyph.mask, radius)
                _blit_max(stroke, dilated, max(0, draw_x - radius), max(0, draw_y - radius))
                if mode is OpticalKerningMode.OUTLINE:
                    profiles[glyph.char] = ink_profile_from_alpha(
                        dilated.tobytes(), dilated.width, dilated.height,
                        glyph.top - radius, left=glyph.left - radius,
                    )

        if mode is OpticalKerningMode.FILL or (
            mode is OpticalKerningMode.OUTLINE and not outline_enabled
        ):
            profiles[glyph.char] = ink_profile_from_alpha(
                glyph.alpha(), glyph.width, glyph.height, glyph.top, left=glyph.left,
            )
        advances[glyph.char] = glyph.advance

        glyph_metas.append(GlyphMeta(
            char=glyph.char,
            index=i,
            col=col,
            row=row,
            cell_x=cell_x,
            cell_y=cell_y,
            cell_w=options.cell,
            cell_h=options.cell,
            draw_x=draw_x,
            draw_y=draw_y,
            draw_w=glyph.width,
            draw_h=glyph.height,
            advance=glyph.advance,
        ))

        if outline_enabled:
            if glyph.empty:
                outline_w, outline_h = 0, 0
            else:
                outline_w, outline_h = glyph.width + 2 * radius, glyph.height + 2 * radius
            outline_metas.append(GlyphMeta(
                char=glyph.char,
                index=i,
                col=col,
                row=row,
                cell_x=cell_x,
                cell_y=cell_y,
                cell_w=options.cell,
                cell_h=options.cell,
                draw_x=max(0, draw_x - radius),
                draw_y=max(0, draw_y - radius),
                draw_w=outline_w,
                draw_h=outline_h,
                advance=glyph.advance,
            ))

    kerning = compute_kerning_table(font_bytes, options.charset, px)
    kerning_source = "gpos/kern" if kerning else "none"
    if mode is not OpticalKerningMode.OFF:
        # Optical kerning wins when it finds anything; table kerning stays as a fallback.
        optical = compute_optical_kerning_pairs(advances, profiles, options.optical_kerning_gap)
        if optical:
            kerning = optical
            kerning_source = "optical"

    meta = FontAtlasMeta(
        width=options.width,
        height=options.height,
        cell=options.cell,
        padding=options.padding,
        inner=inner,
        px=px,
        baseline=baseline,
        charset=options.charset,
        glyphs=tuple(glyph_metas),
        kerning=tuple(kerning),
    )
    atlas = FontAtlas(image=_compose(fill), meta=meta, kerning_source=kerning_source)
    if stroke is not None:
        atlas.outline_image = _compose(fill, stroke)
        atlas.outline_meta = FontAtlasMeta(
            width=options.width,
            height=options.height,
            cell=options.cell,
            padding=options.padding,
            inner=inner,
            px=px,
            baseline=baseline,
            charset=options.charset,
            glyphs=tuple(outline_metas),
            kerning=meta.kerning,
        )

    print(f"[font] {len(options.charset)} glyph(s) at {px}px (inner {inner}px, baseline {baseline})")
    print(f"[font] Kerning: {len(meta.kerning)} pair(s) from {kerning_source}")
    return atlas


def derive_outline_path(output_png: Path) -> Path:
    """<stem>_outline.png next to the base atlas."""
    stem = output_png.stem or "font_atlas"
    return output_png.with_name(f"{stem}_outline.png")


def read_font(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise InputError(f"failed to read input font {path}: {e}") from e


def write_font_atlas(atlas: FontAtlas, output_png: Path,
                     outline_png: Path | None = None) -> Path | None:
    """
    Save the atlas PNG (and the outline PNG, if one was built).

    Returns the outline path that was written, or None.
    """
    output_png.parent.mkdir(parents=True, exist_ok=True)
    atlas.image.save(output_png, format="PNG")
    meta = atlas.meta
    print(
        f"[font] Wrote {output_png} ({meta.width}x{meta.height}, cell {meta.cell}, "
        f"padding {meta.padding}, glyphs {len(meta.glyphs)})"
    )
    if atlas.outline_image is None:
        return None

    outline_png = outline_png or derive_outline_path(output_png)
    outline_png.parent.mkdir(parents=True, exist_ok=True)
    atlas.outline_image.save(outline_png, format="PNG")
    print(f"[font] Wrote outline {outline_png}")
    return outline_png
