"""Sprite and bitmap-font atlas packing."""

from .errors import AtlasError, CapacityError, ConfigError, InputError
from .fonts import FontAtlas, FontAtlasMeta, FontAtlasOptions, GlyphMeta, build_font_atlas
from .kerning import KerningPair, OpticalKerningMode, compute_kerning_table
from .sprites import AtlasExclude, AtlasOptions, Rect, SpritePlacement, build_atlases
from .assets import build_atlased_assets

__version__ = "0.1.0"
