"""
Sprite atlas packing.

PNG files under a directory are packed into square atlas pages with a shelf
packer: sprites are sorted tallest first, laid out left-to-right in rows, and
a new page is opened when a row no longer fits. Pages are written as
atlas_000.png, atlas_001.png, ...
"""

import fnmatch
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from .errors import CapacityError, ConfigError, InputError

MIN_ATLAS_SIZE = 256
MAX_ATLAS_SIZE = 4096


@dataclass(frozen=True)
class AtlasExclude:
    """Sprite keys left out of packing: exact keys plus glob patterns."""

    exact: frozenset[str] = frozenset()
    globs: tuple[str, ...] = ()

    @classmethod
    def from_patterns(cls, patterns, images_folder: Path | None = None) -> "AtlasExclude":
        """
        Build an exclusion set from user-supplied keys and patterns.

        Entries may be given relative to `images_folder` or prefixed with it.
        A bare directory name ("icons", "ui/buttons/") excludes every PNG
        below it.
        """
        exact = set()
        globs = []
        for raw in patterns:
            key = normalize_atlas_key(raw.strip(), images_folder)
            if not key:
                continue
            pattern = normalize_exclude_pattern(key)
            if any(c in pattern for c in "*?[]"):
                globs.append(pattern)
            else:
                exact.add(pattern)
        return cls(frozenset(exact), tuple(sorted(set(globs))))

    def is_match(self, key: str) -> bool:
        if key in self.exact:
            return True
        for pattern in self.globs:
            # fnmatch's "*" already crosses "/", so "**/" may also match nothing.
            if fnmatch.fnmatchcase(key, pattern):
                return True
            if "**/" in pattern and fnmatch.fnmatchcase(key, pattern.replace("**/", "")):
                return True
        return False


def normalize_atlas_key(value: str, images_folder: Path | None = None) -> str:
    """POSIX-style key relative to `images_folder`."""
    key = value.replace("\\", "/")
    while key.startswith("./"):
        key = key[2:]
    key = key.lstrip("/")

    if images_folder is not None:
        folder = str(images_folder).replace("\\", "/").rstrip("/")
        while folder.startswith("./"):
            folder = folder[2:]
        if folder and folder != ".":
            if key.startswith(folder + "/"):
                key = key[len(folder) + 1:]
            elif key == folder:
                key = ""
    return key


def normalize_exclude_pattern(value: str) -> str:
    """Expand directory entries to "<dir>/**/*.png"."""
    pattern = value.strip("/")
    if value.endswith("/") or "." not in pattern:
        pattern = f"{pattern}/**/*.png"
    return pattern


@dataclass(frozen=True)
class AtlasOptions:
    padding: int = 4
    size: int = 1024
    exclude: AtlasExclude = field(default_factory=AtlasExclude)


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    w: int
    h: int


@dataclass(frozen=True)
class PendingSprite:
    key: str
    path: Path
    w: int
    h: int


@dataclass(frozen=True)
class PlacedSprite:
    key: str
    path: Path
    atlas_index: int
    rect: Rect


@dataclass(frozen=True)
class SpritePlacement:
    atlas_file_name: str
    rect: Rect


def atlas_file_name(atlas_index: int) -> str:
    return f"atlas_{atlas_index:03d}.png"


def validate_atlas_options(options: AtlasOptions) -> int:
    """Check page size and padding; returns the page size."""
    size = options.size
    if size < MIN_ATLAS_SIZE or size > MAX_ATLAS_SIZE:
        raise ConfigError(
            f"atlas size must be between {MIN_ATLAS_SIZE} and {MAX_ATLAS_SIZE} (got {size})"
        )
    if size & (size - 1):
        raise ConfigError(f"atlas size must be a power of two (got {size})")
    if options.padding < 0:
        raise ConfigError(f"atlas padding must be >= 0 (got {options.padding})")
    if options.padding * 2 >= size:
        raise ConfigError(
            f"atlas padding {options.padding} leaves no room in a {size}x{size} page"
        )
    return size


def sprite_sort_key(sprite: PendingSprite):
    """Tallest first, then widest, then by key."""
    return (-sprite.h, -sprite.w, sprite.key)


def scan_pngs(images_folder: Path, exclude: AtlasExclude) -> list[PendingSprite]:
    """
    Find every .png under `images_folder` and read its dimensions.

    Symbolic links are not followed. Keys are POSIX-style paths relative to
    `images_folder`. The result is sorted with `sprite_sort_key`.
    """
    sprites = []
    for dirpath, dirnames, filenames in os.walk(images_folder, followlinks=False):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix != ".png" or path.is_symlink() or not path.is_file():
                continue
            key = path.relative_to(images_folder).as_posix()
            if exclude.is_match(key):
                continue
            try:
                with Image.open(path) as img:
                    img.load()
                    w, h = img.size
            except OSError as e:
                raise InputError(f"failed to decode png: {path}: {e}") from e
            sprites.append(PendingSprite(key, path, w, h))

    sprites.sort(key=sprite_sort_key)
    return sprites


class ShelfPacker:
    """
    Row ("shelf") packer over fixed-size square pages.

    State is the current page, the cursor within it and the height of the
    current row. Sprites must be fed in their final order.
    """

    def __init__(self, page_size: int, padding: int):
        self.page_size = page_size
        self.padding = padding
        self.atlas_index = 0
        self.x = 0
        self.y = 0
        self.row_h = 0

    def place(self, key: str, w: int, h: int) -> tuple[int, Rect]:
        """Place one sprite; returns (page index, inner rect)."""
        alloc_w = w + self.padding * 2
        alloc_h = h + self.padding * 2
        size = self.page_size

        if alloc_w > size or alloc_h > size:
            raise CapacityError(
                f"{key} is too large to pack into a {size}x{size} atlas ({w}x{h})"
            )

        if self.x + alloc_w > size:
            self.x = 0
            self.y += self.row_h
            self.row_h = 0

        if self.y + alloc_h > size:
            self.atlas_index += 1
            self.x = 0
            self.y = 0
            self.row_h = 0

        rect = Rect(self.x + self.padding, self.y + self.padding, w, h)
        self.x += alloc_w
        self.row_h = max(self.row_h, alloc_h)
        return self.atlas_index, rect


def pack_sprites(sprites: list[PendingSprite], padding: int, atlas_size: int) -> list[PlacedSprite]:
    packer = ShelfPacker(atlas_size, padding)
    placed = []
    for sprite in sprites:
        atlas_index, rect = packer.place(sprite.key, sprite.w, sprite.h)
        placed.append(PlacedSprite(sprite.key, sprite.path, atlas_index, rect))
    return placed


def render_atlas_pages(placed: list[PlacedSprite], atlas_size: int) -> dict[int, Image.Image]:
    """
    Composite placed sprites into one RGBA image per page.

    Pixels are copied as-is into each sprite's inner rect; padding is left
    transparent.
    """
    per_atlas: dict[int, list[PlacedSprite]] = {}
    for sprite in placed:
        per_atlas.setdefault(sprite.atlas_index, []).append(sprite)

    pages = {}
    for atlas_index in sorted(per_atlas):
        page = Image.new("RGBA", (atlas_size, atlas_size), (0, 0, 0, 0))
        for sprite in per_atlas[atlas_index]:
            try:
                with Image.open(sprite.path) as img:
                    pixels = img.convert("RGBA")
            except OSError as e:
                raise InputError(f"failed to decode png: {sprite.path}: {e}") from e
            page.paste(pixels, (sprite.rect.x, sprite.rect.y))
        pages[atlas_index] = page
    return pages


def write_atlas_images(placed: list[PlacedSprite], output_dir: Path, atlas_size: int) -> list[Path]:
    paths = []
    for atlas_index, page in render_atlas_pages(placed, atlas_size).items():
        path = output_dir / atlas_file_name(atlas_index)
        try:
            page.save(path, format="PNG")
        except OSError as e:
            raise InputError(f"failed to write atlas png: {path}: {e}") from e
        paths.append(path)
    return paths


def recreate_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


def build_atlases(images_folder: Path, output_dir: Path,
                  options: AtlasOptions | None = None) -> dict[str, SpritePlacement]:
    """
    Pack every PNG under `images_folder` into atlas pages in `output_dir`.

    `output_dir` is deleted and recreated first. Returns placements keyed by
    sprite key, in key order.
    """
    options = options or AtlasOptions()
    atlas_size = validate_atlas_options(options)
    images_folder = Path(images_folder)
    output_dir = Path(output_dir)
    if not images_folder.is_dir():
        raise InputError(f"images folder not found: {images_folder}")

    recreate_dir(output_dir)

    sprites = scan_pngs(images_folder, options.exclude)
    placed = pack_sprites(sprites, options.padding, atlas_size)
    pages = write_atlas_images(placed, output_dir, atlas_size)

    print(f"[atlas] Packed {len(placed)} sprite(s) into {len(pages)} page(s) of {atlas_size}x{atlas_size}")
    for path in pages:
        print(f"  -> {path}")

    return {
        sprite.key: SpritePlacement(atlas_file_name(sprite.atlas_index), sprite.rect)
        for sprite in sorted(placed, key=lambda s: s.key)
    }
