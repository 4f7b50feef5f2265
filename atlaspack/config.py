"""
Project configuration: atlaspack.yaml.

    atlas:
      input: images
      output: build/atlas
      padding: 4
      size: 1024
      exclude: [icons/huge.png, "*-wip.png"]
    fonts:
      - input: fonts/Body.ttf
        output: build/body.png
        cell: 16
        padding: 1
        size: 1024x1024
        outline: 0
        optical_kerning: off

Relative paths are resolved against the directory holding the file.
"""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigError
from .fonts import DEFAULT_CHARSET, FontAtlasOptions, parse_size
from .kerning import OpticalKerningMode
from .sprites import AtlasExclude, AtlasOptions

FILE_NAME = "atlaspack.yaml"

ATLAS_KEYS = {"input", "output", "padding", "size", "exclude"}
FONT_KEYS = {
    "input", "output", "outline_output", "meta", "cell", "padding", "size",
    "charset", "outline", "optical_kerning", "optical_kerning_gap",
}


@dataclass
class AtlasJob:
    input: Path
    output: Path
    options: AtlasOptions


@dataclass
class FontJob:
    input: Path
    output: Path
    options: FontAtlasOptions
    outline_output: Path | None = None
    meta: Path | None = None


@dataclass
class ProjectConfig:
    path: Path
    atlas: AtlasJob | None = None
    fonts: list[FontJob] = field(default_factory=list)


def _int(section: str, data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{section}.{key} must be an integer (got {value!r})")
    return value


def _path(section: str, data: dict, key: str, base: Path, required: bool = True) -> Path | None:
    value = data.get(key)
    if value is None:
        if required:
            raise ConfigError(f"{section}.{key} is required")
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{section}.{key} must be a path string (got {value!r})")
    return base / value


def _check_keys(section: str, data, allowed: set[str]) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"{section} must be a mapping")
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"unknown key(s) in {section}: {', '.join(unknown)}")


def parse_optical_mode(value) -> OpticalKerningMode:
    # YAML reads a bare `off` as False.
    if value is False or value is None:
        return OpticalKerningMode.OFF
    try:
        return OpticalKerningMode(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in OpticalKerningMode)
        raise ConfigError(f"optical_kerning must be one of {choices} (got {value!r})") from None


def parse_atlas_section(data: dict, base: Path) -> AtlasJob:
    _check_keys("atlas", data, ATLAS_KEYS)
    exclude = data.get("exclude", []) or []
    if not isinstance(exclude, list) or not all(isinstance(e, str) for e in exclude):
        raise ConfigError("atlas.exclude must be a list of strings")
    images = _path("atlas", data, "input", base)
    options = AtlasOptions(
        padding=_int("atlas", data, "padding", 4),
        size=_int("atlas", data, "size", 1024),
        exclude=AtlasExclude.from_patterns(exclude, data["input"]),
    )
    return AtlasJob(images, _path("atlas", data, "output", base), options)


def parse_font_section(data: dict, base: Path, index: int) -> FontJob:
    section = f"fonts[{index}]"
    _check_keys(section, data, FONT_KEYS)

    size = data.get("size", "1024x1024")
    if isinstance(size, int) and not isinstance(size, bool):
        width = height = size
    elif isinstance(size, str):
        width, height = parse_size(size)
    else:
        raise ConfigError(f"{section}.size must be WxH or an integer (got {size!r})")

    charset = data.get("charset", DEFAULT_CHARSET)
    if not isinstance(charset, str):
        raise ConfigError(f"{section}.charset must be a string")

    options = FontAtlasOptions(
        cell=_int(section, data, "cell", 16),
        padding=_int(section, data, "padding", 1),
        width=width,
        height=height,
        charset=charset,
        outline=_int(section, data, "outline", 0),
        optical_kerning=parse_optical_mode(data.get("optical_kerning", "off")),
        optical_kerning_gap=_int(section, data, "optical_kerning_gap", 1),
    )
    return FontJob(
        input=_path(section, data, "input", base),
        output=_path(section, data, "output", base),
        options=options,
        outline_output=_path(section, data, "outline_output", base, required=False),
        meta=_path(section, data, "meta", base, required=False),
    )


def load_config(path: Path) -> ProjectConfig:
    """Load and validate a project file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e

    if data is None:
        data = {}
    _check_keys(str(path), data, {"atlas", "fonts"})

    base = path.parent
    config = ProjectConfig(path=path)
    if data.get("atlas") is not None:
        config.atlas = parse_atlas_section(data["atlas"], base)

    fonts = data.get("fonts") or []
    if not isinstance(fonts, list):
        raise ConfigError("fonts must be a list")
    config.fonts = [parse_font_section(entry, base, i) for i, entry in enumerate(fonts)]
    return config
