"""
Command-line entry point.

Usage:
    atlaspack atlas <images_dir> <output_dir> [--padding N] [--size N] [--exclude KEY]...
    atlaspack font <font.ttf> <atlas.png> [--cell N] [--padding N] [--size WxH] ...
    atlaspack build [atlaspack.yaml]
"""

import argparse
import sys
from pathlib import Path

import yaml

from .assets import AssetTable, atlas_ids_from_assets, build_atlased_assets, from_plain, to_plain
from .config import FILE_NAME, AtlasJob, FontJob, load_config, parse_optical_mode
from .errors import AtlasError, ConfigError
from .fonts import (DEFAULT_CHARSET, FontAtlasOptions, build_font_atlas, parse_size, read_font,
                    validate_font_options, write_font_atlas)
from .kerning import OpticalKerningMode
from .sprites import AtlasExclude, AtlasOptions, build_atlases


def write_yaml(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)


def load_atlas_ids(path: Path) -> dict[str, str]:
    """Read atlas ids from YAML: a flat {file: id} mapping or an uploaded-asset tree."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read atlas ids {path}: {e}") from e
    try:
        tree = from_plain(data or {})
    except TypeError as e:
        raise ConfigError(f"invalid atlas ids in {path}: {e}") from e
    if not isinstance(tree, AssetTable):
        raise ConfigError(f"atlas ids in {path} must be a mapping")
    return atlas_ids_from_assets(tree)


def run_atlas(job: AtlasJob, manifest: Path | None = None, ids: Path | None = None) -> None:
    placements = build_atlases(job.input, job.output, job.options)

    manifest = manifest or job.output / "atlas.yaml"
    write_yaml(manifest, {
        key: {
            "atlas": p.atlas_file_name,
            "rect": {"x": p.rect.x, "y": p.rect.y, "w": p.rect.w, "h": p.rect.h},
        }
        for key, p in placements.items()
    })
    print(f"[atlas] Wrote manifest: {manifest}")

    if ids is not None:
        tree = build_atlased_assets(placements, load_atlas_ids(ids))
        assets_path = manifest.with_name("assets.yaml")
        write_yaml(assets_path, to_plain(tree))
        print(f"[atlas] Wrote asset metadata: {assets_path}")


def run_font(job: FontJob) -> None:
    validate_font_options(job.options)
    atlas = build_font_atlas(read_font(job.input), job.options, source=str(job.input))
    outline_path = write_font_atlas(atlas, job.output, job.outline_output)

    meta_path = job.meta or job.output.with_suffix(".yaml")
    data = {"font": atlas.meta.to_dict()}
    if atlas.outline_meta is not None:
        data["outline"] = atlas.outline_meta.to_dict()
        data["outlineImage"] = outline_path.name
    write_yaml(meta_path, data)
    print(f"[font] Wrote metadata: {meta_path}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="atlaspack", description="Pack sprite and font atlases.")
    commands = parser.add_subparsers(dest="command", required=True)

    atlas = commands.add_parser("atlas", help="Pack a directory of PNGs into atlas pages.")
    atlas.add_argument("images", type=Path, help="Directory scanned for .png files.")
    atlas.add_argument("output", type=Path, help="Output directory (recreated).")
    atlas.add_argument("--padding", type=int, default=4, help="Padding around each sprite.")
    atlas.add_argument("--size", type=int, default=1024, help="Page size (power of two, 256-4096).")
    atlas.add_argument("--exclude", action="append", default=[], metavar="KEY",
                       help="Key or glob to leave out (repeatable).")
    atlas.add_argument("--manifest", type=Path, help="Placement manifest path.")
    atlas.add_argument("--ids", type=Path, help="YAML mapping atlas file names to uploaded ids.")

    font = commands.add_parser("font", help="Generate an image atlas from a .ttf font.")
    font.add_argument("input_ttf", type=Path)
    font.add_argument("output_png", type=Path)
    font.add_argument("--cell", type=int, default=16, help="Cell size in pixels.")
    font.add_argument("--padding", type=int, default=1, help="Padding inside each cell.")
    font.add_argument("--charset", default=DEFAULT_CHARSET,
                      help="Glyphs, packed in this order left-to-right, top-to-bottom.")
    font.add_argument("--size", default="1024x1024", metavar="WxH", help="Atlas size.")
    font.add_argument("--outline", type=int, default=0, metavar="PX",
                      help="Also build an outlined atlas dilated by PX pixels (0 disables).")
    font.add_argument("--outline-png", type=Path, help="Outline atlas path.")
    font.add_argument("--optical-kerning", default="off",
                      choices=[m.value for m in OpticalKerningMode],
                      help="Measure kerning from glyph masks instead of font tables.")
    font.add_argument("--optical-kerning-gap", type=int, default=1, metavar="PX",
                      help="Target pixel gap between adjacent glyph ink.")
    font.add_argument("--meta", type=Path, help="Metadata YAML path.")

    build = commands.add_parser("build", help="Run every job in a project file.")
    build.add_argument("config", type=Path, nargs="?", default=Path(FILE_NAME))

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    prefix = "[font]" if args.command == "font" else "[atlas]"
    try:
        if args.command == "atlas":
            options = AtlasOptions(
                padding=args.padding,
                size=args.size,
                exclude=AtlasExclude.from_patterns(args.exclude, args.images),
            )
            run_atlas(AtlasJob(args.images, args.output, options), args.manifest, args.ids)
        elif args.command == "font":
            width, height = parse_size(args.size)
            options = FontAtlasOptions(
                cell=args.cell,
                padding=args.padding,
                width=width,
                height=height,
                charset=args.charset,
                outline=args.outline,
                optical_kerning=parse_optical_mode(args.optical_kerning),
                optical_kerning_gap=args.optical_kerning_gap,
            )
            run_font(FontJob(args.input_ttf, args.output_png, options,
                             outline_output=args.outline_png, meta=args.meta))
        else:
            config = load_config(args.config)
            if config.atlas is None and not config.fonts:
                print(f"Nothing to build in {args.config}")
            if config.atlas is not None:
                run_atlas(config.atlas)
            for job in config.fonts:
                prefix = "[font]"
                run_font(job)
    except (AtlasError, OSError) as e:
        print(f"{prefix} ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
