"""atlaspack.yaml loading and the command-line entry point."""

from pathlib import Path

import pytest
import yaml
from PIL import Image

from atlaspack.cli import main
from atlaspack.config import load_config
from atlaspack.errors import ConfigError
from atlaspack.kerning import OpticalKerningMode

from conftest import write_png


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "atlaspack.yaml"
    path.write_text(text)
    return path


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_defaults_and_relative_paths(tmp_path):
    config = load_config(_write_config(tmp_path, """
atlas:
  input: images
  output: build/atlas
fonts:
  - input: fonts/Body.otf
    output: build/body.png
"""))
    assert config.atlas.input == tmp_path / "images"
    assert config.atlas.output == tmp_path / "build/atlas"
    assert (config.atlas.options.padding, config.atlas.options.size) == (4, 1024)

    job = config.fonts[0]
    assert job.input == tmp_path / "fonts/Body.otf"
    assert (job.options.cell, job.options.padding) == (16, 1)
    assert (job.options.width, job.options.height) == (1024, 1024)
    assert job.options.charset == "".join(chr(c) for c in range(32, 127))
    assert job.options.optical_kerning is OpticalKerningMode.OFF
    assert job.outline_output is None and job.meta is None


def test_font_options(tmp_path):
    config = load_config(_write_config(tmp_path, """
fonts:
  - input: a.ttf
    output: a.png
    size: 512x256
    cell: 32
    padding: 3
    charset: "0123456789"
    outline: 2
    outline_output: a-stroke.png
    optical_kerning: outline
    optical_kerning_gap: 2
  - input: b.ttf
    output: b.png
    size: 256
    optical_kerning: off
"""))
    a, b = config.fonts
    assert (a.options.width, a.options.height, a.options.cell) == (512, 256, 32)
    assert a.options.outline == 2
    assert a.outline_output == tmp_path / "a-stroke.png"
    assert a.options.optical_kerning is OpticalKerningMode.OUTLINE
    assert (b.options.width, b.options.height) == (256, 256)
    assert b.options.optical_kerning is OpticalKerningMode.OFF


def test_exclusions_relative_to_images_folder(tmp_path):
    config = load_config(_write_config(tmp_path, """
atlas:
  input: images
  output: out
  exclude: [images/big.png, "*-wip.png", icons/]
"""))
    exclude = config.atlas.options.exclude
    assert exclude.is_match("big.png")
    assert exclude.is_match("ui/ok-wip.png")
    assert exclude.is_match("icons/a/b.png")
    assert not exclude.is_match("ui/ok.png")


@pytest.mark.parametrize("text, match", [
    ("atlas:\n  input: a\n  output: b\n  colour: red\n", "colour"),
    ("atlas:\n  output: b\n", "input"),
    ("atlas:\n  input: a\n  output: b\n  size: big\n", "size"),
    ("fonts:\n  - input: a\n    output: b\n    size: 12by12\n", "WxH"),
    ("fonts:\n  - input: a\n    output: b\n    optical_kerning: sideways\n", "optical_kerning"),
    ("fonts: {input: a}\n", "list"),
    ("extra: 1\n", "extra"),
    ("atlas: [\n", "parse"),
])
def test_invalid_config(tmp_path, text, match):
    with pytest.raises(ConfigError, match=match):
        load_config(_write_config(tmp_path, text))


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="failed to read"):
        load_config(tmp_path / "nope.yaml")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def test_atlas_command_writes_manifest_and_assets(tmp_path, sprite_tree):
    ids = tmp_path / "ids.yaml"
    ids.write_text("atlas_000.png: rbx-1\n")
    out = tmp_path / "out"
    assert main(["atlas", str(sprite_tree), str(out), "--size", "256", "--ids", str(ids)]) == 0

    manifest = yaml.safe_load((out / "atlas.yaml").read_text())
    assert manifest["big.png"]["atlas"] == "atlas_000.png"
    assert manifest["big.png"]["rect"]["w"] == 64

    assets = yaml.safe_load((out / "assets.yaml").read_text())
    assert assets["ui"]["ok.png"]["highlight_id"] == "rbx-1"


def test_atlas_command_reports_errors(tmp_path, sprite_tree, capsys):
    assert main(["atlas", str(sprite_tree), str(tmp_path / "out"), "--size", "300"]) == 1
    assert "[atlas] ERROR" in capsys.readouterr().err


def test_font_command(tmp_path, kerned_font):
    font_path = tmp_path / "Test.otf"
    font_path.write_bytes(kerned_font)
    out = tmp_path / "out" / "test.png"
    assert main(["font", str(font_path), str(out), "--size", "64x64", "--charset", "ABTV",
                 "--outline", "1", "--padding", "2"]) == 0

    with Image.open(out) as img:
        assert img.size == (64, 64)
    assert (tmp_path / "out" / "test_outline.png").exists()

    meta = yaml.safe_load((tmp_path / "out" / "test.yaml").read_text())
    assert meta["font"]["charset"] == "ABTV"
    assert meta["outlineImage"] == "test_outline.png"
    assert [g["ch"] for g in meta["outline"]["glyphs"]] == list("ABTV")
    assert {"left": "A", "right": "B"}.items() <= meta["font"]["kerning"][0].items()


def test_font_command_reports_capacity(tmp_path, capsys):
    font_path = tmp_path / "unused.ttf"
    font_path.write_bytes(b"not parsed")
    assert main(["font", str(font_path), str(tmp_path / "x.png"), "--size", "16x16", "--charset", "AB"]) == 1
    assert "capacity" in capsys.readouterr().err


def test_font_command_checks_geometry_before_reading_the_font(tmp_path, capsys):
    missing = tmp_path / "missing.ttf"
    assert main(["font", str(missing), str(tmp_path / "o.png"), "--cell", "16", "--size", "64x64",
                 "--charset", "ABCDEFGHIJKLMNOPQ"]) == 1
    err = capsys.readouterr().err
    assert "[font] ERROR" in err
    assert "17" in err and "16" in err
    assert "failed to read" not in err


@pytest.mark.parametrize("ids_text", ["atlas_000.png:\n", "- a\n- b\n"])
def test_atlas_command_reports_malformed_ids(tmp_path, sprite_tree, capsys, ids_text):
    ids = tmp_path / "ids.yaml"
    ids.write_text(ids_text)
    assert main(["atlas", str(sprite_tree), str(tmp_path / "out"), "--size", "256", "--ids", str(ids)]) == 1
    err = capsys.readouterr().err
    assert "[atlas] ERROR" in err
    assert "ids.yaml" in err


def test_build_command(tmp_path, plain_font):
    write_png(tmp_path / "images" / "a.png", (10, 10))
    (tmp_path / "Test.otf").write_bytes(plain_font)
    config = _write_config(tmp_path, """
atlas:
  input: images
  output: build/atlas
  size: 256
fonts:
  - input: Test.otf
    output: build/test.png
    size: 64x64
    charset: AB
    meta: build/test-meta.yaml
""")
    assert main(["build", str(config)]) == 0
    assert (tmp_path / "build" / "atlas" / "atlas_000.png").exists()
    assert (tmp_path / "build" / "atlas" / "atlas.yaml").exists()
    assert (tmp_path / "build" / "test.png").exists()
    assert (tmp_path / "build" / "test-meta.yaml").exists()
