"""Asset tree construction and conversion."""

import pytest

from atlaspack.assets import (
    AssetMeta,
    AssetNumber,
    AssetObject,
    AssetString,
    AssetTable,
    atlas_ids_from_assets,
    build_atlased_assets,
    convert_map_to_asset_meta,
    from_plain,
    insert_meta,
    to_plain,
)
from atlaspack.errors import AtlasError
from atlaspack.sprites import Rect, SpritePlacement

PLACEMENTS = {
    "ui/buttons/ok.png": SpritePlacement("atlas_000.png", Rect(4, 4, 32, 16)),
    "ui/buttons/ok-highlight.png": SpritePlacement("atlas_001.png", Rect(4, 4, 32, 16)),
    "logo.png": SpritePlacement("atlas_000.png", Rect(40, 4, 64, 64)),
}
IDS = {"atlas_000.png": "rbx-100", "atlas_001.png": "rbx-101"}


def test_nested_tree_with_highlight():
    tree = to_plain(build_atlased_assets(PLACEMENTS, IDS))
    assert tree["logo.png"] == {
        "id": "rbx-100", "width": 64, "height": 64,
        "rect_x": 40, "rect_y": 4, "rect_w": 64, "rect_h": 64,
    }
    ok = tree["ui"]["buttons"]["ok.png"]
    assert ok["id"] == "rbx-100"
    assert ok["highlight_id"] == "rbx-101"
    assert (ok["highlight_rect_x"], ok["highlight_rect_w"]) == (4, 32)
    # The highlight sprite is an entry of its own, with no highlight of its own.
    assert "highlight_id" not in tree["ui"]["buttons"]["ok-highlight.png"]


def test_missing_atlas_id():
    with pytest.raises(AtlasError, match="atlas_001.png"):
        build_atlased_assets(PLACEMENTS, {"atlas_000.png": "rbx-100"})


def test_insert_replaces_leaf_in_the_way():
    root = AssetTable({"ui": AssetString("old")})
    insert_meta(root, ["ui", "icons", "star.png"], AssetMeta(id="1"))
    assert isinstance(root.entries["ui"], AssetTable)
    assert root.entries["ui"].entries["icons"].entries["star.png"] == AssetObject(AssetMeta(id="1"))


def test_insert_deep_path():
    root = AssetTable()
    path = [f"d{i}" for i in range(2000)] + ["leaf.png"]
    insert_meta(root, path, AssetMeta(id="x"))
    node = root
    for part in path[:-1]:
        node = node.entries[part]
    assert node.entries["leaf.png"].meta.id == "x"


def test_meta_to_dict_keeps_required_fields():
    assert AssetMeta(id="7").to_dict() == {"id": "7", "width": None, "height": None}


def test_convert_map_accepts_camel_and_snake_case():
    meta = convert_map_to_asset_meta({
        "id": AssetNumber(42),
        "width": AssetNumber(8),
        "rectX": AssetString("3"),
        "rect_y": AssetNumber(5),
        "highlightId": AssetString("h"),
        "rectW": AssetNumber(-1),
    })
    assert meta == AssetMeta(id="42", width=8, rect_x=3, rect_y=5, rect_w=None, highlight_id="h")
    assert convert_map_to_asset_meta({"width": AssetNumber(8)}) is None
    assert convert_map_to_asset_meta({"id": AssetTable()}) is None


def test_plain_round_trip_of_built_tree():
    tree = build_atlased_assets(PLACEMENTS, IDS)
    assert to_plain(from_plain(to_plain(tree))) == to_plain(tree)


def test_from_plain_variants():
    assert from_plain("x") == AssetString("x")
    assert from_plain(3) == AssetNumber(3.0)
    assert from_plain(True) == AssetString("true")
    assert isinstance(from_plain({"a": {"b": 1}}), AssetTable)
    assert isinstance(from_plain({"id": "abc"}), AssetObject)
    with pytest.raises(TypeError):
        from_plain([1, 2])


def test_atlas_ids_from_flat_and_nested_trees():
    flat = from_plain({"atlas_000.png": "rbx-1", "atlas_001.png": 12, "notes": "skip"})
    assert atlas_ids_from_assets(flat) == {"atlas_000.png": "rbx-1", "atlas_001.png": "12"}

    nested = from_plain({"uploads": {"atlases": {"atlas_000.png": {"id": "rbx-9", "width": 1024}}}})
    assert atlas_ids_from_assets(nested) == {"atlas_000.png": "rbx-9"}
