"""
Path-keyed asset metadata for packed sprites.

Sprite keys such as "ui/buttons/ok.png" become nested tables
{"ui": {"buttons": {"ok.png": <AssetMeta>}}}. Each leaf records the uploaded
atlas id and the sprite's rect within that atlas; "X.png" entries pick up the
rect of a sibling "X-highlight.png" when one was packed.

Tree values are a closed set of variants (AssetString, AssetNumber,
AssetObject, AssetTable); code that walks a tree handles each explicitly.
"""

from dataclasses import dataclass, field, fields

from .errors import AtlasError
from .sprites import SpritePlacement

HIGHLIGHT_SUFFIX = "-highlight.png"


@dataclass
class AssetMeta:
    id: str
    width: int | None = None
    height: int | None = None
    rect_x: int | None = None
    rect_y: int | None = None
    rect_w: int | None = None
    rect_h: int | None = None
    highlight_id: str | None = None
    highlight_rect_x: int | None = None
    highlight_rect_y: int | None = None
    highlight_rect_w: int | None = None
    highlight_rect_h: int | None = None

    def to_dict(self) -> dict:
        """Plain mapping; optional rect/highlight fields are left out when unset."""
        out = {"id": self.id, "width": self.width, "height": self.height}
        for f in fields(self):
            if f.name in out:
                continue
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = value
        return out


@dataclass(frozen=True)
class AssetString:
    value: str


@dataclass(frozen=True)
class AssetNumber:
    value: float


@dataclass(frozen=True)
class AssetObject:
    meta: AssetMeta


@dataclass
class AssetTable:
    entries: dict = field(default_factory=dict)


AssetValue = AssetString | AssetNumber | AssetObject | AssetTable


def split_key(key: str) -> list[str]:
    return [part for part in key.split("/") if part]


def insert_meta(root: AssetTable, path: list[str], meta: AssetMeta) -> None:
    """
    Store `meta` at `path`, creating intermediate tables.

    An existing non-table entry in the way is replaced by an empty table.
    """
    if not path:
        return
    cursor = root
    for part in path[:-1]:
        entry = cursor.entries.get(part)
        if not isinstance(entry, AssetTable):
            entry = AssetTable()
            cursor.entries[part] = entry
        cursor = entry
    cursor.entries[path[-1]] = AssetObject(meta)


def build_atlased_assets(placements: dict[str, SpritePlacement],
                         atlas_ids: dict[str, str]) -> AssetTable:
    """
    Turn sprite placements plus uploaded atlas ids into an asset tree.

    `atlas_ids` maps atlas file names (atlas_000.png, ...) to the ids the
    upload step assigned. A placement whose atlas has no id is an error.
    """
    root = AssetTable()
    for key in sorted(placements):
        placement = placements[key]
        atlas_id = atlas_ids.get(placement.atlas_file_name)
        if atlas_id is None:
            raise AtlasError(f"missing atlas id for {placement.atlas_file_name}")

        rect = placement.rect
        meta = AssetMeta(
            id=atlas_id,
            width=rect.w,
            height=rect.h,
            rect_x=rect.x,
            rect_y=rect.y,
            rect_w=rect.w,
            rect_h=rect.h,
        )

        if not key.endswith(HIGHLIGHT_SUFFIX):
            highlight = placements.get(key.replace(".png", HIGHLIGHT_SUFFIX))
            if highlight is not None and highlight.atlas_file_name in atlas_ids:
                meta.highlight_id = atlas_ids[highlight.atlas_file_name]
                meta.highlight_rect_x = highlight.rect.x
                meta.highlight_rect_y = highlight.rect.y
                meta.highlight_rect_w = highlight.rect.w
                meta.highlight_rect_h = highlight.rect.h

        insert_meta(root, split_key(key), meta)
    return root


def to_plain(value: AssetValue):
    """Convert a tree into plain dicts/strings/numbers for YAML or JSON output."""
    if isinstance(value, AssetString):
        return value.value
    if isinstance(value, AssetNumber):
        return value.value
    if isinstance(value, AssetObject):
        return value.meta.to_dict()
    if isinstance(value, AssetTable):
        return {k: to_plain(v) for k, v in sorted(value.entries.items())}
    raise TypeError(f"not an asset value: {value!r}")


def from_plain(value) -> AssetValue:
    """
    Convert plain data back into a tree. Mappings with an "id" that parse as
    AssetMeta become objects; other mappings become tables.
    """
    if isinstance(value, bool):
        return AssetString(str(value).lower())
    if isinstance(value, (int, float)):
        return AssetNumber(float(value))
    if isinstance(value, str):
        return AssetString(value)
    if isinstance(value, dict):
        table = AssetTable({str(k): from_plain(v) for k, v in value.items()})
        meta = convert_map_to_asset_meta(table.entries)
        return AssetObject(meta) if meta is not None else table
    raise TypeError(f"unsupported asset value: {value!r}")


def asset_value_to_string(value: AssetValue) -> str | None:
    if isinstance(value, AssetString):
        return value.value
    if isinstance(value, AssetNumber):
        return f"{value.value:g}"
    if isinstance(value, AssetObject):
        return value.meta.id
    return None


def value_as_int(value: AssetValue) -> int | None:
    if isinstance(value, AssetNumber):
        return int(value.value) if value.value >= 0 else None
    if isinstance(value, AssetString):
        try:
            number = int(value.value)
        except ValueError:
            return None
        return number if number >= 0 else None
    return None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def convert_map_to_asset_meta(entries: dict) -> AssetMeta | None:
    """
    Read an AssetMeta from table entries. Keys may be camelCase ("rectX") or
    snake_case ("rect_x"). Returns None without a usable "id".
    """
    if "id" not in entries:
        return None
    asset_id = asset_value_to_string(entries["id"])
    if asset_id is None:
        return None

    values = {}
    for f in fields(AssetMeta):
        if f.name == "id":
            continue
        raw = entries.get(_camel(f.name), entries.get(f.name))
        if raw is None:
            values[f.name] = None
        elif f.name == "highlight_id":
            values[f.name] = asset_value_to_string(raw)
        else:
            values[f.name] = value_as_int(raw)
    return AssetMeta(id=asset_id, **values)


def atlas_ids_from_assets(tree: AssetTable) -> dict[str, str]:
    """
    Collect {atlas file name: id} from an uploaded-asset tree, at any depth.

    Leaves may be plain ids (strings or numbers) or objects carrying an id; only keys
    ending in ".png" are considered.
    """
    out = {}
    pending = [tree]
    while pending:
        table = pending.pop()
        for key, value in table.entries.items():
            if isinstance(value, AssetTable):
                pending.append(value)
            elif key.endswith(".png") and isinstance(value, (AssetString, AssetNumber, AssetObject)):
                out[key] = asset_value_to_string(value)
    return out
