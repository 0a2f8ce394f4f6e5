#!/usr/bin/env python3
"""
tile_formats.py - Shared tile-set document model for atlasc.py and friends.

Documents (JSON, paths relative to the source root):
  TileSource       {"image_path": "sheets/dungeon.png", "tile_size": [16, 16]}
  InputTileFormat  {"fmt_name": "floor_set", "parts": {"numpad": [[0, 2], ...], ...}}
  OutputTileFormat {"numpad": 9, "top_bottom": 3, ...}   ; <formats_dir>/<fmt_name>.json
  TileSetSource    {"tile_size": [16, 16], "groups": [{"from": ..., "fmt": ..., "items": [...]}]}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

Coord = Tuple[int, int]


class TileSetError(Exception):
    kind = "error"

    def __init__(
        self,
        path: str,
        message: str,
        group: Optional[int] = None,
        fmt: Optional[str] = None,
        item: Optional[str] = None,
    ):
        super().__init__(message)
        self.path = path
        self.message = message
        self.group = group
        self.fmt = fmt
        self.item = item

    def context(self) -> str:
        bits = []
        if self.group is not None:
            bits.append(f"group {self.group}")
        if self.fmt is not None:
            bits.append(f"fmt {self.fmt}")
        if self.item is not None:
            bits.append(f"item {self.item}")
        return ", ".join(bits)

    def __str__(self) -> str:
        ctx = self.context()
        return f"{self.message} ({ctx})" if ctx else self.message


class IOFailure(TileSetError):
    kind = "io"


class DecodeFailure(TileSetError):
    kind = "decode"


class FormatMismatch(TileSetError):
    kind = "format-mismatch"


class PartCountMismatch(TileSetError):
    kind = "part-count-mismatch"


class MissingSourceReference(TileSetError):
    kind = "missing-reference"


class DuplicateItem(TileSetError):
    kind = "duplicate-item"


class PackingOverflow(TileSetError):
    kind = "packing-overflow"


@dataclass(frozen=True)
class TileSource:
    image_path: str
    tile_size: Coord


@dataclass(frozen=True)
class InputTileFormat:
    fmt_name: str
    parts: Dict[str, List[Coord]]    # sorted by part name

    def offsets(self) -> List[Coord]:
        out: List[Coord] = []
        for name in self.parts:
            out.extend(self.parts[name])
        return out


@dataclass(frozen=True)
class OutputTileFormat:
    name: str
    counts: Dict[str, int]

    def num_tiles(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class TileSetSourceItem:
    id: str
    loc: Coord


@dataclass(frozen=True)
class TileSetSourceGroup:
    source: str                      # "from" in the document
    fmt: str
    items: List[TileSetSourceItem]


@dataclass
class TileSetSource:
    name: str
    tile_size: Coord
    groups: List[TileSetSourceGroup]
    out_tile_set_path: str = ""
    out_image_path: str = ""
    formats_dir: str = "formats"


@dataclass
class CompiledTileSet:
    name: str
    tile_size: Coord
    image_path: str
    fmts: Dict[str, Dict[str, List[Coord]]] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "tile_size": list(self.tile_size),
            "image_path": self.image_path,
            "fmts": {
                fmt: {item: [list(c) for c in coords] for item, coords in items.items()}
                for fmt, items in self.fmts.items()
            },
        }


def read_json(path: str, what: str):
    if not os.path.exists(path):
        raise MissingSourceReference(path, f"{what} not found")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DecodeFailure(path, f"invalid JSON in {what}: line {e.lineno} col {e.colno}: {e.msg}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise IOFailure(path, f"cannot read {what}: {e}") from e


def _expect_dict(path: str, data, what: str) -> dict:
    if not isinstance(data, dict):
        raise DecodeFailure(path, f"{what} must be a JSON object")
    return data


def parse_pair(path: str, value, what: str, minimum: int = 0) -> Coord:
    if (
        not isinstance(value, (list, tuple))
        or len(value) != 2
        or not all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    ):
        raise DecodeFailure(path, f"{what} must be a pair of integers, got {value!r}")
    if value[0] < minimum or value[1] < minimum:
        raise DecodeFailure(path, f"{what} must be >= {minimum}, got {list(value)}")
    return int(value[0]), int(value[1])


def parse_tile_source(path: str, data) -> TileSource:
    data = _expect_dict(path, data, "tile source")
    image_path = data.get("image_path")
    if not isinstance(image_path, str) or not image_path:
        raise DecodeFailure(path, "tile source requires image_path")
    if "tile_size" not in data:
        raise DecodeFailure(path, "tile source requires tile_size")
    return TileSource(image_path=image_path, tile_size=parse_pair(path, data["tile_size"], "tile_size", 1))


def parse_input_format(path: str, data) -> InputTileFormat:
    data = _expect_dict(path, data, "input format")
    fmt_name = data.get("fmt_name")
    if not isinstance(fmt_name, str) or not fmt_name:
        raise DecodeFailure(path, "input format requires fmt_name")
    raw_parts = _expect_dict(path, data.get("parts"), "parts")
    parts: Dict[str, List[Coord]] = {}
    for name in sorted(raw_parts):
        offsets = raw_parts[name]
        if not isinstance(offsets, list):
            raise DecodeFailure(path, f"part '{name}' must be a list of [x, y] offsets")
        parts[name] = [parse_pair(path, o, f"offset in part '{name}'") for o in offsets]
    return InputTileFormat(fmt_name=fmt_name, parts=parts)


def parse_output_format(path: str, name: str, data) -> OutputTileFormat:
    data = _expect_dict(path, data, "output format")
    counts: Dict[str, int] = {}
    for part in sorted(data):
        count = data[part]
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise DecodeFailure(path, f"count for part '{part}' must be a non-negative integer")
        counts[part] = count
    return OutputTileFormat(name=name, counts=counts)


def parse_tile_set_source(path: str, data) -> TileSetSource:
    data = _expect_dict(path, data, "tile-set")
    if "tile_size" not in data:
        raise DecodeFailure(path, "tile-set requires tile_size")
    tile_size = parse_pair(path, data["tile_size"], "tile_size", 1)
    raw_groups = data.get("groups", [])
    if not isinstance(raw_groups, list):
        raise DecodeFailure(path, "groups must be a list")

    groups: List[TileSetSourceGroup] = []
    for gi, g in enumerate(raw_groups):
        if not isinstance(g, dict):
            raise DecodeFailure(path, f"group {gi} must be a JSON object")
        src = g.get("from")
        fmt = g.get("fmt")
        if not isinstance(src, str) or not src:
            raise DecodeFailure(path, f"group {gi} requires from=")
        if not isinstance(fmt, str) or not fmt:
            raise DecodeFailure(path, f"group {gi} requires fmt=")
        raw_items = g.get("items", [])
        if not isinstance(raw_items, list):
            raise DecodeFailure(path, f"group {gi} items must be a list")
        items = []
        for it in raw_items:
            if not isinstance(it, dict) or not isinstance(it.get("id"), str) or not it["id"]:
                raise DecodeFailure(path, f"group {gi} item requires a string id: {it!r}")
            loc = parse_pair(path, it.get("loc"), f"loc of item '{it['id']}'")
            items.append(TileSetSourceItem(id=it["id"], loc=loc))
        groups.append(TileSetSourceGroup(source=src, fmt=fmt, items=items))

    name = data.get("name")
    if name is not None and not isinstance(name, str):
        raise DecodeFailure(path, "name must be a string")
    name = name or tile_set_stem(path)
    fields = {}
    for key in ("out_tile_set_path", "out_image_path", "formats_dir"):
        if key in data:
            if not isinstance(data[key], str):
                raise DecodeFailure(path, f"{key} must be a string")
            fields[key] = data[key]
    return TileSetSource(name=name, tile_size=tile_size, groups=groups, **fields)


def load_compiled_tile_set(path: str) -> CompiledTileSet:
    data = _expect_dict(path, read_json(path, "compiled tile-set"), "compiled tile-set")
    image_path = data.get("image_path")
    if not isinstance(image_path, str):
        raise DecodeFailure(path, "compiled tile-set requires image_path")
    fmts = _expect_dict(path, data.get("fmts", {}), "fmts")
    out = CompiledTileSet(
        name=str(data.get("name") or tile_set_stem(path)),
        tile_size=parse_pair(path, data.get("tile_size"), "tile_size", 1),
        image_path=image_path,
    )
    for fmt, items in fmts.items():
        items = _expect_dict(path, items, f"fmt '{fmt}'")
        out.fmts[fmt] = {
            item_id: [parse_pair(path, c, f"coordinate of '{item_id}'") for c in coords]
            for item_id, coords in items.items()
        }
    return out


def tile_set_stem(path: str) -> str:
    base = os.path.basename(path)
    for suffix in (".tileset.json", ".json"):
        if base.endswith(suffix):
            return base[: -len(suffix)]
    return os.path.splitext(base)[0]


def load_tile_set_source(path: str) -> TileSetSource:
    return parse_tile_set_source(path, read_json(path, "tile-set"))


class SourceLoader:
    """Resolves document references against a source root.

    Each document is read at most once per loader, so one compile never sees
    two versions of the same file.
    """

    def __init__(self, root: str, formats_dir: str = "formats"):
        self.root = root
        self.formats_dir = formats_dir
        self._sources: Dict[str, TileSource] = {}
        self._inputs: Dict[str, InputTileFormat] = {}
        self._outputs: Dict[str, OutputTileFormat] = {}

    def resolve(self, ref: str) -> str:
        if os.path.isabs(ref):
            return ref
        return os.path.normpath(os.path.join(self.root, ref))

    def tile_source(self, ref: str) -> TileSource:
        if ref not in self._sources:
            path = self.resolve(ref)
            self._sources[ref] = parse_tile_source(path, read_json(path, "tile source"))
        return self._sources[ref]

    def input_format(self, ref: str) -> InputTileFormat:
        if ref not in self._inputs:
            path = self.resolve(ref)
            self._inputs[ref] = parse_input_format(path, read_json(path, "input format"))
        return self._inputs[ref]

    def output_format_path(self, fmt_name: str) -> str:
        return self.resolve(os.path.join(self.formats_dir, f"{fmt_name}.json"))

    def output_format(self, fmt_name: str) -> OutputTileFormat:
        if fmt_name not in self._outputs:
            path = self.output_format_path(fmt_name)
            self._outputs[fmt_name] = parse_output_format(path, fmt_name, read_json(path, "output format"))
        return self._outputs[fmt_name]

    def image_path(self, source: TileSource) -> str:
        return self.resolve(source.image_path)
