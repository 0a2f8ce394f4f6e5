#!/usr/bin/env python3
"""
atlasc.py - Compile a tile-set spec (.tileset.json) into a packed RGBA atlas + coordinate map.

Outputs:
  - .json     Compiled tile-set: tile_size, image_path, fmts[fmt_name][item_id] -> [[x, y], ...]
  - .png      Atlas image (lossless RGBA)
  - .sym      Human-readable placement dump
  - .png      Optional upscaled preview with grid + item labels

Usage:
  python tools/atlasc.py tilesets/dungeon.tileset.json -o gen/assets/dungeon.json \
      --image gen/assets/dungeon.png --sym dungeon.sym --preview dungeon_preview.png

Spec:
  {
    "name": "dungeon",
    "tile_size": [16, 16],
    "groups": [
      {"from": "sources/dungeon.json", "fmt": "layouts/floor_set.json",
       "items": [{"id": "stone", "loc": [0, 0]}, {"id": "grass", "loc": [0, 3]}]}
    ]
  }

Compiling is two passes: every group is resolved and validated and the atlas
is measured before a single pixel is copied. Nothing is written unless the
whole tile-set compiles.
"""

from __future__ import annotations

import argparse
import io
import json
import math
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from atlas_preview import render_preview
from gen_paths import ANALYSIS_ROOT, GEN_ROOT
from tile_formats import (
    CompiledTileSet,
    Coord,
    DecodeFailure,
    DuplicateItem,
    FormatMismatch,
    InputTileFormat,
    IOFailure,
    MissingSourceReference,
    OutputTileFormat,
    PackingOverflow,
    PartCountMismatch,
    SourceLoader,
    TileSetError,
    TileSetSource,
    TileSetSourceItem,
    TileSource,
    load_tile_set_source,
)


@dataclass
class ResolvedGroup:
    index: int
    source: TileSource
    image_path: str
    input_fmt: InputTileFormat
    output_fmt: OutputTileFormat
    items: List[TileSetSourceItem]
    grid: Coord                      # sheet size in tiles

    @property
    def fmt_name(self) -> str:
        return self.input_fmt.fmt_name

    def num_tiles(self) -> int:
        return self.output_fmt.num_tiles() * len(self.items)


@dataclass(frozen=True)
class AtlasPlan:
    total_tiles: int
    side: int                        # in tiles
    width: int                       # in pixels
    height: int


@dataclass
class Assembly:
    compiled: CompiledTileSet
    atlas: np.ndarray
    plan: AtlasPlan
    groups: List[ResolvedGroup] = field(default_factory=list)


@dataclass
class CompileResult:
    name: str
    plan: AtlasPlan
    written: List[Tuple[str, int]] = field(default_factory=list)


# ----------------------------
# Images
# ----------------------------

def sheet_size(path: str) -> Tuple[int, int]:
    """Pixel size of a sheet, read from the image header only."""
    if not os.path.isfile(path):
        raise MissingSourceReference(path, "tile sheet image not found")
    try:
        with Image.open(path) as im:
            return im.size
    except UnidentifiedImageError as e:
        raise DecodeFailure(path, f"cannot decode tile sheet: {e}") from e
    except OSError as e:
        raise IOFailure(path, f"cannot read tile sheet: {e}") from e


def load_sheet(path: str) -> np.ndarray:
    if not os.path.isfile(path):
        raise MissingSourceReference(path, "tile sheet image not found")
    try:
        with Image.open(path) as im:
            return np.array(im.convert("RGBA"), dtype=np.uint8)
    except UnidentifiedImageError as e:
        raise DecodeFailure(path, f"cannot decode tile sheet: {e}") from e
    except OSError as e:
        raise IOFailure(path, f"cannot read tile sheet: {e}") from e


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, "PNG")
    return buf.getvalue()


# ----------------------------
# Pass 1: resolve + validate
# ----------------------------

def check_part_counts(path: str, group: int, input_fmt: InputTileFormat, output_fmt: OutputTileFormat) -> None:
    """Input and output formats must name the same parts with the same counts.

    A part the output format does not declare is rejected too: the capacity
    plan only counts declared parts, so its tiles would have no room.
    """
    for part, count in output_fmt.counts.items():
        got = len(input_fmt.parts.get(part, []))
        if got != count:
            raise PartCountMismatch(
                path,
                f"part '{part}' has {got} offset(s) but output format declares {count}",
                group=group,
                fmt=input_fmt.fmt_name,
            )
    for part in input_fmt.parts:
        if part not in output_fmt.counts:
            raise PartCountMismatch(
                path,
                f"part '{part}' is not declared by output format",
                group=group,
                fmt=input_fmt.fmt_name,
            )


def resolve_group(spec: TileSetSource, loader: SourceLoader, index: int) -> ResolvedGroup:
    group = spec.groups[index]
    source = loader.tile_source(group.source)
    if source.tile_size != spec.tile_size:
        raise FormatMismatch(
            loader.resolve(group.source),
            f"tile_size {source.tile_size[0]}x{source.tile_size[1]} does not match "
            f"tile-set tile_size {spec.tile_size[0]}x{spec.tile_size[1]}",
            group=index,
        )
    input_fmt = loader.input_format(group.fmt)
    output_fmt = loader.output_format(input_fmt.fmt_name)
    check_part_counts(loader.resolve(group.fmt), index, input_fmt, output_fmt)

    image_path = loader.image_path(source)
    w, h = sheet_size(image_path)
    tw, th = spec.tile_size
    grid = (w // tw, h // th)
    offsets = input_fmt.offsets()
    for item in group.items:
        for ox, oy in offsets:
            tx, ty = item.loc[0] + ox, item.loc[1] + oy
            if tx >= grid[0] or ty >= grid[1]:
                raise MissingSourceReference(
                    image_path,
                    f"tile ({tx},{ty}) is outside the {grid[0]}x{grid[1]} tile sheet",
                    group=index,
                    fmt=input_fmt.fmt_name,
                    item=item.id,
                )

    return ResolvedGroup(
        index=index,
        source=source,
        image_path=image_path,
        input_fmt=input_fmt,
        output_fmt=output_fmt,
        items=list(group.items),
        grid=grid,
    )


def resolve_tile_set(spec: TileSetSource, loader: SourceLoader, path: str = "") -> List[ResolvedGroup]:
    resolved: List[ResolvedGroup] = []
    seen: Dict[Tuple[str, str], int] = {}
    for index in range(len(spec.groups)):
        try:
            rg = resolve_group(spec, loader, index)
        except TileSetError as e:
            if e.group is None:
                e.group = index
            raise
        for item in rg.items:
            key = (rg.fmt_name, item.id)
            if key in seen:
                raise DuplicateItem(
                    path,
                    f"item id already used in group {seen[key]}",
                    group=index,
                    fmt=rg.fmt_name,
                    item=item.id,
                )
            seen[key] = index
        resolved.append(rg)
    return resolved


# ----------------------------
# Capacity
# ----------------------------

def plan_capacity(groups: List[ResolvedGroup], tile_size: Coord) -> AtlasPlan:
    total = sum(g.num_tiles() for g in groups)
    # Square with at least one spare row/column.
    side = math.isqrt(total) + 1
    assert side * side > total
    return AtlasPlan(total_tiles=total, side=side, width=side * tile_size[0], height=side * tile_size[1])


# ----------------------------
# Pass 2: pack
# ----------------------------

class PackingCursor:
    """Raster-order placement of fixed-size tiles into one RGBA atlas buffer."""

    def __init__(self, plan: AtlasPlan, tile_size: Coord, path: str = ""):
        self.tile_size = tile_size
        self.width = plan.width
        self.height = plan.height
        self.atlas = np.zeros((plan.height, plan.width, 4), dtype=np.uint8)
        self.loc = (0, 0)
        self.path = path

    def copy_rect(self, source: np.ndarray, src: Coord, dst: Coord) -> bool:
        tw, th = self.tile_size
        sx, sy = src
        dx, dy = dst
        if dx < 0 or dy < 0 or dx + tw > self.width or dy + th > self.height:
            return False
        self.atlas[dy:dy + th, dx:dx + tw] = source[sy:sy + th, sx:sx + tw]
        return True

    def place(self, source: np.ndarray, tile_coord: Coord) -> Coord:
        tw, th = self.tile_size
        sx = tile_coord[0] * tw
        sy = tile_coord[1] * th
        if sx + tw > source.shape[1] or sy + th > source.shape[0]:
            raise MissingSourceReference(self.path, f"tile ({tile_coord[0]},{tile_coord[1]}) is outside the source sheet")

        dest = self.loc
        if not self.copy_rect(source, (sx, sy), dest):
            raise PackingOverflow(
                self.path,
                f"couldn't fit tile at ({dest[0]},{dest[1]}) into {self.width}x{self.height} atlas",
            )

        x, y = dest[0] + tw, dest[1]
        if x + tw > self.width:
            x = 0
            y += th
        self.loc = (x, y)
        return dest


def assemble_tile_set(spec: TileSetSource, loader: SourceLoader, image_path: str = "", path: str = "") -> Assembly:
    groups = resolve_tile_set(spec, loader, path)
    plan = plan_capacity(groups, spec.tile_size)

    cursor = PackingCursor(plan, spec.tile_size, path)
    compiled = CompiledTileSet(name=spec.name, tile_size=spec.tile_size, image_path=image_path)

    for g in groups:
        sheet = load_sheet(g.image_path)
        cursor.path = g.image_path
        items = compiled.fmts.setdefault(g.fmt_name, {})
        offsets = g.input_fmt.offsets()
        for item in g.items:
            if item.id in items:
                raise DuplicateItem(path, "item id already compiled", group=g.index, fmt=g.fmt_name, item=item.id)
            x, y = item.loc
            items[item.id] = [cursor.place(sheet, (x + ox, y + oy)) for ox, oy in offsets]

    return Assembly(compiled=compiled, atlas=cursor.atlas, plan=plan, groups=groups)


# ----------------------------
# Outputs
# ----------------------------

def make_sym(compiled: CompiledTileSet, plan: AtlasPlan) -> str:
    tw, th = compiled.tile_size
    sym: List[str] = []
    sym.append(f'TILESET name="{compiled.name}" tileSize={tw}x{th} image={compiled.image_path}\n')
    sym.append(f"ATLAS tiles={plan.total_tiles} side={plan.side} size={plan.width}x{plan.height}\n")
    for fmt, items in compiled.fmts.items():
        sym.append(f"\nFMT {fmt}\n")
        for item_id, coords in items.items():
            placed = " ".join(f"({x},{y})" for x, y in coords)
            sym.append(f"  {item_id}: {placed}\n")
    return "".join(sym)


def write_outputs(outputs: List[Tuple[str, bytes]]) -> List[Tuple[str, int]]:
    written = []
    for path, data in outputs:
        try:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise IOFailure(path, f"cannot write output: {e}") from e
        written.append((path, len(data)))
    return written


def _auto_path(value: str, name: str, suffix: str) -> str:
    if value == "AUTO":
        return os.path.join(ANALYSIS_ROOT, "tilesets", f"{name}{suffix}")
    return value


def compile_tile_set(
    spec_path: str,
    output: str = "",
    image: str = "",
    root: str = "",
    sym: str = "",
    preview: str = "",
    preview_scale: int = 4,
) -> CompileResult:
    spec = load_tile_set_source(spec_path)
    if not root:
        root = os.path.dirname(os.path.abspath(spec_path))
    loader = SourceLoader(root, spec.formats_dir)

    if not output:
        if spec.out_tile_set_path:
            output = loader.resolve(spec.out_tile_set_path)
        else:
            output = os.path.join(GEN_ROOT, "assets", f"{spec.name}.json")
    if not image:
        if spec.out_image_path:
            image = loader.resolve(spec.out_image_path)
        else:
            image = os.path.join(GEN_ROOT, "assets", f"{spec.name}.png")
    sym = _auto_path(sym, spec.name, ".sym")
    preview = _auto_path(preview, spec.name, "_preview.png")

    rel_image = os.path.relpath(os.path.abspath(image), os.path.dirname(os.path.abspath(output)))
    rel_image = rel_image.replace("\\", "/")

    assembly = assemble_tile_set(spec, loader, rel_image, spec_path)
    atlas_image = Image.fromarray(assembly.atlas)

    outputs: List[Tuple[str, bytes]] = [
        (output, (json.dumps(assembly.compiled.to_json(), indent=2) + "\n").encode("utf-8")),
        (image, encode_png(atlas_image)),
    ]
    if sym:
        outputs.append((sym, make_sym(assembly.compiled, assembly.plan).encode("utf-8")))
    if preview:
        outputs.append((preview, encode_png(render_preview(atlas_image, assembly.compiled, preview_scale))))

    written = write_outputs(outputs)
    return CompileResult(name=spec.name, plan=assembly.plan, written=written)


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("input", help="Input tile-set spec (.tileset.json)")
    ap.add_argument("-o", "--output", default="", help="Output compiled tile-set (.json)")
    ap.add_argument("--image", default="", help="Output atlas image (.png)")
    ap.add_argument("--root", default="", help="Source root for document references (default: spec directory)")
    ap.add_argument("--sym", default="AUTO", help="Output .sym (empty to skip)")
    ap.add_argument("--preview", default="", help="Output preview .png (AUTO for the analysis dir)")
    ap.add_argument("--preview-scale", type=int, default=4, help="Preview scale factor")
    args = ap.parse_args(argv)

    try:
        result = compile_tile_set(
            args.input,
            output=args.output,
            image=args.image,
            root=args.root,
            sym=args.sym,
            preview=args.preview,
            preview_scale=args.preview_scale,
        )
    except TileSetError as e:
        path = os.path.abspath(e.path or args.input)
        print(f"{path}: error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        path = os.path.abspath(args.input)
        print(f"{path}: error: {e}", file=sys.stderr)
        sys.exit(1)

    for path, size in result.written:
        print(f"Wrote {path} ({size} bytes)")


if __name__ == "__main__":
    main()
