#!/usr/bin/env python3
"""
atlas_preview.py
Render a compiled atlas as an upscaled PNG with the tile grid and item labels.
"""

import argparse
import os
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from tile_formats import CompiledTileSet, TileSetError, load_compiled_tile_set

BACKDROP = (40, 40, 48, 255)
GRID = (90, 90, 100)
LABEL = (255, 230, 80)


def render_preview(atlas: Image.Image, compiled: CompiledTileSet, scale: int = 4) -> Image.Image:
    scale = max(1, scale)
    width, height = atlas.size
    tw, th = compiled.tile_size

    # Transparent pixels show up against a dark backdrop.
    img = Image.new("RGBA", atlas.size, BACKDROP)
    img.alpha_composite(atlas.convert("RGBA"))
    img = img.convert("RGB").resize((width * scale, height * scale), resample=Image.NEAREST)

    draw = ImageDraw.Draw(img)
    for x in range(0, width + 1, tw):
        px = min(x * scale, img.width - 1)
        draw.line([(px, 0), (px, img.height - 1)], fill=GRID)
    for y in range(0, height + 1, th):
        py = min(y * scale, img.height - 1)
        draw.line([(0, py), (img.width - 1, py)], fill=GRID)

    font = ImageFont.load_default()
    for items in compiled.fmts.values():
        for item_id, coords in items.items():
            if not coords:
                continue
            x, y = coords[0]
            draw.text((x * scale + 2, y * scale + 1), item_id, font=font, fill=LABEL)
    return img


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("compiled", help="Compiled tile-set (.json)")
    ap.add_argument("out", help="Output PNG path")
    ap.add_argument("--scale", type=int, default=4, help="Scale factor")
    args = ap.parse_args()

    try:
        compiled = load_compiled_tile_set(args.compiled)
    except TileSetError as e:
        raise SystemExit(f"{os.path.abspath(e.path)}: error: {e}")
    image_path = Path(args.compiled).parent / compiled.image_path
    if not image_path.is_file():
        raise SystemExit(f"{image_path.resolve()}: error: atlas image not found")

    with Image.open(image_path) as atlas:
        img = render_preview(atlas, compiled, args.scale)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(out_path)
    print(f"Wrote {out_path}")


if __name__ == "__main__":
    main()
