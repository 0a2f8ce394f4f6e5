import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

STOCK_TILESETS = Path(__file__).resolve().parent.parent / "tilesets"


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def tile_of(pixels: np.ndarray, tile_coord, tile_size=(16, 16)) -> np.ndarray:
    tw, th = tile_size
    x, y = tile_coord[0] * tw, tile_coord[1] * th
    return pixels[y:y + th, x:x + tw]


class TileSetBuilder:
    """Writes sheets and documents for a throwaway tile-set under one source root."""

    def __init__(self, root: Path):
        self.root = root

    def sheet(self, name, cols, rows, tile_size=(16, 16), seed=0, source_tile_size=None):
        rng = np.random.default_rng(seed)
        pixels = rng.integers(0, 256, size=(rows * tile_size[1], cols * tile_size[0], 4), dtype=np.uint8)
        sheet_path = self.root / "sheets" / f"{name}.png"
        sheet_path.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(pixels).save(sheet_path)
        write_json(
            self.root / "sources" / f"{name}.json",
            {"image_path": f"sheets/{name}.png", "tile_size": list(source_tile_size or tile_size)},
        )
        return f"sources/{name}.json", pixels

    def fmt(self, fmt_name, parts, counts, layout=None):
        layout = layout or fmt_name
        write_json(self.root / "formats" / f"{fmt_name}.json", counts)
        write_json(self.root / "layouts" / f"{layout}.json", {"fmt_name": fmt_name, "parts": parts})
        return f"layouts/{layout}.json"

    def stock_fmt(self, fmt_name):
        for sub in ("formats", "layouts"):
            src = STOCK_TILESETS / sub / f"{fmt_name}.json"
            dst = self.root / sub / f"{fmt_name}.json"
            dst.parent.mkdir(parents=True, exist_ok=True)
            dst.write_bytes(src.read_bytes())
        return f"layouts/{fmt_name}.json"

    def spec(self, groups, name="test", tile_size=(16, 16), **extra):
        data = {"name": name, "tile_size": list(tile_size), "groups": groups}
        data.update(extra)
        path = self.root / f"{name}.tileset.json"
        write_json(path, data)
        return path


def group(source, fmt, *items):
    return {"from": source, "fmt": fmt, "items": [{"id": i, "loc": list(loc)} for i, loc in items]}


@pytest.fixture
def builder(tmp_path):
    root = tmp_path / "src"
    root.mkdir()
    return TileSetBuilder(root)


@pytest.fixture
def worked_example(builder):
    """16x16 tiles, one 4x4 sheet, parts a=[(0,0)] b=[(1,0),(1,1)], one item x at (0,0)."""
    source, pixels = builder.sheet("sheet", 4, 4)
    layout = builder.fmt("ab", {"a": [[0, 0]], "b": [[1, 0], [1, 1]]}, {"a": 1, "b": 2})
    spec = builder.spec([group(source, layout, ("x", (0, 0)))], name="example")
    return spec, pixels
