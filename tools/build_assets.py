#!/usr/bin/env python3
"""
build_assets.py - Compile every tile-set spec in one pass.

Usage:
  python tools/build_assets.py
  python tools/build_assets.py --tilesets tilesets
  python tools/build_assets.py --tilesets tilesets --preview
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

from gen_paths import TILESET_SUFFIX, TILESETS_ROOT

ATLASC = Path(__file__).resolve().parent / "atlasc.py"


def run(cmd: list[str]) -> None:
    proc = subprocess.run(cmd)
    if proc.returncode != 0:
        sys.exit(proc.returncode)


def find_tile_sets(tilesets_dir: Path) -> list[Path]:
    return sorted(p for p in tilesets_dir.glob(f"*{TILESET_SUFFIX}") if p.is_file())


def atlasc_cmd(spec: Path, preview: bool = False) -> list[str]:
    cmd = [sys.executable, str(ATLASC), str(spec)]
    if preview:
        cmd += ["--preview", "AUTO"]
    return cmd


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--tilesets", default=TILESETS_ROOT, help=f"Directory containing *{TILESET_SUFFIX} files")
    ap.add_argument("--preview", action="store_true", help="Also write preview PNGs")
    args = ap.parse_args(argv)

    tilesets_dir = Path(args.tilesets).resolve()
    if not tilesets_dir.is_dir():
        print(f"Tile-set dir not found: {tilesets_dir}", file=sys.stderr)
        sys.exit(1)

    specs = find_tile_sets(tilesets_dir)
    if not specs:
        print(f"No *{TILESET_SUFFIX} files found in {tilesets_dir}", file=sys.stderr)
        sys.exit(1)

    for spec in specs:
        run(atlasc_cmd(spec, args.preview))


if __name__ == "__main__":
    main()
