#!/usr/bin/env python3
"""
watch_assets.py - Recompile all tile-sets when specs, format documents or sheets change.

Usage:
  python tools/watch_assets.py --tilesets tilesets
  python tools/watch_assets.py --once
  python tools/watch_assets.py /path/to/project

Every rebuild compiles each tile-set from scratch.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
import threading
import time
from pathlib import Path

from build_assets import atlasc_cmd, find_tile_sets
from gen_paths import GEN_ROOT, TILESETS_ROOT
from tile_formats import TileSetError, load_tile_set_source

Observer = None
FileSystemEventHandler = None

WATCHED_SUFFIXES = (".json", ".png")


def _try_load_watchdog() -> bool:
    global Observer, FileSystemEventHandler
    try:
        from watchdog.observers import Observer as _Observer
        from watchdog.events import FileSystemEventHandler as _Handler
    except ImportError:
        return False
    Observer = _Observer
    FileSystemEventHandler = _Handler
    return True


def run(cmd: list[str], cwd: Path | None = None) -> bool:
    proc = subprocess.run(cmd, cwd=cwd)
    return proc.returncode == 0


def run_once(tilesets_dir: Path, preview: bool = False, cwd: Path | None = None) -> bool:
    ok = True
    for spec in find_tile_sets(tilesets_dir):
        if not run(atlasc_cmd(spec, preview), cwd):
            ok = False
    return ok


def declared_outputs(tilesets_dir: Path) -> set[Path]:
    """Output files the tile-set specs place with out_tile_set_path / out_image_path."""
    outputs: set[Path] = set()
    for spec_path in find_tile_sets(tilesets_dir):
        try:
            spec = load_tile_set_source(str(spec_path))
        except TileSetError:
            # atlasc reports the broken spec on the next rebuild
            continue
        for rel in (spec.out_tile_set_path, spec.out_image_path):
            if rel:
                outputs.add((spec_path.parent / rel).resolve())
    return outputs


def is_watched(path: str, gen_dir: Path, outputs: set[Path] | None = None) -> bool:
    if not path.endswith(WATCHED_SUFFIXES):
        return False
    if outputs and Path(path).resolve() in outputs:
        return False
    try:
        Path(path).resolve().relative_to(gen_dir.resolve())
    except ValueError:
        return True
    return False


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("root", nargs="?", default=".", help="Project root (default: .)")
    ap.add_argument("--tilesets", default=TILESETS_ROOT, help="Directory containing tile-set specs")
    ap.add_argument("--interval", type=float, default=0.5, help="Polling interval in seconds")
    ap.add_argument("--once", action="store_true", help="Run a single pass and exit")
    ap.add_argument("--preview", action="store_true", help="Also write preview PNGs")
    args = ap.parse_args()

    root = Path(args.root).resolve()
    tilesets_dir = (root / args.tilesets).resolve()
    gen_dir = (root / GEN_ROOT).resolve()

    if not tilesets_dir.is_dir():
        print(f"{tilesets_dir}: error: Tile-set dir not found", file=sys.stderr)
        sys.exit(1)

    if args.once:
        if not run_once(tilesets_dir, args.preview, root):
            sys.exit(1)
        return

    if not _try_load_watchdog():
        print("watchdog not found. Install into the active interpreter:", file=sys.stderr)
        print(f"  {sys.executable} -m pip install watchdog", file=sys.stderr)
        sys.exit(1)

    lock = threading.Lock()

    def run_cycle():
        with lock:
            print("ASSETGEN START")
            run_once(tilesets_dir, args.preview, root)
            print("ASSETGEN END")

    class AssetsHandler(FileSystemEventHandler):
        def on_modified(self, event):
            if event.is_directory or not is_watched(event.src_path, gen_dir, declared_outputs(tilesets_dir)):
                return
            run_cycle()

        def on_created(self, event):
            if event.is_directory or not is_watched(event.src_path, gen_dir, declared_outputs(tilesets_dir)):
                return
            run_cycle()

    observer = Observer()
    observer.schedule(AssetsHandler(), str(tilesets_dir), recursive=True)
    observer.start()

    run_cycle()

    try:
        while True:
            time.sleep(args.interval)
    except KeyboardInterrupt:
        observer.stop()
    observer.join()


if __name__ == "__main__":
    main()
