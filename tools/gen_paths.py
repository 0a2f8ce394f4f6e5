"""
gen_paths.py - Default output roots shared by the asset tools (relative to the project root).
"""

GEN_ROOT = "gen"
ANALYSIS_ROOT = "gen/analysis"
TILESETS_ROOT = "tilesets"
TILESET_SUFFIX = ".tileset.json"
