import pytest

from atlasc import check_part_counts
from conftest import STOCK_TILESETS, write_json
from tile_formats import (
    CompiledTileSet,
    DecodeFailure,
    IOFailure,
    MissingSourceReference,
    SourceLoader,
    load_compiled_tile_set,
    load_tile_set_source,
    parse_input_format,
    parse_output_format,
    parse_pair,
    parse_tile_source,
    tile_set_stem,
)


def test_input_format_parts_are_sorted():
    fmt = parse_input_format("x.json", {"fmt_name": "f", "parts": {"b": [[1, 0]], "a": [[0, 0], [0, 1]]}})
    assert list(fmt.parts) == ["a", "b"]
    assert fmt.offsets() == [(0, 0), (0, 1), (1, 0)]


def test_output_format_counts():
    fmt = parse_output_format("f.json", "f", {"b": 2, "a": 1})
    assert fmt.name == "f"
    assert list(fmt.counts) == ["a", "b"]
    assert fmt.num_tiles() == 3


@pytest.mark.parametrize("value", [None, [1], [1, 2, 3], ["1", 2], [True, 0], [1.5, 2]])
def test_parse_pair_rejects_bad_shapes(value):
    with pytest.raises(DecodeFailure):
        parse_pair("x.json", value, "loc")


def test_parse_pair_minimum():
    assert parse_pair("x.json", [0, 3], "loc") == (0, 3)
    with pytest.raises(DecodeFailure, match=">= 1"):
        parse_pair("x.json", [0, 16], "tile_size", 1)


def test_tile_source_requires_fields():
    assert parse_tile_source("s.json", {"image_path": "a.png", "tile_size": [8, 8]}).tile_size == (8, 8)
    with pytest.raises(DecodeFailure, match="image_path"):
        parse_tile_source("s.json", {"tile_size": [8, 8]})
    with pytest.raises(DecodeFailure, match="tile_size"):
        parse_tile_source("s.json", {"image_path": "a.png"})


def test_output_format_rejects_negative_count():
    with pytest.raises(DecodeFailure, match="'a'"):
        parse_output_format("f.json", "f", {"a": -1})


def test_tile_set_name_defaults_to_stem(tmp_path):
    path = tmp_path / "caves.tileset.json"
    write_json(path, {"tile_size": [16, 16], "groups": []})
    spec = load_tile_set_source(str(path))
    assert spec.name == "caves"
    assert spec.formats_dir == "formats"
    assert spec.out_tile_set_path == ""


def test_tile_set_group_items(tmp_path):
    path = tmp_path / "t.json"
    write_json(
        path,
        {
            "name": "t",
            "tile_size": [16, 16],
            "formats_dir": "fmts",
            "groups": [{"from": "s.json", "fmt": "f.json", "items": [{"id": "a", "loc": [1, 2]}]}],
        },
    )
    spec = load_tile_set_source(str(path))
    assert spec.formats_dir == "fmts"
    assert spec.groups[0].source == "s.json"
    assert spec.groups[0].items[0].loc == (1, 2)


@pytest.mark.parametrize(
    "group",
    [
        {"fmt": "f.json", "items": []},
        {"from": "s.json", "items": []},
        {"from": "s.json", "fmt": "f.json", "items": [{"loc": [0, 0]}]},
        {"from": "s.json", "fmt": "f.json", "items": [{"id": "a", "loc": [-1, 0]}]},
    ],
)
def test_tile_set_rejects_bad_groups(tmp_path, group):
    path = tmp_path / "t.json"
    write_json(path, {"tile_size": [16, 16], "groups": [group]})
    with pytest.raises(DecodeFailure):
        load_tile_set_source(str(path))


def test_missing_document(tmp_path):
    with pytest.raises(MissingSourceReference):
        load_tile_set_source(str(tmp_path / "nope.tileset.json"))


def test_unreadable_document(tmp_path):
    (tmp_path / "dir.json").mkdir()
    with pytest.raises(IOFailure):
        load_tile_set_source(str(tmp_path / "dir.json"))


def test_tile_set_stem():
    assert tile_set_stem("a/b/dungeon.tileset.json") == "dungeon"
    assert tile_set_stem("plain.json") == "plain"


def test_loader_resolves_against_root(tmp_path):
    loader = SourceLoader(str(tmp_path), "fmts")
    assert loader.resolve("a/../b.json") == str(tmp_path / "b.json")
    assert loader.output_format_path("floor_set") == str(tmp_path / "fmts" / "floor_set.json")


def test_loader_reads_each_document_once(tmp_path):
    write_json(tmp_path / "s.json", {"image_path": "a.png", "tile_size": [8, 8]})
    loader = SourceLoader(str(tmp_path))
    first = loader.tile_source("s.json")
    write_json(tmp_path / "s.json", {"image_path": "b.png", "tile_size": [8, 8]})
    assert loader.tile_source("s.json") is first


@pytest.mark.parametrize("name, tiles", [("floor_set", 16), ("wall_set", 13)])
def test_stock_formats_are_consistent(name, tiles):
    loader = SourceLoader(str(STOCK_TILESETS))
    input_fmt = loader.input_format(f"layouts/{name}.json")
    output_fmt = loader.output_format(input_fmt.fmt_name)
    assert output_fmt.num_tiles() == tiles
    assert len(set(input_fmt.offsets())) == tiles
    check_part_counts("stock", 0, input_fmt, output_fmt)


def test_compiled_tile_set_json(tmp_path):
    compiled = CompiledTileSet(name="t", tile_size=(16, 8), image_path="t.png", fmts={"f": {"a": [(0, 0), (16, 0)]}})
    data = compiled.to_json()
    assert data == {"name": "t", "tile_size": [16, 8], "image_path": "t.png", "fmts": {"f": {"a": [[0, 0], [16, 0]]}}}
    write_json(tmp_path / "t.json", data)
    assert load_compiled_tile_set(str(tmp_path / "t.json")) == compiled


@pytest.mark.parametrize("name", [["x", 1], 7, {"a": "b"}])
def test_tile_set_name_must_be_string(tmp_path, name):
    path = tmp_path / "t.tileset.json"
    write_json(path, {"name": name, "tile_size": [16, 16], "groups": []})
    with pytest.raises(DecodeFailure, match="name must be a string"):
        load_tile_set_source(str(path))


def test_tile_set_null_name_uses_stem(tmp_path):
    path = tmp_path / "caves.tileset.json"
    write_json(path, {"name": None, "tile_size": [16, 16], "groups": []})
    assert load_tile_set_source(str(path)).name == "caves"
