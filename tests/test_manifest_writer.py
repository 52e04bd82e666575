import json
import zlib

from reptonatlas.core import AtlasInfo
from reptonatlas.core.manifest_writer import MANIFEST_NAME, hash_sprite, write_manifest

from synthetic import GREY, make_tile


def test_hash_is_crc32_of_rgba_bytes():
    tile = make_tile(GREY, 3)
    assert hash_sprite(tile) == zlib.crc32(tile.tobytes())
    assert hash_sprite(tile) != hash_sprite(make_tile(GREY, 4))


def test_hash_of_non_contiguous_view_matches_copy():
    sheet = make_tile(GREY, 0, size=128)
    view = sheet[:64, 64:]
    assert hash_sprite(view) == hash_sprite(view.copy())


def test_manifest_lists_cells_and_colour_order(tmp_path):
    info = AtlasInfo(
        name="Blue",
        path=tmp_path / "Blue.png",
        columns=2,
        rows=2,
        tile_width=64,
        tile_height=64,
        hashes=[11, 22, 33],
    )
    path = write_manifest([info], tmp_path / "out")
    assert path == tmp_path / "out" / MANIFEST_NAME
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["colours"] == ["Blue", "Cyan", "Green", "Magenta", "Orange", "Red", "Black"]
    blue = data["atlases"]["Blue"]
    assert blue["file"] == "Blue.png"
    assert (blue["columns"], blue["rows"]) == (2, 2)
    assert blue["sprites"][2] == {"index": 2, "x": 0, "y": 64, "hash": 33}
