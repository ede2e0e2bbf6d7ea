import os

import geopandas as gpd
import pytest
from shapely.geometry import box

from conftest import CODES
from helper.metadata import (
    collection_metadata,
    findblocks_bc,
    load_borders,
    load_metadata,
    merge_config,
    metadata_bc,
    metadata_path,
    save_metadata,
)


def test_merge_config_is_recursive():
    base = {"out": {"name": "fire", "fname": {"shp": {}, "tif": {"full": {"a": "a.tif"}}}}}
    update = {"out": {"fname": {"tif": {"full": {"b": "b.tif"}}}, "code": ["x"]}}
    merged = merge_config(base, update)
    assert merged["out"]["fname"]["tif"]["full"] == {"a": "a.tif", "b": "b.tif"}
    assert merged["out"]["code"] == ["x"]
    assert merged["out"]["name"] == "fire"
    # base is not modified
    assert "b" not in base["out"]["fname"]["tif"]["full"]


def test_merge_config_replaces_leaves():
    assert merge_config({"code": {"zone": ["A"]}}, {"code": ["B"]}) == {"code": ["B"]}
    assert merge_config({"a": 1}, None) == {"a": 1}


class TestCollectionMetadata:
    def test_defaults(self, tmp_path):
        data_dir = str(tmp_path)
        cfg = collection_metadata("fire", data_dir)
        assert cfg["src"] == {"name": "fire", "dir": os.path.join(data_dir, "fire", "source")}
        assert cfg["out"]["dir"] == os.path.join(data_dir, "fire")
        assert cfg["out"]["fname"] == {"shp": {}, "tif": {"full": {}, "block": {}}}
        assert os.path.isdir(cfg["src"]["dir"])

    def test_overrides(self, tmp_path):
        cfg = collection_metadata(
            "fire",
            str(tmp_path),
            cfg_src={"web": "https://example.com/fire.zip"},
            cfg_out={"fname": {"shp": {"std": "fire_std.shp"}}},
        )
        assert cfg["src"]["web"] == "https://example.com/fire.zip"
        assert cfg["src"]["name"] == "fire"
        assert cfg["out"]["fname"]["shp"] == {"std": "fire_std.shp"}
        assert cfg["out"]["fname"]["tif"] == {"full": {}, "block": {}}

    def test_previous_metadata_is_kept(self, tmp_path):
        previous = collection_metadata("gfc", str(tmp_path), cfg_out={"code": {"loss": [1]}})
        cfg = collection_metadata("gfc", str(tmp_path), cfg_in=previous, cfg_src={"year": 2018})
        assert cfg["out"]["code"] == {"loss": [1]}
        assert cfg["src"]["year"] == 2018


class TestSaveLoad:
    def test_round_trip(self, tmp_path):
        cfg = collection_metadata("pine", str(tmp_path), cfg_out={"code": {"a": ["b"]}})
        path = metadata_path("pine", str(tmp_path))
        save_metadata(cfg, path)
        assert load_metadata(path) == cfg

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_metadata(metadata_path("pine", str(tmp_path)))

    def test_metadata_bc(self, data_dir):
        save_metadata(collection_metadata("dem", data_dir), metadata_path("dem", data_dir))
        cfg = metadata_bc(data_dir)
        assert list(cfg) == ["borders", "dem"]
        assert cfg["borders"]["out"]["code"] == CODES


def test_load_borders(data_dir, mask_path, blocks_path):
    assert load_borders(data_dir) == (mask_path, blocks_path)


class TestFindBlocks:
    def test_all(self, data_dir):
        assert findblocks_bc(data_dir) == CODES

    def test_shapely_geometry(self, data_dir):
        assert findblocks_bc(data_dir, box(10, 10, 20, 20)) == ["001C"]

    def test_geodataframe(self, data_dir):
        aoi = gpd.GeoDataFrame(
            geometry=[box(10, 150, 20, 160), box(150, 20, 160, 30)], crs="EPSG:3005"
        )
        assert findblocks_bc(data_dir, aoi) == ["001A", "001D"]

    def test_reprojects_geometry(self, data_dir):
        aoi = gpd.GeoDataFrame(geometry=[box(110, 110, 190, 190)], crs="EPSG:3005")
        assert findblocks_bc(data_dir, aoi.to_crs("EPSG:4326")) == ["001B"]

    def test_outside(self, data_dir):
        assert findblocks_bc(data_dir, box(5000, 5000, 5100, 5100)) == []
