"""
Tests for splitting full-extent rasters into mapsheets.
"""

import os

import numpy as np
import pytest
import rasterio
from shapely.geometry import Polygon, box

from conftest import CODES, HEIGHT, WIDTH, write_raster
from helper.metadata import load_metadata, metadata_path
from split_mapsheets import crop_to_mapsheet, read_mapsheets, split_and_save, split_collection


@pytest.fixture
def full_image():
    image = np.arange(HEIGHT * WIDTH, dtype=np.float32).reshape(HEIGHT, WIDTH)
    image[-1] = np.nan
    return image


@pytest.fixture
def collection_cfg(tmp_path, full_image):
    out_dir = str(tmp_path / "demo")
    os.makedirs(out_dir)
    full = {
        "yr2001": {"loss": write_raster(tmp_path / "loss_2001.tif", full_image, np.nan)},
        "treecover": write_raster(tmp_path / "treecover.tif", full_image * 2, np.nan),
    }
    return {
        "src": {"name": "demo", "dir": str(tmp_path / "demo" / "source")},
        "out": {
            "name": "demo",
            "dir": out_dir,
            "fname": {"shp": {}, "tif": {"full": full, "block": {}}},
            "code": {},
        },
    }


def test_read_mapsheets(blocks_path):
    mapsheets = read_mapsheets(blocks_path)
    assert list(mapsheets) == CODES
    assert mapsheets["001B"].bounds == (100, 100, 200, 200)


def test_crop_to_mapsheet(tmp_path, blocks_path, full_image):
    src_path = write_raster(tmp_path / "full.tif", full_image, np.nan)
    geometry = read_mapsheets(blocks_path)["001D"]
    dest = crop_to_mapsheet(src_path, geometry, str(tmp_path / "block.tif"))
    with rasterio.open(dest) as src:
        assert tuple(src.bounds) == geometry.bounds
        image = src.read(1)
    np.testing.assert_array_equal(image[:-1], full_image[10:-1, 10:])
    assert np.isnan(image[-1]).all()


def test_crop_mapsheet_past_raster_edge(tmp_path, full_image):
    # the mapsheet extends 50m east of the 200m wide raster
    src_path = write_raster(tmp_path / "full.tif", full_image, np.nan)
    geometry = box(100, 0, 250, 100)
    dest = crop_to_mapsheet(src_path, geometry, str(tmp_path / "edge.tif"))
    with rasterio.open(dest) as src:
        assert tuple(src.bounds) == (100, 0, 250, 100)
        image = src.read(1)
    assert image.shape == (10, 15)
    np.testing.assert_array_equal(image[:-1, :10], full_image[10:-1, 10:])
    assert np.isnan(image[:, 10:]).all()


def test_crop_masks_cells_outside_polygon(tmp_path, full_image):
    src_path = write_raster(tmp_path / "full.tif", full_image, np.nan)
    # L-shaped mapsheet: the top right quarter of its bounding box is outside
    geometry = Polygon([(0, 100), (100, 100), (100, 150), (50, 150), (50, 200), (0, 200)])
    dest = crop_to_mapsheet(src_path, geometry, str(tmp_path / "l.tif"))
    with rasterio.open(dest) as src:
        image = src.read(1)
    assert image.shape == (10, 10)
    assert np.isnan(image[:5, 5:]).all()
    np.testing.assert_array_equal(image[5:, :], full_image[5:10, :10])
    np.testing.assert_array_equal(image[:5, :5], full_image[:5, :5])


class TestSplitCollection:
    def test_nesting_follows_full_filenames(self, collection_cfg, blocks_path):
        blocks = split_collection(collection_cfg, blocks_path)
        assert set(blocks) == {"yr2001", "treecover"}
        assert set(blocks["yr2001"]["loss"]) == set(CODES)
        assert set(blocks["treecover"]) == set(CODES)
        path = blocks["treecover"]["001A"]
        assert path.endswith(os.path.join("blocks", "001A", "treecover_001A.tif"))
        assert os.path.exists(path)

    def test_blocks_match_mapsheet_bounds(self, collection_cfg, blocks_path, full_image):
        blocks = split_collection(collection_cfg, blocks_path)
        mapsheets = read_mapsheets(blocks_path)
        for code, path in blocks["treecover"].items():
            with rasterio.open(path) as src:
                assert tuple(src.bounds) == mapsheets[code].bounds
                assert (src.height, src.width) == (10, 10)
        with rasterio.open(blocks["yr2001"]["loss"]["001B"]) as src:
            np.testing.assert_array_equal(src.read(1), full_image[:10, 10:])

    def test_existing_blocks_are_reused(self, collection_cfg, blocks_path, monkeypatch):
        split_collection(collection_cfg, blocks_path)
        calls = []
        monkeypatch.setattr("split_mapsheets.crop_to_mapsheet", lambda *args: calls.append(args))
        split_collection(collection_cfg, blocks_path)
        assert calls == []
        split_collection(collection_cfg, blocks_path, force=True)
        assert len(calls) == 2 * len(CODES)

    def test_parallel(self, collection_cfg, blocks_path):
        blocks = split_collection(collection_cfg, blocks_path, n_cores=2)
        for path in blocks["yr2001"]["loss"].values():
            assert os.path.exists(path)


def test_split_and_save(collection_cfg, blocks_path, config):
    cfg = split_and_save(collection_cfg, config, blocks_path)
    saved = load_metadata(metadata_path("demo", config["data_dir"]))
    assert saved == cfg
    assert set(saved["out"]["fname"]["tif"]["block"]["treecover"]) == set(CODES)
    # nothing else in the metadata is lost
    assert saved["out"]["fname"]["tif"]["full"] == collection_cfg["out"]["fname"]["tif"]["full"]
