import os

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from shapely.geometry import Polygon, box

from helper.metadata import load_metadata, metadata_path
from src_borders import load_province, make_mask, make_snrc, nts_code, nts_grid, run


@pytest.mark.parametrize(
    "lon, lat, code",
    [
        (-121, 49.5, "092H"),
        (-119, 49.5, "082E"),
        (-119, 50.5, "082L"),
        (-121, 50.5, "092I"),
        (-121, 51.5, "092P"),
        (-125, 49.5, "092F"),
        (-127, 50.5, "092L"),
        (-121, 52.5, "093A"),
        (-121, 56.5, "094A"),
        (-123.1, 49.25, "092G"),
    ],
)
def test_nts_code(lon, lat, code):
    assert nts_code(lon, lat) == code


def test_nts_grid():
    grid = nts_grid((-122, 49, -118, 51))
    assert sorted(grid["code"]) == ["082E", "082L", "092H", "092I"]
    assert grid.crs.to_epsg() == 4269
    sheet = grid[grid["code"] == "092H"].geometry.iloc[0]
    assert sheet.bounds == pytest.approx((-122, 49, -120, 50))


def test_make_snrc():
    prov = gpd.GeoDataFrame(
        geometry=[box(-121.8, 49.2, -118.2, 50.8)], crs="EPSG:4326"
    ).to_crs("EPSG:3005")
    snrc = make_snrc(prov)
    assert list(snrc["code"]) == ["082E", "082L", "092H", "092I"]
    assert snrc.crs == prov.crs


def test_make_snrc_border_on_sheet_edges():
    # north edge along 60N with a vertex every degree, west edge on the -124 meridian
    north = [(lon, 60) for lon in range(-119, -125, -1)]
    outline = Polygon([(-124, 58.5), (-118.2, 58.5), (-118.2, 60)] + north)
    prov = gpd.GeoDataFrame(geometry=[outline], crs="EPSG:4269").to_crs("EPSG:3005")
    snrc = make_snrc(prov)
    assert list(snrc["code"]) == ["084L", "084M", "094I", "094J", "094O", "094P"]


def test_make_mask(tmp_path):
    prov = gpd.GeoDataFrame(geometry=[box(1000, 2000, 1440, 2330)], crs="EPSG:3005")
    dest = make_mask(prov, str(tmp_path / "prov.tif"), res=100)
    with rasterio.open(dest) as src:
        assert (src.height, src.width) == (4, 5)
        assert tuple(src.bounds) == (1000, 2000, 1500, 2400)
        assert src.nodata == 0
        image = src.read(1)
    assert image.sum() == 12
    # the top row and the right column have their centres outside the polygon
    assert (image[0] == 0).all()
    assert (image[:, -1] == 0).all()


def test_load_province_filters_and_dissolves(tmp_path):
    path = str(tmp_path / "provinces.gpkg")
    gpd.GeoDataFrame(
        {"PRUID": ["59", "59", "48"]},
        geometry=[box(-125, 49, -123, 50), box(-123, 49, -121, 50), box(-115, 49, -110, 55)],
        crs="EPSG:4326",
    ).to_file(path, driver="GPKG")
    prov = load_province(path)
    assert len(prov) == 1
    assert prov["name"].iloc[0] == "BC"
    assert prov.crs.to_epsg() == 3005
    minx, _, maxx, _ = prov.to_crs("EPSG:4326").total_bounds
    assert minx == pytest.approx(-125)
    assert maxx == pytest.approx(-121)


def test_load_province_no_match(tmp_path):
    path = str(tmp_path / "provinces.gpkg")
    gpd.GeoDataFrame(
        {"PRUID": ["48"]}, geometry=[box(-115, 49, -110, 55)], crs="EPSG:4326"
    ).to_file(path, driver="GPKG")
    with pytest.raises(AssertionError):
        load_province(path)


def test_run_with_local_boundary(tmp_path):
    prov_path = str(tmp_path / "bc.gpkg")
    gpd.GeoDataFrame(geometry=[box(-121.8, 49.2, -118.2, 50.8)], crs="EPSG:4326").to_file(
        prov_path, driver="GPKG"
    )
    data_dir = str(tmp_path / "data")
    config = {"data_dir": data_dir, "prov_path": prov_path, "force_download": False}
    cfg = run(config)

    assert cfg["out"]["code"] == ["082E", "082L", "092H", "092I"]
    assert load_metadata(metadata_path("borders", data_dir)) == cfg
    snrc = gpd.read_file(cfg["out"]["fname"]["shp"]["snrc"])
    assert list(snrc["code"]) == cfg["out"]["code"]
    assert os.path.exists(cfg["out"]["fname"]["shp"]["prov"])

    with rasterio.open(cfg["out"]["fname"]["tif"]["full"]["prov"]) as src:
        assert src.crs.to_epsg() == 3005
        assert src.res == (100, 100)
        assert src.transform.c % 100 == 0
        assert src.transform.f % 100 == 0
        image = src.read(1)
    assert np.isin(image, [0, 1]).all()
    assert image.sum() > 0
