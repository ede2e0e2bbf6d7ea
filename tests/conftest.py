"""
Shared fixtures: a small reference grid (20 x 20 cells of 10m in BC Albers, bottom row
outside the mask) and four square mapsheets covering it.
"""

import os

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box

from helper.metadata import metadata_path, save_metadata

CRS = "EPSG:3005"
RES = 10
WIDTH = HEIGHT = 20
TRANSFORM = from_origin(0, 200, RES, RES)
CODES = ["001A", "001B", "001C", "001D"]


def write_raster(path, image, nodata=None, transform=TRANSFORM, crs=CRS):
    if image.ndim == 2:
        image = image[None, :, :]
    profile = {
        "driver": "GTiff",
        "dtype": image.dtype.name,
        "nodata": nodata,
        "width": image.shape[2],
        "height": image.shape[1],
        "count": image.shape[0],
        "crs": crs,
        "transform": transform,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(image)
    return str(path)


@pytest.fixture
def mask_path(tmp_path):
    image = np.ones((HEIGHT, WIDTH), dtype=np.uint8)
    image[-1, :] = 0
    return write_raster(tmp_path / "mask.tif", image, nodata=0)


@pytest.fixture
def quadrants():
    geometries = [
        box(0, 100, 100, 200),
        box(100, 100, 200, 200),
        box(0, 0, 100, 100),
        box(100, 0, 200, 100),
    ]
    return gpd.GeoDataFrame({"code": CODES}, geometry=geometries, crs=CRS)


@pytest.fixture
def blocks_path(tmp_path, quadrants):
    path = str(tmp_path / "snrc.shp")
    quadrants.to_file(path)
    return path


@pytest.fixture
def data_dir(tmp_path, mask_path, blocks_path):
    """A data directory in the state left behind by src_borders"""
    data_dir = str(tmp_path / "data")
    os.makedirs(data_dir)
    cfg = {
        "src": {"name": "borders", "dir": os.path.join(data_dir, "borders", "source")},
        "out": {
            "name": "borders",
            "dir": os.path.join(data_dir, "borders"),
            "fname": {
                "shp": {"snrc": blocks_path},
                "tif": {"full": {"prov": mask_path}, "block": {}},
            },
            "code": CODES,
        },
    }
    save_metadata(cfg, metadata_path("borders", data_dir))
    return data_dir


@pytest.fixture
def config(data_dir):
    return {
        "data_dir": data_dir,
        "n_cores": 1,
        "aggr_factor": 10,
        "force_download": False,
        "force_split": False,
    }
