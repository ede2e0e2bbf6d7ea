# Initial setup for all of the other collections: the BC provincial boundary, the NTS/SNRC
# 1:250k mapsheets covering it, and the reference mask raster that fixes the output grid
# (NAD83 / BC Albers at 100m, shared with hectaresBC and bcmaps).

import math
import os

import geopandas as gpd
import numpy as np
import shapely
from rasterio.transform import from_origin
from shapely.geometry import box

from helper.constants import (
    BORDERS_SRC,
    MASK_NODATA,
    NTS_LAT_ORIGIN,
    NTS_LETTERS,
    NTS_LON_ORIGIN,
    NTS_SERIES_LAT,
    NTS_SERIES_LON,
    NTS_SHEET_LAT,
    NTS_SHEET_LON,
    REFERENCE_CRS,
    REFERENCE_RES,
)
from helper.io_handler import download_and_extract, write_raster_to_file
from helper.metadata import collection_metadata, metadata_path, save_metadata
from helper.process_raster import burn_shapes

# NAD83 geographic, the datum of the NTS grid
NTS_CRS = "EPSG:4269"
# smallest share of a sheet that must overlap the province for it to become a mapsheet
SLIVER_FRACTION = 1e-6


def nts_code(lon, lat):
    """
    NTS 1:250k mapsheet code of a point, eg. 092H. Valid south of 68N, where series are
    4 x 8 degrees and split into 16 mapsheets lettered A-P in a back and forth pattern
    starting from the south-east corner.
    """
    assert 40 <= lat < 68 and lon < -NTS_LON_ORIGIN
    lon_west = -lon
    series_col = int((lon_west - NTS_LON_ORIGIN) // NTS_SERIES_LON)
    series_row = int((lat - NTS_LAT_ORIGIN) // NTS_SERIES_LAT)
    series_east = NTS_LON_ORIGIN + series_col * NTS_SERIES_LON
    series_south = NTS_LAT_ORIGIN + series_row * NTS_SERIES_LAT

    row = int((lat - series_south) // NTS_SHEET_LAT)
    col = int((lon_west - series_east) // NTS_SHEET_LON)
    idx = 4 * row + (col if row % 2 == 0 else 3 - col)
    return f"{10 * series_col + series_row:03d}{NTS_LETTERS[idx]}"


def nts_grid(bounds):
    """Mapsheet polygons (NAD83 lon/lat) covering bounds = (minx, miny, maxx, maxy)"""
    minx, miny, maxx, maxy = bounds
    codes, geometries = [], []
    lon0 = math.floor(minx / NTS_SHEET_LON) * NTS_SHEET_LON
    while lon0 < maxx:
        lat0 = math.floor(miny / NTS_SHEET_LAT) * NTS_SHEET_LAT
        while lat0 < maxy:
            sheet = box(lon0, lat0, lon0 + NTS_SHEET_LON, lat0 + NTS_SHEET_LAT)
            codes.append(nts_code(lon0 + NTS_SHEET_LON / 2, lat0 + NTS_SHEET_LAT / 2))
            # densify so that the edges stay curved after reprojection
            geometries.append(shapely.segmentize(sheet, 0.05))
            lat0 += NTS_SHEET_LAT
        lon0 += NTS_SHEET_LON
    return gpd.GeoDataFrame({"code": codes}, geometry=geometries, crs=NTS_CRS)


def make_snrc(prov):
    """Mapsheets overlapping the province, in the CRS of prov"""
    prov_nts = prov.to_crs(NTS_CRS)
    grid = nts_grid(prov_nts.total_bounds)
    # compared in lon/lat, where sheet edges and parallels are straight lines
    sheets = grid.geometry.to_numpy()
    overlap = shapely.area(shapely.intersection(sheets, prov_nts.union_all()))
    grid = grid[overlap > SLIVER_FRACTION * shapely.area(sheets)]
    grid = grid.to_crs(prov.crs)
    return grid.sort_values("code").reset_index(drop=True)


def make_mask(prov, dest, res=REFERENCE_RES):
    """Rasterize the province onto a grid snapped to multiples of res: 1 inside, nodata outside"""
    minx, miny, maxx, maxy = prov.total_bounds
    xmin = math.floor(minx / res) * res
    ymin = math.floor(miny / res) * res
    xmax = math.ceil(maxx / res) * res
    ymax = math.ceil(maxy / res) * res
    width = int(round((xmax - xmin) / res))
    height = int(round((ymax - ymin) / res))
    transform = from_origin(xmin, ymax, res, res)

    image = burn_shapes(
        ((geom, 1) for geom in prov.geometry), (height, width), transform, MASK_NODATA, "uint8"
    )
    assert np.any(image == 1)
    profile = {
        "driver": "GTiff",
        "dtype": "uint8",
        "nodata": MASK_NODATA,
        "width": width,
        "height": height,
        "count": 1,
        "crs": prov.crs,
        "transform": transform,
        "compress": "deflate",
    }
    write_raster_to_file(image, dest, profile)
    return dest


def load_province(path, field=BORDERS_SRC["prov_field"], code=BORDERS_SRC["prov_code"]):
    boundaries = gpd.read_file(path)
    if field in boundaries.columns:
        boundaries = boundaries[boundaries[field].astype(str) == code]
    assert len(boundaries) > 0, f"no {field}={code} polygons in {path}"
    prov = boundaries.to_crs(REFERENCE_CRS)[["geometry"]].dissolve()
    prov["name"] = "BC"
    return prov.reset_index(drop=True)


def run(config):
    data_dir = config["data_dir"]
    collection = "borders"
    cfg = collection_metadata(collection, data_dir, cfg_src={"web": BORDERS_SRC["web"]})
    out_dir = cfg["out"]["dir"]

    prov_path = config.get("prov_path")
    if not prov_path:
        prov_path = os.path.join(cfg["src"]["dir"], BORDERS_SRC["fname"])
        download_and_extract(
            BORDERS_SRC["web"], cfg["src"]["dir"], [prov_path], config["force_download"]
        )
    cfg["src"]["fname"] = prov_path

    print("Loading provincial boundary from: ", prov_path)
    prov = load_province(prov_path)
    cfg["out"]["fname"]["shp"] = {
        "prov": os.path.join(out_dir, "prov.shp"),
        "snrc": os.path.join(out_dir, "snrc.shp"),
    }
    cfg["out"]["fname"]["tif"]["full"] = {"prov": os.path.join(out_dir, "prov.tif")}

    prov.to_file(cfg["out"]["fname"]["shp"]["prov"])
    snrc = make_snrc(prov)
    print(f"BC is covered by {len(snrc)} NTS/SNRC mapsheets")
    snrc.to_file(cfg["out"]["fname"]["shp"]["snrc"])
    make_mask(prov, cfg["out"]["fname"]["tif"]["full"]["prov"])

    cfg["out"]["code"] = list(snrc["code"])
    save_metadata(cfg, metadata_path(collection, data_dir))
    return cfg
