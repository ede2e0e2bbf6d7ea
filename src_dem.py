# Canadian Digital Elevation Model (CDEM) from Natural Resources Canada, at 3 arc-seconds.
# The source is split into NTS 1:250k mapsheets, which we download individually, mosaic,
# warp to the reference grid, and use to compute slope and aspect.
#
# The Open Government Licence - Canada applies.

import os
import tempfile

import numpy as np
import rasterio
from rasterio.warp import Resampling

from helper.constants import DEM_SRC, FLOAT_NODATA
from helper.io_handler import download_and_extract, write_raster_to_file
from helper.metadata import collection_metadata, findblocks_bc, load_borders
from helper.process_raster import (
    apply_mask,
    output_profile,
    read_mask,
    slope_aspect,
    warp_to_mask,
)
from mosaic_rasters import mosaic_files
from split_mapsheets import split_and_save


def cdem_url(code):
    # mapsheets are grouped in directories by series number, eg. 092/cdem_dem_092H_tif.zip
    return f"{DEM_SRC['web']}{code[:3]}/{DEM_SRC['fname_prefix']}{code}_tif.zip"


def cdem_fname(src_dir, code):
    return os.path.join(src_dir, f"{DEM_SRC['fname_prefix']}{code}.tif")


def write_terrain(dem_path, mask_path, slope_path, aspect_path):
    valid, profile = read_mask(mask_path)
    with rasterio.open(dem_path) as src:
        dem = src.read(1)
        res = src.res[0]
    slope, aspect = slope_aspect(dem, res)
    out_profile = output_profile(profile, "float32", FLOAT_NODATA)
    write_raster_to_file(apply_mask(slope, valid, FLOAT_NODATA), slope_path, out_profile)
    write_raster_to_file(apply_mask(aspect, valid, FLOAT_NODATA), aspect_path, out_profile)


def run(config):
    data_dir = config["data_dir"]
    collection = "dem"
    mask_path, snrc_path = load_borders(data_dir)
    codes = findblocks_bc(data_dir)

    cfg = collection_metadata(collection, data_dir, cfg_src={"web": DEM_SRC["web"]})
    src_dir = cfg["src"]["dir"]
    out_dir = cfg["out"]["dir"]
    cfg["src"]["fname"] = {code: cdem_fname(src_dir, code) for code in codes}
    varnames = ["dem", "slope", "aspect"]
    cfg["out"]["fname"]["tif"]["full"] = {
        varname: os.path.join(out_dir, f"{varname}_std.tif") for varname in varnames
    }
    full = cfg["out"]["fname"]["tif"]["full"]

    for code in codes:
        download_and_extract(
            cdem_url(code), src_dir, [cfg["src"]["fname"][code]], config["force_download"]
        )

    with tempfile.NamedTemporaryFile(suffix=".tif", delete=False) as temp_file:
        temp_name = temp_file.name
    try:
        mosaic_files(list(cfg["src"]["fname"].values()), temp_name)
        warp_to_mask(temp_name, mask_path, full["dem"], Resampling.bilinear)
    finally:
        os.remove(temp_name)

    print("Computing slope and aspect")
    write_terrain(full["dem"], mask_path, full["slope"], full["aspect"])

    with rasterio.open(full["dem"]) as src:
        dem = src.read(1)
    cfg["out"]["range"] = {"dem": [float(np.nanmin(dem)), float(np.nanmax(dem))]}

    return split_and_save(cfg, config, snrc_path)
