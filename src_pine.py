# Forest attributes model output from Beaudoin et al. (2014, 2017): kNN interpolations of
# Canada's National Forest Inventory photoplots and remotely sensed data, in 2001 and 2011, on
# the 250m MODIS grid (NAD83 / Lambert Conformal Conic). We keep the attributes most relevant
# to mountain pine beetle activity, crop them to BC, and warp them to the reference grid.
#
# The Open Government Licence - Canada applies.

import os

from rasterio.warp import Resampling
from tqdm import tqdm

from helper.constants import PINE_SRC
from helper.io_handler import download_file, iter_paths
from helper.metadata import collection_metadata, load_borders
from helper.process_raster import warp_to_mask
from split_mapsheets import split_and_save


def pine_fname(year, feat_name):
    # all files are of the form <prefix><year><feat_name><suffix>
    return f"{PINE_SRC['fname_prefix']}{year}{feat_name}{PINE_SRC['fname_suffix']}"


def pine_sources(src_dir):
    """Nested {year: {varname: ...}} dictionaries of download urls and source filenames"""
    web, fname = {}, {}
    for year, value in PINE_SRC["years"].items():
        web[year], fname[year] = {}, {}
        for varname, feat_name in PINE_SRC["feat_name"].items():
            filename = pine_fname(value, feat_name)
            web[year][varname] = PINE_SRC["web"][year] + filename
            fname[year][varname] = os.path.join(src_dir, filename)
    return web, fname


def run(config):
    data_dir = config["data_dir"]
    collection = "pine"
    mask_path, snrc_path = load_borders(data_dir)

    cfg = collection_metadata(collection, data_dir, cfg_src=PINE_SRC)
    out_dir = cfg["out"]["dir"]
    cfg["src"]["web"], cfg["src"]["fname"] = pine_sources(cfg["src"]["dir"])
    cfg["out"]["fname"]["tif"]["full"] = {
        year: {
            varname: os.path.join(out_dir, year, f"{varname}_std_{value}.tif")
            for varname in PINE_SRC["feat_name"]
        }
        for year, value in PINE_SRC["years"].items()
    }

    # 26 Canada-wide rasters, 1.9 GB in total
    for (year, varname), path in tqdm(list(iter_paths(cfg["src"]["fname"]))):
        download_file(cfg["src"]["web"][year][varname], path, config["force_download"])

    for (year, varname), path in iter_paths(cfg["src"]["fname"]):
        dest = cfg["out"]["fname"]["tif"]["full"][year][varname]
        print(f"Warping {varname} ({year}) to {dest}")
        warp_to_mask(path, mask_path, dest, Resampling.bilinear)

    return split_and_save(cfg, config, snrc_path)
