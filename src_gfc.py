# Global Forest Change (Hansen et al. 2013, version 1.6), Landsat-based forest cover and
# change at 1 arc-second, in 10 x 10 degree granules. We keep the year 2000 tree canopy
# cover, forest gain, and forest loss in each year 2001-2018. Gain and loss are binary at
# the source resolution, so averaging them onto the reference grid gives the fraction of
# each cell affected.

import os
from functools import partial

import numpy as np
from rasterio.warp import Resampling

from helper.constants import GFC_SRC
from helper.io_handler import download_file
from helper.metadata import collection_metadata, load_borders
from helper.process_raster import warp_to_mask
from split_mapsheets import split_and_save


def gfc_fname(layer, granule):
    return f"{GFC_SRC['fname_prefix']}{layer}_{granule}.tif"


def equals_value(source, value):
    return (source == value).astype(np.float32)


def run(config):
    data_dir = config["data_dir"]
    collection = "gfc"
    mask_path, snrc_path = load_borders(data_dir)

    cfg = collection_metadata(collection, data_dir, cfg_src=GFC_SRC)
    src_dir = cfg["src"]["dir"]
    out_dir = cfg["out"]["dir"]
    years = GFC_SRC["years"]
    cfg["src"]["fname"] = {
        layer: {
            granule: os.path.join(src_dir, gfc_fname(layer, granule))
            for granule in GFC_SRC["granules"]
        }
        for layer in GFC_SRC["layers"]
    }
    full = {
        "treecover": os.path.join(out_dir, "treecover_std.tif"),
        "gain": os.path.join(out_dir, "gain_std.tif"),
    }
    for year in years:
        full[year] = {"loss": os.path.join(out_dir, year, f"loss_std_{year}.tif")}
    cfg["out"]["fname"]["tif"]["full"] = full

    for layer, granules in cfg["src"]["fname"].items():
        for granule, path in granules.items():
            download_file(
                GFC_SRC["web"] + gfc_fname(layer, granule), path, config["force_download"]
            )

    src = {layer: list(granules.values()) for layer, granules in cfg["src"]["fname"].items()}
    warp_to_mask(src["treecover2000"], mask_path, full["treecover"], Resampling.bilinear)
    warp_to_mask(
        src["gain"], mask_path, full["gain"], Resampling.average, fn=partial(equals_value, value=1)
    )
    for year, value in years.items():
        # lossyear is coded as years since 2000, with 0 for no loss
        print(f"Warping forest loss for {value}")
        warp_to_mask(
            src["lossyear"],
            mask_path,
            full[year]["loss"],
            Resampling.average,
            fn=partial(equals_value, value=value - 2000),
        )

    return split_and_save(cfg, config, snrc_path)
