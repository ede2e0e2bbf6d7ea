# Consolidated cutblocks: reported harvest cutblocks and photo-interpreted disturbances
# attributed to harvest on crown lands, 2001-2018, from RESULTS, the VRI, and Landsat change
# detection. For years before 2012 these may include reserve areas that were not harvested.
# The output is a binary layer per year indicating harvest activity.

import os

import geopandas as gpd
from tqdm import tqdm

from helper.constants import CUTBLOCKS_SRC, REFERENCE_CRS
from helper.io_handler import download_and_extract, find_layer
from helper.metadata import collection_metadata, load_borders
from helper.process_raster import rasterize_presence
from split_mapsheets import split_and_save


def standardize_cutblocks(src_path, feat_name, years, crs=REFERENCE_CRS):
    """Keep only the harvest year attribute (renamed) and the selected years"""
    (name, field), = feat_name.items()
    layer = find_layer(src_path, [field])
    cutblocks = gpd.read_file(src_path, layer=layer)
    print("Original cutblocks data has {} rows".format(len(cutblocks)))
    cutblocks = cutblocks[cutblocks[field].isin(list(years))]
    print("Cutblocks data has {} rows after filtering years".format(len(cutblocks)))
    cutblocks = cutblocks[[field, "geometry"]].rename(columns={field: name})
    cutblocks[name] = cutblocks[name].astype(int)
    return cutblocks.to_crs(crs)


def run(config):
    data_dir = config["data_dir"]
    collection = "cutblocks"
    mask_path, snrc_path = load_borders(data_dir)

    cfg = collection_metadata(collection, data_dir, cfg_src=CUTBLOCKS_SRC)
    out_dir = cfg["out"]["dir"]
    years = CUTBLOCKS_SRC["years"]
    cfg["src"]["fname"] = {
        "harvest": os.path.join(cfg["src"]["dir"], CUTBLOCKS_SRC["fname"])
    }
    cfg["out"]["fname"]["shp"] = {"harvest": os.path.join(out_dir, "cutblocks_std.shp")}
    cfg["out"]["fname"]["tif"]["full"] = {
        year: {"harvest": os.path.join(out_dir, year, f"cutblocks_std_{year}.tif")}
        for year in years
    }

    download_and_extract(
        cfg["src"]["web"],
        cfg["src"]["dir"],
        list(cfg["src"]["fname"].values()),
        config["force_download"],
    )

    shp_path = cfg["out"]["fname"]["shp"]["harvest"]
    if config["force_download"] or not os.path.exists(shp_path):
        cutblocks = standardize_cutblocks(
            cfg["src"]["fname"]["harvest"], CUTBLOCKS_SRC["feat_name"], years.values()
        )
        cutblocks.to_file(shp_path)
    cutblocks = gpd.read_file(shp_path)

    for year, value in tqdm(years.items()):
        selected = cutblocks[cutblocks["harvest"] == value]
        rasterize_presence(
            selected, mask_path, cfg["out"]["fname"]["tif"]["full"][year]["harvest"]
        )

    return split_and_save(cfg, config, snrc_path)
