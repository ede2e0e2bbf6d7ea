# Historical fire perimeters from the BC Wildfire Service, 2001-2018. Each year's perimeters
# are rasterized as the fraction of each cell burned. This is a big job, so it runs blockwise
# over the NTS/SNRC mapsheets (n_cores at a time).

import os

import geopandas as gpd

from helper.constants import FIRE_SRC, REFERENCE_CRS
from helper.io_handler import fetch_shapefile
from helper.metadata import collection_metadata, load_borders
from helper.rasterize import rasterize_coverage
from split_mapsheets import split_and_save


def standardize_fire(src_path, feat_name, years, crs=REFERENCE_CRS):
    (name, field), = feat_name.items()
    fire = gpd.read_file(src_path)
    print("Original fire data has {} rows".format(len(fire)))
    fire = fire[fire[field].isin(list(years))]
    fire = fire[[field, "geometry"]].rename(columns={field: name})
    fire[name] = fire[name].astype(int)
    return fire.to_crs(crs)


def run(config):
    data_dir = config["data_dir"]
    collection = "fire"
    mask_path, snrc_path = load_borders(data_dir)
    blocks = gpd.read_file(snrc_path)

    cfg = collection_metadata(collection, data_dir, cfg_src=FIRE_SRC)
    out_dir = cfg["out"]["dir"]
    years = FIRE_SRC["years"]
    cfg["out"]["fname"]["shp"] = {"fire": os.path.join(out_dir, "fire_std.shp")}
    cfg["out"]["fname"]["tif"]["full"] = {
        year: {"fire": os.path.join(out_dir, year, f"fire_std_{year}.tif")} for year in years
    }

    src_path = fetch_shapefile(cfg["src"]["web"], cfg["src"]["dir"], config["force_download"])
    cfg["src"]["fname"] = {"fire": src_path}

    shp_path = cfg["out"]["fname"]["shp"]["fire"]
    if config["force_download"] or not os.path.exists(shp_path):
        standardize_fire(src_path, FIRE_SRC["feat_name"], years.values()).to_file(shp_path)
    fire = gpd.read_file(shp_path)

    for year, value in years.items():
        print(f"Rasterizing fire perimeters for {value}")
        rasterize_coverage(
            fire[fire["fire"] == value],
            mask_path,
            cfg["out"]["fname"]["tif"]["full"][year]["fire"],
            aggr_factor=config["aggr_factor"],
            blocks=blocks,
            n_cores=config["n_cores"],
        )

    return split_and_save(cfg, config, snrc_path)
