# Biogeoclimatic Zone (BGCZ) classification map from BC's Ministry of Forests (version 11,
# with land cover). The source is an ESRI file geodatabase of several hundred thousand
# multipolygons. We keep six categorical attributes, convert them to integer codes, and
# rasterize each one to the reference grid.

import os

import geopandas as gpd

from helper.constants import BGCZ_SRC, REFERENCE_CRS
from helper.io_handler import download_and_extract, find_layer
from helper.metadata import collection_metadata, load_borders
from helper.process_raster import encode_categories, rasterize_field
from split_mapsheets import split_and_save


def standardize_bgcz(src_path, feat_name, crs=REFERENCE_CRS):
    """Load the geodatabase, keep the attributes in feat_name (renamed to its keys), and reproject"""
    layer = find_layer(src_path, list(feat_name.values()))
    print("Reading layer ", layer, " from ", src_path)
    bgcz = gpd.read_file(src_path, layer=layer)
    print("Original BGCZ data has {} rows".format(len(bgcz)))
    bgcz = bgcz[list(feat_name.values()) + ["geometry"]]
    bgcz = bgcz.rename(columns={v: k for k, v in feat_name.items()})
    return bgcz.to_crs(crs)


def run(config):
    data_dir = config["data_dir"]
    collection = "bgcz"
    mask_path, snrc_path = load_borders(data_dir)

    cfg = collection_metadata(collection, data_dir, cfg_src=BGCZ_SRC)
    out_dir = cfg["out"]["dir"]
    varnames = list(BGCZ_SRC["feat_name"])
    cfg["src"]["fname"] = {"bgcz": os.path.join(cfg["src"]["dir"], BGCZ_SRC["fname"])}
    cfg["out"]["fname"]["shp"] = {"bgcz": os.path.join(out_dir, "bgcz_std.shp")}
    cfg["out"]["fname"]["tif"]["full"] = {
        varname: os.path.join(out_dir, f"{varname}_std.tif") for varname in varnames
    }

    download_and_extract(
        cfg["src"]["web"],
        cfg["src"]["dir"],
        list(cfg["src"]["fname"].values()),
        config["force_download"],
    )

    shp_path = cfg["out"]["fname"]["shp"]["bgcz"]
    if config["force_download"] or not os.path.exists(shp_path):
        bgcz = standardize_bgcz(cfg["src"]["fname"]["bgcz"], BGCZ_SRC["feat_name"])
        bgcz.to_file(shp_path)
        print("Saved standardized BGCZ to: ", shp_path)
    bgcz = gpd.read_file(shp_path)

    # geotiff needs integers, so the categories are rasterized as codes
    codes, levels = encode_categories(bgcz, varnames)
    cfg["out"]["code"] = levels
    for varname in varnames:
        print(f"Rasterizing {varname} ({len(levels[varname])} categories)")
        layer = gpd.GeoDataFrame({varname: codes[varname]}, geometry=bgcz.geometry, crs=bgcz.crs)
        rasterize_field(layer, varname, mask_path, cfg["out"]["fname"]["tif"]["full"][varname])

    return split_and_save(cfg, config, snrc_path)
