# Forest Insect and Disease Survey: polygons of forest health damage mapped in the provincial
# aerial overview surveys, one archive per year. We keep the mountain pine beetle (IBM)
# polygons and rasterize the fraction of each cell damaged, separately for each severity
# class. Like the fire perimeters, this runs blockwise over the NTS/SNRC mapsheets.

import os

import geopandas as gpd
import pandas as pd

from helper.constants import FIDS_SRC, REFERENCE_CRS
from helper.io_handler import fetch_shapefile
from helper.metadata import collection_metadata, load_borders
from helper.rasterize import rasterize_coverage
from split_mapsheets import split_and_save


def standardize_fids(src_path, year, pest=FIDS_SRC["pest"], crs=REFERENCE_CRS):
    """Mountain pine beetle polygons of one survey year, with their severity codes"""
    fids = gpd.read_file(src_path)
    # field name case is not consistent between survey years
    fids = fids.rename(columns={c: c.upper() for c in fids.columns if c != "geometry"})
    pest_field = FIDS_SRC["feat_name"]["pest"]
    severity_field = FIDS_SRC["feat_name"]["severity"]
    fids = fids[fids[pest_field] == pest]
    print(f"Survey year {year} has {len(fids)} {pest} polygons")
    fids = fids[[severity_field, "geometry"]].rename(columns={severity_field: "severity"})
    fids["year"] = year
    return fids.to_crs(crs)


def run(config):
    data_dir = config["data_dir"]
    collection = "fids"
    mask_path, snrc_path = load_borders(data_dir)
    blocks = gpd.read_file(snrc_path)

    cfg = collection_metadata(collection, data_dir, cfg_src=FIDS_SRC)
    out_dir = cfg["out"]["dir"]
    years = FIDS_SRC["years"]
    severity = FIDS_SRC["severity"]
    cfg["src"]["web"] = {year: FIDS_SRC["web"].format(year=value) for year, value in years.items()}
    cfg["out"]["fname"]["shp"] = {"fids": os.path.join(out_dir, "fids_std.shp")}
    cfg["out"]["fname"]["tif"]["full"] = {
        year: {
            name: os.path.join(out_dir, year, f"IBM{name}_std_{year}.tif") for name in severity
        }
        for year in years
    }

    cfg["src"]["fname"] = {
        year: fetch_shapefile(
            cfg["src"]["web"][year],
            os.path.join(cfg["src"]["dir"], year),
            config["force_download"],
        )
        for year in years
    }

    shp_path = cfg["out"]["fname"]["shp"]["fids"]
    if config["force_download"] or not os.path.exists(shp_path):
        fids = pd.concat(
            [standardize_fids(cfg["src"]["fname"][year], value) for year, value in years.items()],
            ignore_index=True,
        )
        gpd.GeoDataFrame(fids, geometry="geometry", crs=REFERENCE_CRS).to_file(shp_path)
    fids = gpd.read_file(shp_path)

    for year, value in years.items():
        for name, code in severity.items():
            selected = fids[(fids["year"] == value) & (fids["severity"] == code)]
            print(f"Rasterizing {len(selected)} {name} IBM polygons for {value}")
            rasterize_coverage(
                selected,
                mask_path,
                cfg["out"]["fname"]["tif"]["full"][year][name],
                aggr_factor=config["aggr_factor"],
                blocks=blocks,
                n_cores=config["n_cores"],
            )

    return split_and_save(cfg, config, snrc_path)
