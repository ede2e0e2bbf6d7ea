"""
Collection metadata: where a collection's source files are downloaded to, where its outputs
are written, and the code tables of its categorical layers. Each collection keeps its
metadata as <data_dir>/<collection>.json so that later scripts (and users) can find the
mapsheet files without re-running anything.
"""

import copy
import json
import os

import geopandas as gpd

from helper.constants import REFERENCE_CRS


def merge_config(base, update):
    """Recursively merge update into a copy of base. Nested dicts are merged, anything else replaced."""
    merged = copy.deepcopy(base)
    for key, value in (update or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def collection_metadata(collection, data_dir, cfg_in=None, cfg_src=None, cfg_out=None):
    src_dir = os.path.join(data_dir, collection, "source")
    out_dir = os.path.join(data_dir, collection)
    cfg = {
        "src": {"name": collection, "dir": src_dir},
        "out": {
            "name": collection,
            "dir": out_dir,
            "fname": {"shp": {}, "tif": {"full": {}, "block": {}}},
            "code": {},
        },
    }
    cfg = merge_config(cfg, cfg_in)
    cfg = merge_config(cfg, {"src": cfg_src or {}, "out": cfg_out or {}})
    os.makedirs(cfg["src"]["dir"], exist_ok=True)
    os.makedirs(cfg["out"]["dir"], exist_ok=True)
    return cfg


def metadata_path(collection, data_dir):
    return os.path.join(data_dir, f"{collection}.json")


def save_metadata(cfg, path):
    with open(path, "w") as f:
        json.dump(cfg, f, indent=2)
    print("Saved metadata to: ", path)


def load_metadata(path):
    if not os.path.exists(path):
        raise FileNotFoundError(f"No metadata at {path}, run the collection script first")
    with open(path) as f:
        return json.load(f)


def metadata_bc(data_dir):
    cfg = {}
    for file in sorted(os.listdir(data_dir)):
        collection, ext = os.path.splitext(file)
        if ext == ".json":
            cfg[collection] = load_metadata(os.path.join(data_dir, file))
    return cfg


def load_borders(data_dir):
    """Paths of the reference mask raster and the mapsheets shapefile written by src_borders"""
    cfg_borders = load_metadata(metadata_path("borders", data_dir))
    mask_path = cfg_borders["out"]["fname"]["tif"]["full"]["prov"]
    snrc_path = cfg_borders["out"]["fname"]["shp"]["snrc"]
    return mask_path, snrc_path


def loadblocks_bc(data_dir):
    _, snrc_path = load_borders(data_dir)
    return gpd.read_file(snrc_path)


def findblocks_bc(data_dir, geometry=None):
    """Codes of the NTS/SNRC mapsheets intersecting geometry (all of them if geometry is None)"""
    blocks = loadblocks_bc(data_dir)
    if geometry is None:
        return list(blocks["code"])

    if isinstance(geometry, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if geometry.crs is not None:
            geometry = geometry.to_crs(blocks.crs or REFERENCE_CRS)
        geometry = geometry.union_all()
    hits = blocks[blocks.intersects(geometry)]
    return list(hits["code"])
