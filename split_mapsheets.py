# Split full-extent (province-wide) rasters into NTS/SNRC mapsheets for distribution. Each
# mapsheet raster covers the bounding box of its mapsheet polygon on the reference grid,
# with cells outside the polygon set to nodata.

import math
import os
from concurrent.futures import ProcessPoolExecutor, as_completed

import fiona
import rasterio
from rasterio.features import geometry_mask
from rasterio.windows import Window, from_bounds
from shapely.geometry import mapping, shape
from tqdm import tqdm

from helper.io_handler import (
    iter_paths,
    make_block_path,
    write_raster_to_file,
)
from helper.metadata import collection_metadata, metadata_path, save_metadata


def mapsheet_window(bounds, transform):
    """Window covering bounds on the grid of transform, rounded outward to whole cells"""
    win = from_bounds(*bounds, transform=transform)
    eps = 1e-6
    col_off = math.floor(win.col_off + eps)
    row_off = math.floor(win.row_off + eps)
    width = math.ceil(win.col_off + win.width - eps) - col_off
    height = math.ceil(win.row_off + win.height - eps) - row_off
    return Window(col_off, row_off, width, height)


def crop_to_mapsheet(src_path, geometry, dest):
    """
    Cut the mapsheet out of a full-extent raster. The result covers the whole mapsheet even
    where it extends past the raster, and cells outside the mapsheet polygon are nodata.
    """
    with rasterio.open(src_path) as src:
        profile = src.profile.copy()
        nodata = src.nodata if src.nodata is not None else 0
        win = mapsheet_window(geometry.bounds, src.transform)
        win_transform = src.window_transform(win)
        win_image = src.read(window=win, boundless=True, fill_value=nodata)
    outside = geometry_mask(
        [mapping(geometry)], out_shape=win_image.shape[1:], transform=win_transform
    )
    win_image[:, outside] = nodata
    profile.pop("blockxsize", None)
    profile.pop("blockysize", None)
    profile.pop("tiled", None)
    profile.update(
        width=win_image.shape[2],
        height=win_image.shape[1],
        count=win_image.shape[0],
        transform=win_transform,
        nodata=nodata,
    )
    write_raster_to_file(win_image, dest, profile)
    return dest


def _crop_task(args):
    return crop_to_mapsheet(*args)


def read_mapsheets(blocks_path):
    mapsheets = {}
    with fiona.open(blocks_path, "r") as shapefile:
        for feature in shapefile:
            code = feature["properties"]["code"]
            mapsheets[code] = shape(feature["geometry"])
    return mapsheets


def set_nested(nested, keys, value):
    for key in keys[:-1]:
        nested = nested.setdefault(key, {})
    nested[keys[-1]] = value


def split_collection(cfg, blocks_path, n_cores=1, force=False):
    """
    Crop every full-extent raster listed in cfg["out"]["fname"]["tif"]["full"] to each
    mapsheet in blocks_path. Returns a dictionary nested like the full-extent filenames
    whose leaves are {code: block_path}.
    """
    out_dir = cfg["out"]["dir"]
    mapsheets = read_mapsheets(blocks_path)
    full_paths = list(iter_paths(cfg["out"]["fname"]["tif"]["full"]))
    print(f"Splitting {len(full_paths)} layers into {len(mapsheets)} mapsheets")

    block_paths = {}
    tasks = []
    for keys, full_path in full_paths:
        codes = {}
        for code, geometry in mapsheets.items():
            dest = make_block_path(out_dir, full_path, code)
            codes[code] = dest
            if force or not os.path.exists(dest):
                tasks.append((full_path, geometry, dest))
        set_nested(block_paths, keys, codes)

    if len(tasks) < len(full_paths) * len(mapsheets):
        print(f"using {len(full_paths) * len(mapsheets) - len(tasks)} existing mapsheet files")

    if n_cores == 1:
        for task in tqdm(tasks):
            _crop_task(task)
    else:
        with ProcessPoolExecutor(max_workers=n_cores) as executor:
            futures = [executor.submit(_crop_task, task) for task in tasks]
            for future in tqdm(as_completed(futures), total=len(futures)):
                future.result()

    return block_paths


def split_and_save(cfg, config, blocks_path):
    """Split a collection into mapsheets, then record the mapsheet filenames in its metadata"""
    collection = cfg["out"]["name"]
    cfg_blocks = split_collection(
        cfg, blocks_path, config["n_cores"], config.get("force_split", False)
    )
    cfg = collection_metadata(
        collection,
        config["data_dir"],
        cfg_in=cfg,
        cfg_out={"fname": {"tif": {"block": cfg_blocks}}},
    )
    save_metadata(cfg, metadata_path(collection, config["data_dir"]))
    return cfg
