"""
Blockwise rasterization of large polygon layers.

Polygons are burned (presence/absence) onto a copy of the reference grid that is
aggr_factor times finer, and the result is averaged back down to the reference grid. Each
output cell then holds the fraction of its area covered by the polygons. For province-wide
layers the high resolution grid does not fit in memory, so the work can be split over a set
of block polygons (the NTS mapsheets) and run in parallel, with the block rasters mosaicked
together at the end.
"""

import os
import shutil
import tempfile
from concurrent.futures import ProcessPoolExecutor, as_completed

import geopandas as gpd
import numpy as np
from affine import Affine
import rasterio
from rasterio.merge import merge
from rasterio.windows import from_bounds
from rasterio.windows import transform as window_transform
from shapely.geometry import box
from tqdm import tqdm

from helper.constants import FLOAT_NODATA
from helper.io_handler import write_raster_to_file
from helper.process_raster import (
    apply_mask,
    burn_shapes,
    downsample_mean,
    grid_bounds,
    output_profile,
    read_mask,
    snap_window,
)


def prepare_polygons(poly):
    """Drop the attributes, keeping geometries with a dummy value of 1, and fix bad geometries"""
    geometry = gpd.GeoSeries(poly.geometry, crs=poly.crs)
    geometry = geometry[geometry.notna() & ~geometry.is_empty]
    if not geometry.is_valid.all():
        geometry = geometry.make_valid()
    return gpd.GeoDataFrame(
        {"dummy": np.ones(len(geometry), dtype=np.uint8)},
        geometry=geometry.values,
        crs=poly.crs,
    )


def coverage_fraction(geometries, transform, shape, aggr_factor):
    """Fraction of each cell of the (transform, shape) grid covered by geometries"""
    height, width = shape
    highres_transform = transform * Affine.scale(1 / aggr_factor)
    highres = burn_shapes(
        ((geom, 1) for geom in geometries),
        (height * aggr_factor, width * aggr_factor),
        highres_transform,
        0,
        "uint8",
    )
    return downsample_mean(highres, aggr_factor)


def rasterize_block(poly, block, profile, aggr_factor, temp_path):
    """
    Rasterize the polygons overlapping one block. Writes a GeoTIFF covering the bounding
    box of the cropped polygons, snapped outward to the reference grid, and returns its
    path, or None if no polygons overlap the block.
    """
    candidates = poly.iloc[poly.sindex.query(block, predicate="intersects")]
    if len(candidates) == 0:
        return None

    cropped = candidates.geometry.intersection(block)
    cropped = cropped[~cropped.is_empty]
    if len(cropped) == 0:
        return None

    win = snap_window(
        from_bounds(*cropped.total_bounds, transform=profile["transform"]),
        profile["width"],
        profile["height"],
    )
    if win is None:
        return None

    win_transform = window_transform(win, profile["transform"])
    # every polygon touching the window, not only the cropped pieces, so that cells
    # shared with a neighbouring block get their full coverage
    win_box = box(*rasterio.windows.bounds(win, profile["transform"]))
    geometries = poly.geometry.iloc[poly.sindex.query(win_box, predicate="intersects")]
    image = coverage_fraction(
        geometries, win_transform, (int(win.height), int(win.width)), aggr_factor
    )

    block_profile = output_profile(profile, "float32", None)
    block_profile.update(
        width=int(win.width), height=int(win.height), transform=win_transform
    )
    with rasterio.open(temp_path, "w", **block_profile) as dst:
        dst.write(image, 1)
    return temp_path


def _rasterize_block_task(args):
    return rasterize_block(*args)


def merge_blocks(paths, profile):
    """Mosaic block rasters onto the full reference grid, with 0 wherever no block was written"""
    datasets = [rasterio.open(path) for path in sorted(paths)]
    try:
        mosaic, _ = merge(
            datasets,
            bounds=grid_bounds(profile),
            res=(profile["transform"].a, -profile["transform"].e),
            nodata=-1.0,
        )
    finally:
        for dataset in datasets:
            dataset.close()
    image = mosaic[0]
    assert image.shape == (profile["height"], profile["width"])
    return np.where(image < 0, 0, image).astype(np.float32)


def rasterize_coverage(poly, mask_path, dest_file, aggr_factor=10, blocks=None, n_cores=1):
    """
    Rasterize polygons as fractional coverage on the grid of mask_path and write it to
    dest_file. Cells outside the mask get nodata.

    Projections are not checked or transformed: poly, the mask and blocks should share a
    CRS. blocks (a GeoDataFrame or GeoSeries) optionally supplies polygons covering the
    mask extent over which to split the work, with n_cores worker processes.
    """
    assert aggr_factor >= 1
    poly = prepare_polygons(poly)
    valid, profile = read_mask(mask_path)
    shape = (profile["height"], profile["width"])
    out_profile = output_profile(profile, "float32", FLOAT_NODATA)

    if blocks is None:
        image = coverage_fraction(poly.geometry, profile["transform"], shape, aggr_factor)

    else:
        block_geoms = list(blocks.geometry)
        temp_dir = tempfile.mkdtemp(prefix="rasterize_")
        temp_paths = [
            os.path.join(temp_dir, f"block_{idx}.tif") for idx in range(len(block_geoms))
        ]
        tasks = [
            (poly, block, profile, aggr_factor, temp_path)
            for block, temp_path in zip(block_geoms, temp_paths)
        ]
        try:
            if n_cores == 1:
                print(f"looping over {len(tasks)} blocks in serial...")
                results = [_rasterize_block_task(task) for task in tqdm(tasks)]
            else:
                print(f"processing {len(tasks)} blocks in parallel ({n_cores} cores)")
                results = []
                with ProcessPoolExecutor(max_workers=n_cores) as executor:
                    futures = [executor.submit(_rasterize_block_task, task) for task in tasks]
                    for future in tqdm(as_completed(futures), total=len(futures)):
                        results.append(future.result())

            mosaic_paths = [path for path in results if path is not None]
            if not mosaic_paths:
                print("no polygons found in any block")
                image = np.zeros(shape, dtype=np.float32)
            else:
                print("merging blocks...")
                image = merge_blocks(mosaic_paths, profile)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    image = apply_mask(image, valid, FLOAT_NODATA)
    write_raster_to_file(image, dest_file, out_profile)
    return dest_file
