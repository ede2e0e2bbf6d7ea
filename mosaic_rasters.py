# Reassemble mapsheet rasters into one raster covering an area of interest, and reproject
# rasters to other grids. This is the user-facing side of the collections: find the NTS/SNRC
# mapsheets that cover a polygon, merge their files, then crop or clip to the polygon.

import os
import tempfile

import geopandas as gpd
import rasterio
import rasterio.mask
from rasterio.merge import merge
from rasterio.warp import Resampling, calculate_default_transform, reproject
from shapely.geometry import mapping

from helper.constants import REFERENCE_CRS
from helper.io_handler import write_raster_to_file
from helper.metadata import findblocks_bc, load_metadata, metadata_path


def mosaic_files(paths, dest):
    """Merge rasters sharing a grid into dest"""
    assert len(paths) > 0
    print(f"Merging {len(paths)} rasters into {dest}")
    datasets = [rasterio.open(path) for path in paths]
    try:
        mosaic, out_trans = merge(datasets)
        out_meta = datasets[0].meta.copy()
    finally:
        for dataset in datasets:
            dataset.close()

    out_meta.update(
        {
            "driver": "GTiff",
            "height": mosaic.shape[1],
            "width": mosaic.shape[2],
            "transform": out_trans,
        }
    )
    write_raster_to_file(mosaic, dest, out_meta)
    return dest


def reproject_raster(src_path, dst_path, dst_crs, res=None, resampling=Resampling.nearest):
    with rasterio.open(src_path) as src:
        transform, width, height = calculate_default_transform(
            src.crs, dst_crs, src.width, src.height, *src.bounds, resolution=res
        )
        kwargs = src.meta.copy()
        kwargs.update(
            {
                "driver": "GTiff",
                "crs": dst_crs,
                "transform": transform,
                "width": width,
                "height": height,
            }
        )

        with rasterio.open(dst_path, "w", **kwargs) as dst:
            for i in range(1, src.count + 1):
                reproject(
                    source=rasterio.band(src, i),
                    destination=rasterio.band(dst, i),
                    src_transform=src.transform,
                    src_crs=src.crs,
                    dst_transform=transform,
                    dst_crs=dst_crs,
                    resampling=resampling,
                )
    return dst_path


def find_block_files(cfg, varname, year=None):
    blocks = cfg["out"]["fname"]["tif"]["block"]
    if year is not None:
        if year not in blocks:
            raise ValueError(f"{year} not in {cfg['out']['name']}, expected one of {list(blocks)}")
        blocks = blocks[year]
    if varname not in blocks:
        raise ValueError(f"{varname} not in {cfg['out']['name']}, expected one of {list(blocks)}")
    return blocks[varname]


def load_layer(
    collection,
    varname,
    data_dir,
    geometry=None,
    year=None,
    dest=None,
    clip=False,
    crs=None,
    res=None,
):
    """
    Mosaic the mapsheets of a layer covering geometry (a GeoDataFrame or GeoSeries, all of
    BC when None) and write the result to dest. With clip=True, cells outside the geometry
    are set to nodata; otherwise the mosaic is only cropped to its bounding box. When crs is
    given the result is reprojected (nearest neighbour, at resolution res if given).
    """
    cfg = load_metadata(metadata_path(collection, data_dir))
    block_files = find_block_files(cfg, varname, year)
    codes = findblocks_bc(data_dir, geometry)
    paths = [block_files[code] for code in codes if code in block_files]
    if not paths:
        raise ValueError(f"No {collection} mapsheets of {varname} overlap the area of interest")
    print(f"Found {len(paths)} mapsheets: {codes}")

    if dest is None:
        name = varname if year is None else f"{varname}_{year}"
        dest = os.path.join(data_dir, "load", f"{collection}_{name}.tif")

    if geometry is None:
        mosaic_files(paths, dest)
    else:
        crop_mosaic(paths, geometry, dest, clip)

    if crs is not None:
        reproject_in_place(dest, crs, res)
    return dest


def crop_mosaic(paths, geometry, dest, clip):
    with tempfile.NamedTemporaryFile(suffix=".tif", delete=False) as temp_file:
        temp_name = temp_file.name
    try:
        mosaic_files(paths, temp_name)
        shapes = gpd.GeoSeries(geometry.geometry, crs=geometry.crs)
        if shapes.crs is not None:
            shapes = shapes.to_crs(REFERENCE_CRS)
        with rasterio.open(temp_name) as src:
            profile = src.profile.copy()
            nodata = src.nodata if src.nodata is not None else 0
            out_image, out_transform = rasterio.mask.mask(
                src,
                [mapping(geom) for geom in shapes],
                crop=True,
                filled=clip,
                nodata=nodata,
            )
        if not clip:
            out_image = out_image.data
        profile.update(
            height=out_image.shape[1], width=out_image.shape[2], transform=out_transform
        )
        write_raster_to_file(out_image, dest, profile)
    finally:
        os.remove(temp_name)
    return dest


def reproject_in_place(path, dst_crs, res=None):
    print(f"Reprojecting {path} to {dst_crs}")
    temp_name = os.path.splitext(path)[0] + "_reproject.tif"
    reproject_raster(path, temp_name, dst_crs, res=res)
    os.replace(temp_name, path)
    return path
