import math

import numpy as np
import pandas as pd
import rasterio
from rasterio.features import rasterize
from rasterio.transform import array_bounds
from rasterio.warp import Resampling, reproject, transform_bounds
from rasterio.windows import Window, from_bounds

from helper.constants import BINARY_NODATA, CODE_NODATA, FLOAT_NODATA
from helper.io_handler import write_raster_to_file


def read_mask(mask_path):
    """Return a boolean array (True inside the mask) and the profile of the reference grid"""
    with rasterio.open(mask_path) as src:
        band = src.read(1)
        nodata_value = src.nodata
        profile = src.profile.copy()
    if nodata_value is None:
        valid = np.ones(band.shape, dtype=bool)
    else:
        valid = band != nodata_value
    return valid, profile


def apply_mask(image, valid, nodata):
    return np.where(valid, image, nodata).astype(image.dtype)


def output_profile(profile, dtype, nodata):
    out_profile = profile.copy()
    out_profile.pop("blockxsize", None)
    out_profile.pop("blockysize", None)
    out_profile.pop("tiled", None)
    out_profile.update(
        driver="GTiff", dtype=dtype, nodata=nodata, count=1, compress="deflate"
    )
    return out_profile


def grid_bounds(profile):
    return array_bounds(profile["height"], profile["width"], profile["transform"])


def snap_window(win, width, height, pad=0):
    """Round a fractional window outward to whole cells and clip it to a width x height grid"""
    eps = 1e-6
    col_start = max(0, math.floor(win.col_off + eps) - pad)
    row_start = max(0, math.floor(win.row_off + eps) - pad)
    col_stop = min(width, math.ceil(win.col_off + win.width - eps) + pad)
    row_stop = min(height, math.ceil(win.row_off + win.height - eps) + pad)
    if col_stop <= col_start or row_stop <= row_start:
        return None
    return Window(col_start, row_start, col_stop - col_start, row_stop - row_start)


def warp_source(src, profile, resampling, crop=True, fn=None):
    """
    Reproject the open dataset src onto the grid described by profile. With crop=True only
    the part of src overlapping the grid is read (like gdal_translate -projwin), which
    matters for Canada-wide inputs. fn optionally transforms the source values first.
    Returns None when src does not overlap the grid.
    """
    if crop:
        bounds = transform_bounds(profile["crs"], src.crs, *grid_bounds(profile), densify_pts=21)
        win = snap_window(
            from_bounds(*bounds, transform=src.transform), src.width, src.height, pad=1
        )
        if win is None:
            return None
    else:
        win = Window(0, 0, src.width, src.height)
    print("reading window ", win, " from ", src.name)

    source = src.read(1, window=win)
    src_nodata = src.nodata
    if fn is not None:
        source = fn(source)
        src_nodata = None
    destination = np.full((profile["height"], profile["width"]), np.nan, dtype=np.float32)
    reproject(
        source=source.astype(np.float32),
        destination=destination,
        src_transform=src.window_transform(win),
        src_crs=src.crs,
        src_nodata=src_nodata,
        dst_transform=profile["transform"],
        dst_crs=profile["crs"],
        dst_nodata=np.nan,
        resampling=resampling,
    )
    return destination


def warp_to_mask(src_paths, mask_path, dest, resampling=Resampling.bilinear, crop=True, fn=None):
    """
    Reproject one or more rasters (eg. adjacent granules) onto the reference grid, clip the
    result to the mask and write it as float32. Where sources overlap the first one wins.
    """
    if isinstance(src_paths, str):
        src_paths = [src_paths]
    valid, profile = read_mask(mask_path)
    destination = np.full((profile["height"], profile["width"]), np.nan, dtype=np.float32)

    n_overlap = 0
    for src_path in src_paths:
        with rasterio.open(src_path) as src:
            part = warp_source(src, profile, resampling, crop, fn)
        if part is None:
            print(src_path, " does not overlap the mask, skipping")
            continue
        n_overlap += 1
        destination = np.where(np.isnan(destination), part, destination)
    if n_overlap == 0:
        raise ValueError(f"None of {src_paths} overlap the mask extent")

    destination = apply_mask(destination, valid, FLOAT_NODATA)
    write_raster_to_file(
        destination, dest, output_profile(profile, "float32", FLOAT_NODATA)
    )
    return dest


def burn_shapes(shapes, out_shape, transform, fill, dtype):
    # rasterize refuses an empty list of shapes
    shapes = [
        (geom, value)
        for geom, value in shapes
        if geom is not None and not geom.is_empty
    ]
    if not shapes:
        return np.full(out_shape, fill, dtype=dtype)
    return rasterize(
        shapes, out_shape=out_shape, transform=transform, fill=fill, dtype=dtype
    )


def rasterize_field(gdf, field, mask_path, dest, dtype="uint16", nodata=CODE_NODATA):
    """Burn an integer attribute onto the reference grid; where polygons overlap the last one wins"""
    valid, profile = read_mask(mask_path)
    image = burn_shapes(
        zip(gdf.geometry, gdf[field]),
        (profile["height"], profile["width"]),
        profile["transform"],
        nodata,
        dtype,
    )
    image = apply_mask(image, valid, nodata)
    write_raster_to_file(image, dest, output_profile(profile, dtype, nodata))
    return dest


def rasterize_presence(gdf, mask_path, dest):
    valid, profile = read_mask(mask_path)
    image = burn_shapes(
        ((geom, 1) for geom in gdf.geometry),
        (profile["height"], profile["width"]),
        profile["transform"],
        0,
        "uint8",
    )
    image = apply_mask(image, valid, BINARY_NODATA)
    write_raster_to_file(image, dest, output_profile(profile, "uint8", BINARY_NODATA))
    return dest


def encode_categories(df, columns):
    """
    Convert categorical columns to integer codes. Code i (1-based) stands for levels[i - 1]
    of the sorted unique values, and missing values get CODE_NODATA.
    """
    codes = pd.DataFrame(index=df.index)
    levels = {}
    for column in columns:
        values = df[column].astype("object").where(df[column].notna(), None)
        levels[column] = sorted(v for v in values.unique() if v is not None)
        categorical = pd.Categorical(values, categories=levels[column])
        codes[column] = (categorical.codes + 1).astype("uint16")
    return codes, levels


def slope_aspect(dem, res):
    """Slope and aspect in degrees. Aspect is the compass direction the slope faces."""
    d_row, d_col = np.gradient(dem.astype(np.float64), res)
    slope = np.degrees(np.arctan(np.hypot(d_col, d_row)))
    # rows run south, so the northward gradient is -d_row
    aspect = np.degrees(np.arctan2(-d_col, d_row)) % 360
    return slope.astype(np.float32), aspect.astype(np.float32)


def downsample_mean(arr, factor):
    height, width = arr.shape
    assert height % factor == 0 and width % factor == 0
    blocks = arr.reshape(height // factor, factor, width // factor, factor)
    return blocks.mean(axis=(1, 3), dtype=np.float64).astype(np.float32)
