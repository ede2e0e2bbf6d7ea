import os
import tempfile
import zipfile

import fiona
import rasterio
import requests
from tqdm import tqdm

CHUNK_SIZE = 4 * 1024 * 1024
TIMEOUT = 600


def find_file(target_dir, extension):
    for file in sorted(os.listdir(target_dir)):
        if file.endswith(extension):
            return os.path.join(target_dir, file)
    return None


def write_raster_to_file(image, filename, profile):
    print("Writing raster to file: ", filename)
    os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
    if image.ndim == 2:
        image = image[None, :, :]
    profile = profile.copy()
    profile.update(driver="GTiff", count=image.shape[0])
    with rasterio.open(filename, "w", **profile) as dst:
        dst.write(image)


def download_file(url, dest, force=False):
    """Stream url to dest, skipping the download if dest already exists."""
    if os.path.exists(dest) and not force:
        print("using existing source file: ", dest)
        return dest

    os.makedirs(os.path.dirname(os.path.abspath(dest)), exist_ok=True)
    part = dest + ".part"
    print(f"downloading {url} to {dest}")
    with requests.get(url, stream=True, timeout=TIMEOUT) as resp:
        resp.raise_for_status()
        total = int(resp.headers.get("Content-Length", 0)) or None
        with open(part, "wb") as fh, tqdm(
            total=total, unit="B", unit_scale=True, desc=os.path.basename(dest)
        ) as pbar:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                fh.write(chunk)
                pbar.update(len(chunk))
    os.replace(part, dest)
    return dest


def download_and_extract(url, exdir, expected, force=False):
    """
    Download a zip archive into exdir and unpack it there. The download is skipped when
    all of the paths in expected are already present.
    """
    if not force and all(os.path.exists(path) for path in expected):
        print("using existing source files:")
        for path in expected:
            print("  ", path)
        return expected

    os.makedirs(exdir, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        suffix=".zip", dir=exdir, delete=False
    ) as temp_file:
        temp_zip = temp_file.name
    try:
        download_file(url, temp_zip, force=True)
        with zipfile.ZipFile(temp_zip) as zf:
            zf.extractall(exdir)
    finally:
        if os.path.exists(temp_zip):
            os.remove(temp_zip)

    missing = [path for path in expected if not os.path.exists(path)]
    if missing:
        raise FileNotFoundError(f"{url} did not contain the expected files: {missing}")
    return expected


def make_block_path(out_dir, full_path, code):
    # Example: data/dem/dem_std.tif -> data/dem/blocks/092H/dem_std_092H.tif
    base, ext = os.path.splitext(os.path.basename(full_path))
    block_dir = os.path.join(out_dir, "blocks", code)
    os.makedirs(block_dir, exist_ok=True)
    return os.path.join(block_dir, f"{base}_{code}{ext}")


def iter_paths(nested):
    """Yield (keys, path) pairs from a nested {name: path | {name: ...}} dictionary."""
    for key, value in nested.items():
        if isinstance(value, dict):
            for keys, path in iter_paths(value):
                yield (key,) + keys, path
        else:
            yield (key,), value


def find_layer(path, fields):
    """Name of the first layer in path (eg. a file geodatabase) having all of the fields"""
    for layer in fiona.listlayers(path):
        with fiona.open(path, layer=layer) as src:
            properties = src.schema["properties"]
            if all(field in properties for field in fields):
                return layer
    raise ValueError(f"No layer in {path} has the fields {fields}")


def fetch_shapefile(url, src_dir, force=False):
    """Download and extract a zipped shapefile unless one is already in src_dir"""
    os.makedirs(src_dir, exist_ok=True)
    shp_path = find_file(src_dir, ".shp")
    if shp_path is None or force:
        download_and_extract(url, src_dir, [], force=True)
        shp_path = find_file(src_dir, ".shp")
        if shp_path is None:
            raise FileNotFoundError(f"No shapefile found in the archive at {url}")
    else:
        print("using existing source file: ", shp_path)
    return shp_path
