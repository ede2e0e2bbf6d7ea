# Download public BC/Canadian geospatial datasets, convert them to the reference grid
# (NAD83 / BC Albers, 100m), and split them into NTS/SNRC mapsheets. Around 60GB of data in
# total is downloaded/written under data_dir. Run the borders collection first: it sets up
# the mapsheets and the reference mask used by all the others.

# Example usage: python3 main.py prepare borders
#                python3 main.py prepare cutblocks --n_cores=3
# Then, to mosaic the 2005 harvest mapsheets overlapping an area of interest:
#                python3 main.py load cutblocks harvest --year=yr2005 --aoi_path=aoi.shp --clip

import argparse
import importlib

import geopandas as gpd

from helper.constants import AGGR_FACTOR, COLLECTIONS, DATA_DIR, N_CORES
from mosaic_rasters import load_layer


def positive_int(s):
    value = int(s)
    if value < 1:
        raise argparse.ArgumentTypeError("Expected a positive integer")
    return value


def prepare(config):
    if config["collection"] == "all":
        collections = COLLECTIONS
    else:
        collections = [config["collection"]]
    for collection in collections:
        print("Processing collection: ", collection)
        module = importlib.import_module(f"src_{collection}")
        module.run(config)


def load(config):
    geometry = None
    if config["aoi_path"]:
        geometry = gpd.read_file(config["aoi_path"])
    return load_layer(
        config["collection"],
        config["varname"],
        config["data_dir"],
        geometry=geometry,
        year=config["year"],
        dest=config["out_path"] or None,
        clip=config["clip"],
        crs=config["crs"] or None,
        res=config["res"],
    )


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--data_dir",
        type=str,
        default=DATA_DIR,
        help="Directory for all downloaded source files and outputs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    prepare_parser = subparsers.add_parser("prepare", help="Download and process a collection")
    prepare_parser.add_argument("collection", choices=COLLECTIONS + ["all"])
    prepare_parser.add_argument(
        "--n_cores",
        type=positive_int,
        default=N_CORES,
        help="Number of mapsheets to process in parallel",
    )
    prepare_parser.add_argument(
        "--aggr_factor",
        type=positive_int,
        default=AGGR_FACTOR,
        help="Rasterize polygons at this many times the reference resolution",
    )
    prepare_parser.add_argument(
        "--force_download",
        action="store_true",
        default=False,
        help="Download source files again, overwriting existing ones",
    )
    prepare_parser.add_argument(
        "--force_split",
        action="store_true",
        default=False,
        help="Rewrite mapsheet files that already exist",
    )
    prepare_parser.add_argument(
        "--prov_path",
        type=str,
        default="",
        help="Local provincial boundary file to use instead of downloading one (borders only)",
    )

    load_parser = subparsers.add_parser("load", help="Mosaic the mapsheets covering an area")
    load_parser.add_argument("collection", choices=COLLECTIONS[1:])
    load_parser.add_argument("varname", type=str)
    load_parser.add_argument("--year", type=str, default=None, help="eg. yr2005")
    load_parser.add_argument(
        "--aoi_path",
        type=str,
        default="",
        help="Path to the shapefile containing the AOI (all of BC if not given)",
    )
    load_parser.add_argument("--out_path", type=str, default="", help="Output GeoTIFF path")
    load_parser.add_argument(
        "--clip",
        action="store_true",
        default=False,
        help="Set cells outside the AOI to nodata instead of only cropping",
    )
    load_parser.add_argument(
        "--crs",
        type=str,
        default="",
        help="Reproject the output to this CRS, eg. EPSG:4326 (BC Albers if not given)",
    )
    load_parser.add_argument(
        "--res",
        type=float,
        default=None,
        help="Output resolution in units of --crs",
    )

    args = parser.parse_args(argv)
    config = vars(args)
    if args.command == "prepare":
        prepare(config)
    else:
        print("Wrote: ", load(config))


if __name__ == "__main__":
    main()
