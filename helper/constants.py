import os

# NAD83 / BC Albers, shared with hectaresBC and bcmaps
REFERENCE_CRS = "EPSG:3005"
REFERENCE_RES = 100

DATA_DIR = os.path.join(os.getcwd(), "data")

# Rasterizing one NTS mapsheet takes around 6GB of RAM
N_CORES = 3
AGGR_FACTOR = 10

MASK_NODATA = 0
BINARY_NODATA = 255
CODE_NODATA = 0
FLOAT_NODATA = float("nan")

# Order matters for "all": every other collection needs the borders mask
COLLECTIONS = [
    "borders",
    "dem",
    "bgcz",
    "cutblocks",
    "fire",
    "fids",
    "gfc",
    "pine",
]

# NTS/SNRC 1:250k grid south of 68N: series are 4 x 8 degrees, mapsheets 1 x 2
NTS_SERIES_LAT = 4
NTS_SERIES_LON = 8
NTS_SHEET_LAT = 1
NTS_SHEET_LON = 2
NTS_LAT_ORIGIN = 40
NTS_LON_ORIGIN = 48
NTS_LETTERS = "ABCDEFGHIJKLMNOP"

BORDERS_SRC = {
    "web": "https://www12.statcan.gc.ca/census-recensement/2011/geo/bound-limit/files-fichiers/2016/lpr_000b16a_e.zip",
    "fname": "lpr_000b16a_e.shp",
    "prov_field": "PRUID",
    "prov_code": "59",
}

DEM_SRC = {
    "web": "http://ftp.geogratis.gc.ca/pub/nrcan_rncan/elevation/cdem_mnec/",
    # <web><series>/cdem_dem_<code>_tif.zip holds cdem_dem_<code>.tif
    "fname_prefix": "cdem_dem_",
}

BGCZ_SRC = {
    "web": "https://www.for.gov.bc.ca/ftp/HRE/external/!publish/becmaps/GISdata/WithLandCover/BGCv11_WithLandcover.gdb.zip",
    "fname": "BGCv11_WithLandcover.gdb",
    # shapefile field names are capped at 10 characters, so keep these short
    "feat_name": {
        "region": "REG_NAME",
        "source": "ORG_NAME",
        "cover": "LAND_COVER_CLASS",
        "zone": "ZONE",
        "subzone": "SUBZONE",
        "variant": "VARIANT",
    },
}

YEARS = list(range(2001, 2019))

CUTBLOCKS_SRC = {
    "web": "https://www.for.gov.bc.ca/ftp/HTS/external/!publish/consolidated_cutblocks/Consolidated_Cutblocks.zip",
    "fname": "Consolidated_Cutblocks.gdb",
    "feat_name": {"harvest": "Harvest_Year"},
    "years": {f"yr{year}": year for year in YEARS},
}

FIRE_SRC = {
    "web": "https://pub.data.gov.bc.ca/datasets/22c7cb44-1463-48f7-8e47-88857f207702/prot_historical_fire_polys_sp.zip",
    "feat_name": {"fire": "FIRE_YEAR"},
    "years": {f"yr{year}": year for year in YEARS},
}

FIDS_SRC = {
    "web": "https://www.for.gov.bc.ca/ftp/HFP/external/!publish/Aerial_Overview/{year}/final_data/FHF_{year}_spatial.zip",
    "feat_name": {"pest": "FHF", "severity": "SEVERITY"},
    # mountain pine beetle
    "pest": "IBM",
    "severity": {
        "trace": "T",
        "light": "L",
        "moderate": "M",
        "severe": "S",
        "verysevere": "V",
    },
    "years": {f"yr{year}": year for year in YEARS},
}

GFC_SRC = {
    "web": "https://storage.googleapis.com/earthenginepartners-hansen/GFC-2018-v1.6/",
    "fname_prefix": "Hansen_GFC-2018-v1.6_",
    "layers": ["treecover2000", "gain", "lossyear"],
    # named by their top-left corners
    "granules": ["50N_140W", "50N_130W", "50N_120W", "60N_140W", "60N_130W", "60N_120W"],
    "years": {f"yr{year}": year for year in YEARS},
}

PINE_SRC = {
    "web": {
        "yr2001": "http://ftp.maps.canada.ca/pub/nrcan_rncan/Forests_Foret/canada-forests-attributes_attributs-forests-canada/2001-attributes_attributs-2001/",
        "yr2011": "http://ftp.maps.canada.ca/pub/nrcan_rncan/Forests_Foret/canada-forests-attributes_attributs-forests-canada/2011-attributes_attributs-2011/",
    },
    "years": {"yr2001": "2001", "yr2011": "2011"},
    # all files are of the form <prefix><year><feat_name><suffix>
    "fname_prefix": "NFI_MODIS250m_",
    "fname_suffix": "_v1.tif",
    "feat_name": {
        "veg": "_kNN_LandCover_Veg",
        "vegTreed": "_kNN_LandCover_VegTreed",
        "needle": "_kNN_SpeciesGroups_Needleleaf_Spp",
        "age": "_kNN_Structure_Stand_Age",
        "pinusAlb": "_kNN_Species_Pinu_Alb",
        "pinusBan": "_kNN_Species_Pinu_Ban",
        "pinusCon": "_kNN_Species_Pinu_Con",
        "pinusMon": "_kNN_Species_Pinu_Mon",
        "pinusPon": "_kNN_Species_Pinu_Pon",
        "pinusRes": "_kNN_Species_Pinu_Res",
        "pinusSpp": "_kNN_Species_Pinu_Spp",
        "pinusStr": "_kNN_Species_Pinu_Str",
        "pinusSyl": "_kNN_Species_Pinu_Syl",
    },
}
