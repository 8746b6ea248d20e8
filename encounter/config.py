"""
Fixed parameters for the encounter-rate pipeline.
"""

from pathlib import Path

# Target species and region
SPECIES_NAME = "Common Loon"
REGION_CODE = "US-MN"
PROTOCOLS = ("Stationary", "Traveling")
COMPLETE_ONLY = True

# Effort post-filter
MAX_DURATION_MINUTES = 300
MAX_DISTANCE_KM = 5
MAX_OBSERVERS = 10
MIN_YEAR = 2010

# Spatial undersampling
HEX_SPACING_KM = 5
TRAIN_FRACTION = 0.8
SEED = 1

# Random forest
RF_PARAMS = {
    "n_estimators": 500,
    "criterion": "gini",
    "min_samples_leaf": 1,
}

# Boosted regression trees
BRT_PARAMS = {
    "max_depth": 5,
    "learning_rate": 0.05,
    "subsample": 0.8,
    "colsample_bytree": 0.8,
    "min_child_weight": 1,
}
BRT_MAX_ROUNDS = 2000
EARLY_STOPPING_ROUNDS = 50
CV_FOLDS = 5

# Grid used by tune_brt()
BRT_TUNING_GRID = {
    "max_depth": [3, 5, 7],
    "learning_rate": [0.01, 0.05, 0.1],
    "subsample": [0.6, 0.8, 1.0],
}

# Standardized checklist used for inference
STANDARD_EFFORT = {
    "protocol_traveling": 1,
    "duration_minutes": 60,
    "effort_distance_km": 1.0,
    "number_observers": 1,
}
PREDICTION_DAY_OF_YEAR = 166  # mid-June, breeding season

# Map display: Lambert azimuthal equal-area centered on Minnesota
MAP_CENTER = (46.3, -94.3)  # (lat, lon)
MAP_HALF_WIDTH_M = 450_000
MAP_HALF_HEIGHT_M = 400_000
MAP_RESOLUTION_M = 3000

# MODIS sinusoidal projection used by the covariate rasters
SINUSOIDAL_CRS = (
    "+proj=sinu +lon_0=0 +x_0=0 +y_0=0 "
    "+a=6371007.181 +b=6371007.181 +units=m +no_defs"
)

# Default file layout
DATA_DIR = Path("data")
OUTPUT_DIR = Path("output")
EBD_FILE = "ebd_US-MN_relOct-2020.txt"
SED_FILE = "ebd_sampling_relOct-2020.txt"
CHECKLISTS_FILE = "ebd_checklists_zf.csv"
COVARIATES_FILE = "pland-elev_location-year.csv"
SURFACE_FILE = "pland-elev_prediction-surface.csv"
TEMPLATE_RASTER = "prediction-surface.tif"
GIS_FILE = "gis-data.gpkg"
REGION_SHAPEFILE = Path("tl_2016_27_cousub") / "tl_2016_27_cousub.shp"
