"""
Shared fixtures for encounter rate pipeline tests.

Provides small eBird extracts, a synthetic checklist table with covariates,
and a prediction surface with its template raster so each test module can
focus on verifying pipeline logic against known inputs.
"""

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_bounds

SAMPLING_HEADER = [
    "SAMPLING EVENT IDENTIFIER",
    "OBSERVER ID",
    "LOCALITY ID",
    "STATE CODE",
    "LATITUDE",
    "LONGITUDE",
    "OBSERVATION DATE",
    "TIME OBSERVATIONS STARTED",
    "PROTOCOL TYPE",
    "DURATION MINUTES",
    "EFFORT DISTANCE KM",
    "NUMBER OBSERVERS",
    "ALL SPECIES REPORTED",
    "GROUP IDENTIFIER",
]
OBSERVATION_HEADER = ["GLOBAL UNIQUE IDENTIFIER", "COMMON NAME", "SCIENTIFIC NAME",
                      "OBSERVATION COUNT"] + SAMPLING_HEADER

# id, observer, locality, state, lat, lon, date, time, protocol,
# duration, distance, observers, complete, group
SAMPLING_ROWS = [
    ["S1", "obs1", "L1", "US-MN", "46.0", "-94.0", "2015-06-01", "06:00:00", "Traveling", "60", "1.5", "1", "1", ""],
    ["S2", "obs2", "L2", "US-MN", "46.5", "-93.5", "2016-06-10", "07:30:00", "Stationary", "30", "2.0", "2", "1", ""],
    ["S3", "obs3", "L3", "US-MN", "47.0", "-94.5", "2017-07-04", "18:15:00", "Traveling", "120", "3.0", "1", "1", ""],
    ["S4", "obs1", "L1", "US-MN", "46.0", "-94.0", "2018-05-20", "05:45:00", "Traveling", "45", "0.8", "1", "1", ""],
    ["S5", "obs4", "L4", "US-WI", "44.5", "-89.5", "2018-05-20", "08:00:00", "Traveling", "45", "0.8", "1", "1", ""],
    ["S6", "obs5", "L5", "US-MN", "45.0", "-93.0", "2018-05-21", "08:00:00", "Incidental", "", "", "1", "1", ""],
    ["S7", "obs6", "L6", "US-MN", "45.1", "-93.1", "2018-05-22", "08:00:00", "Traveling", "30", "1.0", "1", "0", ""],
    ["S8", "obs7", "L7", "US-MN", "45.2", "-93.2", "2018-05-23", "08:00:00", "Traveling", "400", "1.0", "1", "1", ""],
    ["S9", "obs8", "L8", "US-MN", "45.3", "-93.3", "2008-05-24", "08:00:00", "Traveling", "30", "1.0", "1", "1", ""],
    ["S10", "obs9", "L9", "US-MN", "47.5", "-92.5", "2019-06-15", "09:00:00", "Traveling", "90", "2.5", "3", "1", "G1"],
    ["S11", "obs10", "L9", "US-MN", "47.5", "-92.5", "2019-06-15", "09:00:00", "Traveling", "90", "2.5", "3", "1", "G1"],
    ["S12", "obs11", "L10", "US-MN", "45.4", "-93.4", "2018-05-25", "08:00:00", "Traveling", "30", "8.0", "1", "1", ""],
    ["S13", "obs12", "L11", "US-MN", "45.5", "-93.5", "2018-05-26", "08:00:00", "Traveling", "30", "1.0", "12", "1", ""],
    ["S14", "obs13", "L12", "US-MN", "45.6", "-93.6", "2018-05-27", "", "Traveling", "30", "1.0", "1", "1", ""],
]

# (checklist, common name, count)
DETECTIONS = [
    ("S1", "Common Loon", "2"),
    ("S2", "Mallard", "4"),
    ("S3", "Common Loon", "X"),
    ("S5", "Common Loon", "1"),
    ("S8", "Common Loon", "1"),
    ("S10", "Common Loon", "1"),
    ("S11", "Common Loon", "1"),
]

# Prediction grid over Minnesota
WEST, SOUTH, EAST, NORTH = -97.0, 43.5, -90.0, 49.5
RES = 0.25
WIDTH = int(round((EAST - WEST) / RES))
HEIGHT = int(round((NORTH - SOUTH) / RES))
TRANSFORM = from_bounds(WEST, SOUTH, EAST, NORTH, WIDTH, HEIGHT)


def _write_tsv(path, header, rows):
    lines = ["\t".join(header)] + ["\t".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def sed_path(tmp_path):
    """Sampling event extract."""
    return _write_tsv(tmp_path / "sed.txt", SAMPLING_HEADER, SAMPLING_ROWS)


@pytest.fixture
def ebd_path(tmp_path):
    """Observation extract for the checklists in the sampling extract."""
    by_id = {row[0]: row for row in SAMPLING_ROWS}
    rows = []
    for i, (checklist, name, count) in enumerate(DETECTIONS):
        scientific = "Gavia immer" if name == "Common Loon" else "Anas platyrhynchos"
        rows.append([f"URN:{i}", name, scientific, count] + by_id[checklist])
    return _write_tsv(tmp_path / "ebd.txt", OBSERVATION_HEADER, rows)


def _covariates(rng, n):
    water = rng.uniform(0, 1, n)
    return {
        "pland_water": water,
        "pland_forest": rng.uniform(0, 1 - water),
        "elevation_median": rng.normal(350, 60, n),
    }


@pytest.fixture
def checklists():
    """Checklists with covariates; detection depends mostly on water cover."""
    rng = np.random.default_rng(0)
    n = 400
    covs = _covariates(rng, n)
    logit = -2.5 + 6 * covs["pland_water"] + 0.05 * (rng.uniform(5, 20, n) - 12)
    df = pd.DataFrame({
        "checklist_id": [f"S{i}" for i in range(n)],
        "locality_id": [f"L{i % 150}" for i in range(n)],
        "latitude": rng.uniform(44.0, 49.0, n),
        "longitude": rng.uniform(-96.5, -90.5, n),
        "year": rng.integers(2012, 2020, n),
        "day_of_year": rng.integers(120, 240, n),
        "hours_of_day": rng.uniform(5, 20, n),
        "protocol_traveling": rng.integers(0, 2, n),
        "duration_minutes": rng.integers(5, 300, n),
        "effort_distance_km": rng.uniform(0, 5, n),
        "number_observers": rng.integers(1, 5, n),
        **covs,
    })
    df["species_observed"] = rng.uniform(0, 1, n) < 1 / (1 + np.exp(-logit))
    return df


@pytest.fixture
def covariate_names():
    return ["pland_water", "pland_forest", "elevation_median"]


@pytest.fixture
def template_path(tmp_path):
    """Template GeoTIFF defining the prediction grid."""
    path = tmp_path / "template.tif"
    meta = {
        "driver": "GTiff",
        "height": HEIGHT,
        "width": WIDTH,
        "count": 1,
        "dtype": "float32",
        "crs": "EPSG:4326",
        "transform": TRANSFORM,
        "nodata": np.nan,
    }
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(np.zeros((HEIGHT, WIDTH), dtype="float32"), 1)
    return path


@pytest.fixture
def surface():
    """Prediction surface covering every template cell."""
    rng = np.random.default_rng(1)
    n = WIDTH * HEIGHT
    cell_id = np.arange(n)
    rows, cols = np.divmod(cell_id, WIDTH)
    x, y = rasterio.transform.xy(TRANSFORM, rows, cols)
    return pd.DataFrame({"cell_id": cell_id, "x": x, "y": y, **_covariates(rng, n)})
