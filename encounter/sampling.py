"""
Spatial undersampling on an equal-area hexagonal grid, and train/test split.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from pyproj import Transformer
from sklearn.model_selection import train_test_split

from . import config

logger = logging.getLogger(__name__)

GROUP_COLUMNS = ["species_observed", "year", "week", "cell"]


def equal_area_crs(center: tuple[float, float] = config.MAP_CENTER) -> str:
    """Lambert azimuthal equal-area CRS centered on (lat, lon)."""
    lat, lon = center
    return f"+proj=laea +lat_0={lat} +lon_0={lon} +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"


def hex_cells(
    lon: np.ndarray,
    lat: np.ndarray,
    spacing_km: float = config.HEX_SPACING_KM,
    center: tuple[float, float] = config.MAP_CENTER,
) -> np.ndarray:
    """
    Assign points to cells of a hexagonal grid.

    Points are projected to an equal-area CRS so all cells have the same
    area. Hexagons are pointy-topped with ``spacing_km`` between
    neighbouring cell centers.

    Args:
        lon: Longitudes in degrees
        lat: Latitudes in degrees
        spacing_km: Center-to-center distance of adjacent cells
        center: (lat, lon) of the projection center

    Returns:
        Array of cell ids ("q:r" axial coordinates)
    """
    transformer = Transformer.from_crs("EPSG:4326", equal_area_crs(center), always_xy=True)
    x, y = transformer.transform(np.asarray(lon, dtype=float), np.asarray(lat, dtype=float))

    size = spacing_km * 1000 / np.sqrt(3)  # circumradius
    q = (np.sqrt(3) / 3 * x - y / 3) / size
    r = (2 / 3 * y) / size

    # Cube rounding: round all three coordinates, then fix the one with
    # the largest rounding error so that q + r + s == 0
    s = -q - r
    rq, rr, rs = np.round(q), np.round(r), np.round(s)
    dq, dr, ds = np.abs(rq - q), np.abs(rr - r), np.abs(rs - s)

    fix_q = (dq > dr) & (dq > ds)
    fix_r = ~fix_q & (dr > ds)
    rq = np.where(fix_q, -rr - rs, rq)
    rr = np.where(fix_r, -rq - rs, rr)

    return np.array([f"{int(a)}:{int(b)}" for a, b in zip(rq, rr)])


def add_week(df: pd.DataFrame) -> pd.DataFrame:
    """Week of year as consecutive 7-day blocks starting on 1 January."""
    df = df.copy()
    df["week"] = (df["day_of_year"] - 1) // 7 + 1
    return df


def grid_sample(
    df: pd.DataFrame,
    spacing_km: float = config.HEX_SPACING_KM,
    seed: Optional[int] = config.SEED,
) -> pd.DataFrame:
    """
    Keep one random checklist per detection/year/week/cell group.

    This thins densely sampled areas (around cities) and, because detections
    and non-detections are sampled separately, reduces class imbalance.

    Args:
        df: Checklists with latitude, longitude, year, day_of_year and
            species_observed
        spacing_km: Hexagon spacing
        seed: Random seed

    Returns:
        Subsampled checklists with ``week`` and ``cell`` columns
    """
    df = add_week(df)
    df["cell"] = hex_cells(df["longitude"].to_numpy(), df["latitude"].to_numpy(), spacing_km)

    sampled = (
        df.groupby(GROUP_COLUMNS, sort=True)
        .sample(n=1, random_state=seed)
        .sort_index()
    )

    logger.info(f"  Grid sampling kept {len(sampled):,} of {len(df):,} checklists "
                f"(detection frequency {df['species_observed'].mean():.3f} -> "
                f"{sampled['species_observed'].mean():.3f})")
    return sampled


def train_test_split_checklists(
    df: pd.DataFrame,
    train_fraction: float = config.TRAIN_FRACTION,
    seed: Optional[int] = config.SEED,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split checklists into training and test sets.

    The split is stratified on the detection label when both classes have
    at least two checklists, and a plain random split otherwise.

    Returns:
        Tuple of (train, test)
    """
    counts = df["species_observed"].value_counts()
    stratify = df["species_observed"] if len(counts) == 2 and counts.min() >= 2 else None
    if stratify is None:
        logger.warning("  Too few checklists in one class to stratify, using a random split")

    train, test = train_test_split(
        df,
        train_size=train_fraction,
        random_state=seed,
        stratify=stratify,
    )
    logger.info(f"  Train: {len(train):,} checklists, test: {len(test):,} checklists")
    return train, test
