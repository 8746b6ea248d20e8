"""
Land cover and elevation covariates for checklists and the prediction surface.
"""

import logging
from pathlib import Path

import pandas as pd

from . import config

logger = logging.getLogger(__name__)

JOIN_KEYS = ["locality_id", "year"]
SURFACE_KEYS = ["cell_id", "x", "y"]


def load_covariates(path: str | Path) -> pd.DataFrame:
    """
    Load the per location/year covariate table.

    Raises:
        ValueError: If the join keys are missing or not unique
    """
    df = pd.read_csv(path, dtype={"locality_id": str})

    missing = set(JOIN_KEYS) - set(df.columns)
    if missing:
        raise ValueError(f"Covariate table is missing columns: {sorted(missing)}")
    if df.duplicated(subset=JOIN_KEYS).any():
        raise ValueError("Covariate table has duplicate (locality_id, year) rows")

    df["year"] = df["year"].astype(int)
    return df


def covariate_columns(df: pd.DataFrame) -> list[str]:
    """Covariate feature names: every column except the keys."""
    keys = set(JOIN_KEYS) | set(SURFACE_KEYS)
    return [c for c in df.columns if c not in keys]


def join_covariates(checklists: pd.DataFrame, covariates: pd.DataFrame) -> pd.DataFrame:
    """
    Attach covariates to checklists by (locality_id, year).

    Checklists without a covariate record are dropped.
    """
    joined = checklists.merge(covariates, on=JOIN_KEYS, how="inner")

    n_dropped = len(checklists) - len(joined)
    if n_dropped:
        logger.warning(f"  {n_dropped:,} checklists had no covariates and were dropped")
    logger.info(f"  {len(joined):,} checklists with covariates")

    return joined


def load_prediction_surface(path: str | Path) -> pd.DataFrame:
    """Load the prediction grid: cell id, cell center and covariates."""
    df = pd.read_csv(path)

    missing = set(SURFACE_KEYS) - set(df.columns)
    if missing:
        raise ValueError(f"Prediction surface is missing columns: {sorted(missing)}")

    df["cell_id"] = df["cell_id"].astype(int)
    return df


def standardize_effort(
    surface: pd.DataFrame,
    year: int,
    hours_of_day: float,
    day_of_year: int = config.PREDICTION_DAY_OF_YEAR,
) -> pd.DataFrame:
    """
    Give every prediction cell the same standardized checklist.

    Encounter rates are predicted for a traveling count of one hour and
    one kilometre by one observer at a fixed date and time of day.
    """
    surface = surface.copy()
    for col, value in config.STANDARD_EFFORT.items():
        surface[col] = value
    surface["year"] = year
    surface["day_of_year"] = day_of_year
    surface["hours_of_day"] = hours_of_day
    return surface
