"""
eBird Basic Dataset filtering and zero-filling.

Reads the tab-delimited observation (EBD) and sampling event (SED) extracts,
keeps complete checklists of the target protocols in the region, and
produces one row per checklist with a boolean detection label for the
target species.
"""

import csv
import logging
from pathlib import Path
from typing import Optional

import pandas as pd
from tqdm import tqdm

from . import config
from .cache import cache_key, has_record, is_fresh, record

logger = logging.getLogger(__name__)

# Columns kept from either extract (after name cleaning)
SAMPLING_COLUMNS = [
    "checklist_id",
    "observer_id",
    "locality_id",
    "state_code",
    "latitude",
    "longitude",
    "observation_date",
    "time_observations_started",
    "protocol_type",
    "duration_minutes",
    "effort_distance_km",
    "number_observers",
    "all_species_reported",
    "group_identifier",
]
OBSERVATION_COLUMNS = SAMPLING_COLUMNS + [
    "common_name",
    "scientific_name",
    "observation_count",
]

# Columns of the zero-filled checklist table
CHECKLIST_COLUMNS = [
    "checklist_id",
    "observer_id",
    "locality_id",
    "latitude",
    "longitude",
    "observation_date",
    "year",
    "day_of_year",
    "hours_of_day",
    "protocol_type",
    "protocol_traveling",
    "duration_minutes",
    "effort_distance_km",
    "number_observers",
    "observation_count",
    "species_observed",
]

RENAMES = {"sampling_event_identifier": "checklist_id"}


def clean_name(name: str) -> str:
    """Normalize an EBD header ("SAMPLING EVENT IDENTIFIER") to snake_case."""
    name = name.strip().lower().replace(" ", "_").replace("/", "_")
    return RENAMES.get(name, name)


def read_ebd(
    path: str | Path,
    species: Optional[str] = None,
    region: str = config.REGION_CODE,
    protocols: tuple[str, ...] = config.PROTOCOLS,
    complete: bool = config.COMPLETE_ONLY,
    chunksize: int = 500_000,
) -> pd.DataFrame:
    """
    Read and filter an EBD or SED extract.

    The file is read in chunks so that country-scale extracts do not have to
    fit in memory before filtering.

    Args:
        path: Tab-delimited extract
        species: Common name to keep (observation extract only)
        region: State/province code, e.g. "US-MN"
        protocols: Protocol types to keep
        complete: Keep only checklists reporting all species
        chunksize: Rows per chunk

    Returns:
        Filtered DataFrame with snake_case columns
    """
    wanted = set(OBSERVATION_COLUMNS if species else SAMPLING_COLUMNS)
    reader = pd.read_csv(
        path,
        sep="\t",
        dtype=str,
        quoting=csv.QUOTE_NONE,
        usecols=lambda c: clean_name(c) in wanted,
        chunksize=chunksize,
    )

    kept = []
    n_read = 0
    for chunk in tqdm(reader, desc=f"Reading {Path(path).name}", unit="chunk"):
        chunk.columns = [clean_name(c) for c in chunk.columns]
        n_read += len(chunk)

        missing = wanted - set(chunk.columns)
        if missing:
            raise ValueError(f"{path} is missing columns: {sorted(missing)}")

        mask = chunk["state_code"] == region
        mask &= chunk["protocol_type"].isin(protocols)
        if complete:
            mask &= pd.to_numeric(chunk["all_species_reported"], errors="coerce") == 1
        if species:
            mask &= chunk["common_name"] == species
        kept.append(chunk[mask])

    if not kept:
        return pd.DataFrame(columns=sorted(wanted))

    df = pd.concat(kept, ignore_index=True)
    logger.info(f"  {Path(path).name}: kept {len(df):,} of {n_read:,} rows")
    return df


def collapse_group_checklists(
    df: pd.DataFrame,
    keys: tuple[str, ...] = (),
) -> pd.DataFrame:
    """
    Collapse shared checklists into a single checklist.

    Observers birding together submit copies of one checklist linked by a
    group identifier. The copy with the lowest checklist id is kept and
    takes the group identifier as its checklist id.

    Args:
        df: Observation or sampling table
        keys: Extra columns that identify a row within a checklist
            (e.g. the species for an observation table)
    """
    df = df.sort_values("checklist_id", kind="stable").copy()
    grouped = df["group_identifier"].notna() & (df["group_identifier"] != "")
    df.loc[grouped, "checklist_id"] = df.loc[grouped, "group_identifier"]

    before = len(df)
    df = df.drop_duplicates(subset=["checklist_id", *keys], keep="first")
    if before > len(df):
        logger.info(f"  Collapsed {before - len(df):,} duplicate group checklist rows")
    return df.reset_index(drop=True)


def zero_fill(observations: pd.DataFrame, sampling: pd.DataFrame) -> pd.DataFrame:
    """
    Add non-detections for checklists where the species was not reported.

    Args:
        observations: Detections of the target species
        sampling: One row per checklist

    Returns:
        The sampling table with ``observation_count`` and a boolean
        ``species_observed`` column; row count is unchanged.
    """
    if sampling["checklist_id"].duplicated().any():
        raise ValueError("Sampling table has duplicate checklist ids")

    detections = (
        observations[["checklist_id", "observation_count"]]
        .drop_duplicates(subset="checklist_id")
    )
    zf = sampling.merge(detections, on="checklist_id", how="left", indicator=True)
    zf["species_observed"] = zf.pop("_merge") == "both"
    zf.loc[~zf["species_observed"], "observation_count"] = "0"

    return zf


def clean_checklists(df: pd.DataFrame) -> pd.DataFrame:
    """
    Derive temporal fields and apply the effort filter.

    Distance is set to zero for stationary checklists. Presence-only counts
    ("X") become NaN. Checklists longer than 5 h, further than 5 km, with
    more than 10 observers, from before 2010, or without a start time are
    dropped.
    """
    df = df.copy()

    for col in ["latitude", "longitude", "duration_minutes",
                "effort_distance_km", "number_observers"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["observation_count"] = pd.to_numeric(df["observation_count"], errors="coerce")

    stationary = df["protocol_type"] == "Stationary"
    df.loc[stationary, "effort_distance_km"] = 0.0
    df["protocol_traveling"] = (df["protocol_type"] == "Traveling").astype(int)

    start = pd.to_timedelta(df["time_observations_started"], errors="coerce")
    df["hours_of_day"] = start.dt.total_seconds() / 3600

    date = pd.to_datetime(df["observation_date"], errors="coerce")
    df["year"] = date.dt.year
    df["day_of_year"] = date.dt.dayofyear
    df["species_observed"] = df["species_observed"].astype(bool)

    keep = (
        (df["duration_minutes"] <= config.MAX_DURATION_MINUTES)
        & (df["effort_distance_km"] <= config.MAX_DISTANCE_KM)
        & (df["number_observers"] <= config.MAX_OBSERVERS)
        & (df["year"] >= config.MIN_YEAR)
        & df["hours_of_day"].notna()
    )
    logger.info(f"  Effort filter kept {int(keep.sum()):,} of {len(df):,} checklists")

    out = df.loc[keep, CHECKLIST_COLUMNS].reset_index(drop=True)
    out["year"] = out["year"].astype(int)
    out["day_of_year"] = out["day_of_year"].astype(int)
    return out


def filter_params() -> dict:
    """Parameters that determine the filtered checklist table."""
    return {
        "species": config.SPECIES_NAME,
        "region": config.REGION_CODE,
        "protocols": list(config.PROTOCOLS),
        "complete": config.COMPLETE_ONLY,
        "max_duration_minutes": config.MAX_DURATION_MINUTES,
        "max_distance_km": config.MAX_DISTANCE_KM,
        "max_observers": config.MAX_OBSERVERS,
        "min_year": config.MIN_YEAR,
    }


def read_checklists(path: str | Path) -> pd.DataFrame:
    """Read a zero-filled checklist table written by filter_checklists()."""
    return pd.read_csv(
        path,
        dtype={"checklist_id": str, "observer_id": str, "locality_id": str},
    ).astype({"species_observed": bool})


def filter_checklists(
    ebd_path: str | Path,
    sed_path: str | Path,
    out_path: str | Path,
    force: bool = False,
) -> pd.DataFrame:
    """
    Filter, zero-fill and clean the extracts for the target species.

    The output is reused when it was produced from the same inputs and
    parameters; ``force`` always recomputes. If the extracts have been
    removed since, an existing recorded output is reused unverified.

    Args:
        ebd_path: Observation extract
        sed_path: Sampling event extract
        out_path: Zero-filled checklist CSV
        force: Ignore any cached output

    Returns:
        Zero-filled checklist DataFrame
    """
    out_path = Path(out_path)

    missing = [str(p) for p in (ebd_path, sed_path) if not Path(p).exists()]
    if missing and not force and has_record([out_path]):
        logger.warning(f"Extracts not found ({', '.join(missing)}), "
                       f"reusing {out_path} without checking it is current")
        return read_checklists(out_path)

    key = cache_key(filter_params(), [ebd_path, sed_path])

    if not force and is_fresh([out_path], key):
        logger.info(f"Using cached checklists: {out_path}")
        return read_checklists(out_path)

    logger.info(f"Filtering extracts for {config.SPECIES_NAME} in {config.REGION_CODE}...")
    observations = read_ebd(ebd_path, species=config.SPECIES_NAME)
    sampling = read_ebd(sed_path)

    observations = collapse_group_checklists(observations, keys=("common_name",))
    sampling = collapse_group_checklists(sampling)

    checklists = clean_checklists(zero_fill(observations, sampling))
    if checklists.empty:
        raise ValueError("No checklists left after filtering")

    n_det = int(checklists["species_observed"].sum())
    logger.info(f"  {len(checklists):,} checklists, {n_det:,} with detections "
                f"({100 * n_det / len(checklists):.1f}%)")

    out_path.parent.mkdir(parents=True, exist_ok=True)
    checklists.to_csv(out_path, index=False)
    record([out_path], key)
    logger.info(f"Saved checklists to {out_path}")

    return checklists
