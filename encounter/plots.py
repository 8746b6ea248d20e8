"""
Descriptive plots and maps.
"""

import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from . import config
from .calibration import Calibrator, binned_rates
from .predict import EncounterSurface, display_crs

logger = logging.getLogger(__name__)


def detection_frequency(df: pd.DataFrame, by: str) -> pd.DataFrame:
    """Detection frequency and checklist count per value of ``by``."""
    return (
        df.groupby(by)["species_observed"]
        .agg(detection_frequency="mean", n_checklists="size")
        .reset_index()
    )


def _frequency_plot(freq: pd.DataFrame, by: str, xlabel: str, title: str, path: Path) -> Path:
    fig, (ax_freq, ax_n) = plt.subplots(2, 1, figsize=(8, 6), sharex=True)

    ax_freq.plot(freq[by], freq["detection_frequency"], marker="o")
    ax_freq.set_ylabel("Detection frequency")
    ax_freq.set_title(title)

    ax_n.bar(freq[by], freq["n_checklists"], color="grey")
    ax_n.set_ylabel("Checklists")
    ax_n.set_xlabel(xlabel)

    fig.tight_layout()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150)
    plt.close(fig)
    logger.info(f"Saved {path}")
    return path


def plot_temporal(checklists: pd.DataFrame, path: Path, species: str = "") -> Path:
    """Detection frequency by week of the year."""
    df = checklists.assign(week=(checklists["day_of_year"] - 1) // 7 + 1)
    freq = detection_frequency(df, "week")
    return _frequency_plot(freq, "week", "Week of year", f"{species} detection by week".strip(), path)


def plot_diel(checklists: pd.DataFrame, path: Path, species: str = "") -> Path:
    """Detection frequency by hour of the day."""
    df = checklists.assign(hour=np.floor(checklists["hours_of_day"]).astype(int))
    freq = detection_frequency(df, "hour")
    return _frequency_plot(freq, "hour", "Hour of day", f"{species} detection by time of day".strip(), path)


def plot_calibration(
    observed: np.ndarray,
    raw: np.ndarray,
    calibrator: Calibrator,
    path: Path,
) -> Path:
    """Calibration curve over the binned observed encounter rate."""
    curve = calibrator.curve()
    bins = binned_rates(observed, raw)

    fig, ax = plt.subplots(figsize=(6, 6))
    ax.plot([0, 1], [0, 1], linestyle="--", color="grey", label="1:1")
    ax.scatter(bins["score"], bins["observed"], s=20 + bins["n"] / bins["n"].max() * 100,
               alpha=0.6, label="Observed")
    ax.plot(curve["raw"], curve["calibrated"], color="tab:red", label="Calibration")
    ax.set_xlabel("Raw score")
    ax.set_ylabel("Encounter rate")
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1)
    ax.legend()

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150)
    plt.close(fig)
    logger.info(f"Saved {path}")
    return path


def _draw_boundaries(ax, boundaries: dict[str, gpd.GeoDataFrame]) -> None:
    if "ne_land" in boundaries:
        boundaries["ne_land"].plot(ax=ax, color="#dddddd", edgecolor="none", zorder=0)
    if "ne_state_lines" in boundaries:
        boundaries["ne_state_lines"].plot(ax=ax, color="white", linewidth=0.5, zorder=3)
    if "ne_country_lines" in boundaries:
        boundaries["ne_country_lines"].plot(ax=ax, color="white", linewidth=1, zorder=3)


def plot_checklist_map(
    checklists: pd.DataFrame,
    path: Path,
    boundaries: Optional[dict[str, gpd.GeoDataFrame]] = None,
    center: tuple[float, float] = config.MAP_CENTER,
) -> Path:
    """Checklist locations, detections drawn on top of non-detections."""
    crs = display_crs(center)
    points = gpd.GeoDataFrame(
        checklists[["species_observed"]],
        geometry=gpd.points_from_xy(checklists["longitude"], checklists["latitude"]),
        crs="EPSG:4326",
    ).to_crs(crs)

    fig, ax = plt.subplots(figsize=(8, 8))
    if boundaries:
        _draw_boundaries(ax, boundaries)
    minx, miny, maxx, maxy = points.total_bounds
    points[~points["species_observed"]].plot(ax=ax, color="#555555", markersize=1, zorder=1,
                                             label="Not detected")
    points[points["species_observed"]].plot(ax=ax, color="tab:green", markersize=2, zorder=2,
                                            label="Detected")
    ax.set_xlim(minx, maxx)
    ax.set_ylim(miny, maxy)
    ax.set_axis_off()
    ax.legend(loc="lower left")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved {path}")
    return path


def plot_encounter_map(
    surface: EncounterSurface,
    path: Path,
    boundaries: Optional[dict[str, gpd.GeoDataFrame]] = None,
) -> Path:
    """Calibrated encounter rate raster within the display window."""
    left, bottom, right, top = surface.bounds
    height, width = surface.rates.shape
    x0, y0 = surface.transform * (0, 0)
    x1, y1 = surface.transform * (width, height)

    finite = np.isfinite(surface.rates)
    vmax = float(np.nanmax(surface.rates)) if finite.any() else 1.0

    fig, ax = plt.subplots(figsize=(8, 8))
    if boundaries:
        _draw_boundaries(ax, boundaries)
    image = ax.imshow(
        np.ma.masked_invalid(surface.rates),
        extent=(x0, x1, y1, y0),
        cmap="viridis",
        vmin=0,
        vmax=max(vmax, 1e-6),
        zorder=1,
    )
    ax.set_xlim(left, right)
    ax.set_ylim(bottom, top)
    ax.set_axis_off()
    ax.set_title(f"{surface.species_name} encounter rate")
    fig.colorbar(image, ax=ax, shrink=0.6, label="Encounter rate")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved {path}")
    return path
