"""
Encounter rate prediction over the prediction surface.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
import rasterio
from pyproj import Transformer
from rasterio.warp import Resampling, calculate_default_transform, reproject
from rasterio.windows import Window, from_bounds
from rasterio.windows import transform as window_transform
from tqdm import tqdm

from . import config
from .calibration import Calibrator
from .model import EncounterClassifier
from .sampling import equal_area_crs

logger = logging.getLogger(__name__)


@dataclass
class EncounterSurface:
    """Container for a rendered encounter rate raster."""

    species_name: str
    model_type: str
    rates: np.ndarray  # (H, W) calibrated encounter rate, NaN outside the grid
    transform: rasterio.transform.Affine
    crs: str
    bounds: tuple[float, float, float, float]

    def summary(self) -> dict:
        valid = self.rates[np.isfinite(self.rates)]
        return {
            "species": self.species_name,
            "model_type": self.model_type,
            "crs": self.crs,
            "bounds": list(self.bounds),
            "shape": list(self.rates.shape),
            "n_cells": int(valid.size),
            "mean_rate": float(valid.mean()) if valid.size else None,
            "max_rate": float(valid.max()) if valid.size else None,
        }

    def save(self, output_dir: Path) -> dict[str, Path]:
        """Save the raster as GeoTIFF and a JSON summary."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {}

        tiff_path = output_dir / "encounter-rate.tif"
        with rasterio.open(
            tiff_path, "w",
            driver="GTiff",
            height=self.rates.shape[0],
            width=self.rates.shape[1],
            count=1,
            dtype=np.float32,
            crs=self.crs,
            transform=self.transform,
            nodata=np.nan,
        ) as dst:
            dst.write(self.rates.astype(np.float32), 1)
        paths["raster"] = tiff_path
        logger.info(f"Saved encounter rate raster: {tiff_path}")

        summary_path = output_dir / "encounter-rate.json"
        with open(summary_path, "w") as f:
            json.dump(self.summary(), f, indent=2)
        paths["summary"] = summary_path

        return paths


def predict_surface(
    classifier: EncounterClassifier,
    calibrator: Calibrator,
    surface: pd.DataFrame,
    batch_size: int = 15000,
) -> pd.DataFrame:
    """
    Predict raw and calibrated encounter rates for every grid cell.

    Returns:
        DataFrame with cell_id, x, y, raw and encounter_rate
    """
    n_cells = len(surface)
    raw = np.zeros(n_cells, dtype=np.float64)

    for i in tqdm(range(0, n_cells, batch_size), desc="Predicting"):
        end = min(i + batch_size, n_cells)
        raw[i:end] = classifier.predict_proba(surface.iloc[i:end])

    out = surface[["cell_id", "x", "y"]].copy()
    out["raw"] = raw
    out["encounter_rate"] = calibrator.predict(raw)
    return out


def read_template(path: str | Path) -> dict:
    """Grid definition (shape, transform, crs) of the template raster."""
    with rasterio.open(path) as src:
        return {"shape": (src.height, src.width), "transform": src.transform, "crs": src.crs}


def rasterize(cell_ids: np.ndarray, values: np.ndarray, shape: tuple[int, int]) -> np.ndarray:
    """
    Place per-cell values into a raster.

    Args:
        cell_ids: Row-major flat indices into the raster
        values: Value for each cell
        shape: (height, width) of the raster

    Returns:
        float32 array, NaN where no cell was given
    """
    cell_ids = np.asarray(cell_ids, dtype=np.int64)
    if cell_ids.size and (cell_ids.min() < 0 or cell_ids.max() >= shape[0] * shape[1]):
        raise ValueError("Cell ids fall outside the template raster")

    grid = np.full(shape[0] * shape[1], np.nan, dtype=np.float32)
    grid[cell_ids] = values
    return grid.reshape(shape)


def display_crs(center: tuple[float, float] = config.MAP_CENTER) -> str:
    return equal_area_crs(center)


def display_window(
    center: tuple[float, float] = config.MAP_CENTER,
    half_width: float = config.MAP_HALF_WIDTH_M,
    half_height: float = config.MAP_HALF_HEIGHT_M,
) -> tuple[float, float, float, float]:
    """Bounds (left, bottom, right, top) of the map around its center, in metres."""
    lat, lon = center
    transformer = Transformer.from_crs("EPSG:4326", display_crs(center), always_xy=True)
    x, y = transformer.transform(lon, lat)
    return (x - half_width, y - half_height, x + half_width, y + half_height)


def reproject_raster(
    array: np.ndarray,
    transform: rasterio.transform.Affine,
    src_crs,
    dst_crs: str,
    resolution: float = config.MAP_RESOLUTION_M,
) -> tuple[np.ndarray, rasterio.transform.Affine]:
    """Reproject a single band raster, keeping NaN as nodata."""
    height, width = array.shape
    left, top = transform * (0, 0)
    right, bottom = transform * (width, height)
    dst_transform, dst_width, dst_height = calculate_default_transform(
        src_crs, dst_crs, width, height,
        left=left, bottom=bottom, right=right, top=top,
        resolution=resolution,
    )

    destination = np.full((dst_height, dst_width), np.nan, dtype=np.float32)
    reproject(
        array.astype(np.float32), destination,
        src_transform=transform, src_crs=src_crs,
        dst_transform=dst_transform, dst_crs=dst_crs,
        src_nodata=np.nan, dst_nodata=np.nan,
        resampling=Resampling.nearest,
    )
    return destination, dst_transform


def crop_to_window(
    array: np.ndarray,
    transform: rasterio.transform.Affine,
    bounds: tuple[float, float, float, float],
) -> tuple[np.ndarray, rasterio.transform.Affine]:
    """
    Crop a raster to bounds given in its own CRS.

    Raises:
        rasterio.errors.WindowError: If the raster and bounds do not overlap
    """
    window = from_bounds(*bounds, transform=transform).round_offsets().round_lengths()
    window = window.intersection(Window(0, 0, array.shape[1], array.shape[0]))
    rows, cols = window.toslices()
    return array[rows, cols], window_transform(window, transform)


def build_surface(
    classifier: EncounterClassifier,
    calibrator: Calibrator,
    surface: pd.DataFrame,
    template_path: str | Path,
    center: tuple[float, float] = config.MAP_CENTER,
) -> EncounterSurface:
    """
    Predict the surface and render it in the map display projection.

    Args:
        classifier: Trained classifier
        calibrator: Calibration curve fit for the classifier
        surface: Prediction cells with standardized effort
        template_path: GeoTIFF defining the prediction grid
        center: (lat, lon) of the map

    Returns:
        EncounterSurface cropped to the display window
    """
    template = read_template(template_path)
    predictions = predict_surface(classifier, calibrator, surface)
    grid = rasterize(predictions["cell_id"], predictions["encounter_rate"], template["shape"])

    crs = display_crs(center)
    projected, transform = reproject_raster(grid, template["transform"], template["crs"], crs)
    bounds = display_window(center)
    rates, transform = crop_to_window(projected, transform, bounds)

    logger.info(f"  Encounter rate raster: {rates.shape[0]} x {rates.shape[1]}")
    return EncounterSurface(
        species_name=config.SPECIES_NAME,
        model_type=classifier.model_type,
        rates=rates,
        transform=transform,
        crs=crs,
        bounds=bounds,
    )
