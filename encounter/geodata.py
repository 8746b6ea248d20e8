"""
Boundary data for mapping: Natural Earth layers and the state outline.
"""

import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
import requests

from . import config

logger = logging.getLogger(__name__)

NATURAL_EARTH_URL = "https://naciscdn.org/naturalearth/50m/cultural/ne_50m_{name}.zip"

LAYERS = ("ne_land", "ne_country_lines", "ne_state_lines")
REGION_LAYER = "MN"


def download_natural_earth(name: str, cache_dir: Path) -> gpd.GeoDataFrame:
    """
    Fetch a 1:50m Natural Earth cultural layer.

    The zip archive is kept in ``cache_dir`` and only downloaded once.

    Args:
        name: Layer name, e.g. "admin_0_countries_lakes"
        cache_dir: Directory for downloaded archives

    Returns:
        The layer as a GeoDataFrame
    """
    cache_dir = Path(cache_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    zip_path = cache_dir / f"ne_50m_{name}.zip"

    if not zip_path.exists():
        url = NATURAL_EARTH_URL.format(name=name)
        logger.info(f"Downloading {url}")
        response = requests.get(url, timeout=120)
        response.raise_for_status()
        zip_path.write_bytes(response.content)

    return gpd.read_file(f"zip://{zip_path}")


def land_polygon(countries: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """North American land as a single polygon, lakes removed."""
    north_america = countries[countries["CONTINENT"] == "North America"]
    land = north_america.union_all(grid_size=1e-6)
    return gpd.GeoDataFrame(geometry=[land], crs=countries.crs)


def country_lines(lines: gpd.GeoDataFrame, land: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Country boundary lines that touch the land polygon."""
    mask = lines.intersects(land.geometry.iloc[0])
    return gpd.GeoDataFrame(geometry=lines.geometry[mask].reset_index(drop=True), crs=lines.crs)


def state_lines(states: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """State and province lines for the US and Canada."""
    states = states[states["adm0_a3"].isin(["USA", "CAN"])].copy()
    states["country_code"] = states["adm0_a3"].map({"USA": "US", "CAN": "CAN"})
    states = states.rename(columns={"adm0_name": "country"})
    return states[["country", "country_code", "geometry"]].reset_index(drop=True)


def build_gis_data(
    out_path: str | Path,
    cache_dir: str | Path,
    region_shapefile: Optional[str | Path] = None,
) -> Path:
    """
    Write the mapping layers to a single geopackage.

    Any existing geopackage is replaced.

    Args:
        out_path: Geopackage to write
        cache_dir: Directory for Natural Earth downloads
        region_shapefile: Optional state subdivision shapefile, stored
            in the MODIS sinusoidal projection as the region layer

    Returns:
        Path of the geopackage
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    land = land_polygon(download_natural_earth("admin_0_countries_lakes", cache_dir))
    lines = country_lines(download_natural_earth("admin_0_boundary_lines_land", cache_dir), land)
    states = state_lines(download_natural_earth("admin_1_states_provinces_lines", cache_dir))

    out_path.unlink(missing_ok=True)
    land.to_file(out_path, layer="ne_land", driver="GPKG")
    lines.to_file(out_path, layer="ne_country_lines", driver="GPKG")
    states.to_file(out_path, layer="ne_state_lines", driver="GPKG")

    if region_shapefile is not None:
        region = gpd.read_file(region_shapefile).to_crs(config.SINUSOIDAL_CRS)
        region.to_file(out_path, layer=REGION_LAYER, driver="GPKG")

    logger.info(f"Saved GIS layers to {out_path}")
    return out_path


def load_boundaries(gpkg: str | Path, crs) -> dict[str, gpd.GeoDataFrame]:
    """Read the mapping layers present in ``gpkg``, reprojected to ``crs``."""
    available = set(gpd.list_layers(gpkg)["name"])
    return {
        layer: gpd.read_file(gpkg, layer=layer).to_crs(crs)
        for layer in (*LAYERS, REGION_LAYER)
        if layer in available
    }
