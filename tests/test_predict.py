"""
Tests for prediction surface rasterization, reprojection and cropping.
"""

import json

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from encounter import config
from encounter.calibration import Calibrator
from encounter.covariates import standardize_effort
from encounter.model import EncounterClassifier, feature_columns
from encounter.predict import (
    build_surface,
    crop_to_window,
    display_window,
    predict_surface,
    rasterize,
    read_template,
    reproject_raster,
)

from conftest import HEIGHT, WIDTH


@pytest.fixture
def fitted(checklists, covariate_names, monkeypatch):
    monkeypatch.setattr(config, "RF_PARAMS", {**config.RF_PARAMS, "n_estimators": 30})
    clf = EncounterClassifier()
    clf.train(checklists, feature_columns(covariate_names))
    calibrator = Calibrator().fit(clf.oof_scores(checklists), checklists["species_observed"])
    return clf, calibrator


@pytest.fixture
def standard_surface(surface):
    return standardize_effort(surface, year=2019, hours_of_day=7.0)


def test_rasterize():
    grid = rasterize(np.array([0, 5]), np.array([0.2, 0.7]), (2, 3))
    assert grid.shape == (2, 3)
    assert grid[0, 0] == pytest.approx(0.2)
    assert grid[1, 2] == pytest.approx(0.7)
    assert np.isnan(grid).sum() == 4


def test_rasterize_out_of_range():
    with pytest.raises(ValueError, match="outside"):
        rasterize(np.array([6]), np.array([0.1]), (2, 3))


def test_display_window():
    left, bottom, right, top = display_window()
    assert (left + right) / 2 == pytest.approx(0, abs=1e-6)
    assert (bottom + top) / 2 == pytest.approx(0, abs=1e-6)
    assert right - left == pytest.approx(2 * config.MAP_HALF_WIDTH_M)
    assert top - bottom == pytest.approx(2 * config.MAP_HALF_HEIGHT_M)


def test_crop_to_window():
    array = np.arange(100, dtype=np.float32).reshape(10, 10)
    transform = from_origin(0, 10, 1, 1)
    cropped, new_transform = crop_to_window(array, transform, (2, 3, 5, 8))

    assert cropped.shape == (5, 3)
    assert cropped[0, 0] == array[2, 2]
    assert new_transform * (0, 0) == pytest.approx((2, 8))


def test_crop_clips_to_raster():
    array = np.ones((10, 10), dtype=np.float32)
    transform = from_origin(0, 10, 1, 1)
    cropped, _ = crop_to_window(array, transform, (-5, -5, 5, 5))
    assert cropped.shape == (5, 5)


def test_reproject_raster(template_path):
    template = read_template(template_path)
    grid = np.full(template["shape"], 0.5, dtype=np.float32)
    projected, transform = reproject_raster(grid, template["transform"], template["crs"],
                                            "+proj=laea +lat_0=46.3 +lon_0=-94.3 +datum=WGS84 +units=m")

    assert transform.a == pytest.approx(config.MAP_RESOLUTION_M)
    finite = projected[np.isfinite(projected)]
    assert finite.size > 0
    assert np.allclose(finite, 0.5)
    # Corners of the projected raster fall outside the lon/lat grid
    assert np.isnan(projected).any()


def test_predict_surface(fitted, standard_surface):
    clf, calibrator = fitted
    predictions = predict_surface(clf, calibrator, standard_surface, batch_size=100)

    assert len(predictions) == len(standard_surface)
    assert predictions["cell_id"].tolist() == standard_surface["cell_id"].tolist()
    assert predictions["encounter_rate"].between(0, 1).all()
    np.testing.assert_allclose(predictions["raw"], clf.predict_proba(standard_surface))


def test_build_surface(fitted, standard_surface, template_path, tmp_path):
    clf, calibrator = fitted
    encounter = build_surface(clf, calibrator, standard_surface, template_path)

    finite = encounter.rates[np.isfinite(encounter.rates)]
    assert finite.size > 0
    assert ((finite >= 0) & (finite <= 1)).all()
    assert encounter.rates.shape[0] <= 2 * config.MAP_HALF_HEIGHT_M / config.MAP_RESOLUTION_M + 1
    assert encounter.rates.shape[1] <= 2 * config.MAP_HALF_WIDTH_M / config.MAP_RESOLUTION_M + 1

    paths = encounter.save(tmp_path / "out")
    with rasterio.open(paths["raster"]) as src:
        assert src.crs is not None
        assert (src.height, src.width) == encounter.rates.shape

    summary = json.loads(paths["summary"].read_text())
    assert summary["species"] == config.SPECIES_NAME
    assert summary["n_cells"] == finite.size
    assert 0 <= summary["mean_rate"] <= 1


def test_template_shape(template_path):
    assert read_template(template_path)["shape"] == (HEIGHT, WIDTH)
