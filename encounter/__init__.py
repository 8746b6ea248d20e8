"""
eBird Encounter Rate Modeling

Filter and zero-fill eBird checklists for a single species, join land cover
covariates, train a calibrated encounter rate classifier, and map its
predictions.
"""

from .ebd import read_ebd, collapse_group_checklists, zero_fill, clean_checklists, filter_checklists
from .covariates import load_covariates, join_covariates, load_prediction_surface, standardize_effort
from .sampling import hex_cells, grid_sample, train_test_split_checklists
from .model import EncounterClassifier, compare_models, tune_brt, peak_detection_hour
from .calibration import Calibrator, evaluate, evaluate_model
from .predict import EncounterSurface, build_surface

__all__ = [
    'read_ebd',
    'collapse_group_checklists',
    'zero_fill',
    'clean_checklists',
    'filter_checklists',
    'load_covariates',
    'join_covariates',
    'load_prediction_surface',
    'standardize_effort',
    'hex_cells',
    'grid_sample',
    'train_test_split_checklists',
    'EncounterClassifier',
    'compare_models',
    'tune_brt',
    'peak_detection_hour',
    'Calibrator',
    'evaluate',
    'evaluate_model',
    'EncounterSurface',
    'build_surface',
]
