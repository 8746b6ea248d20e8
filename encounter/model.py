"""
Encounter rate classifiers: random forest and boosted regression trees.
"""

import logging
from pathlib import Path
from typing import Literal, Optional

import joblib
import numpy as np
import pandas as pd
import xgboost as xgb
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import (
    GridSearchCV,
    StratifiedKFold,
    cross_val_predict,
    cross_val_score,
)

from . import config

logger = logging.getLogger(__name__)

ModelType = Literal["rf", "brt"]

LABEL = "species_observed"

# Effort and timing predictors shared by checklists and the prediction surface
EFFORT_FEATURES = [
    "year",
    "day_of_year",
    "hours_of_day",
    "protocol_traveling",
    "duration_minutes",
    "effort_distance_km",
    "number_observers",
]


def feature_columns(covariate_cols: list[str]) -> list[str]:
    """Model predictors: effort/timing variables followed by covariates."""
    return EFFORT_FEATURES + [c for c in covariate_cols if c not in EFFORT_FEATURES]


def _random_forest(detection_frequency: float, params: dict, random_state: int):
    # Each tree sees a bootstrap sample balanced between the two classes,
    # sized at twice the detection frequency.
    return RandomForestClassifier(
        **params,
        class_weight="balanced_subsample",
        bootstrap=True,
        max_samples=min(1.0, 2 * detection_frequency),
        n_jobs=-1,
        random_state=random_state,
    )


def _boosted_trees(n_rounds: int, params: dict, random_state: int):
    return xgb.XGBClassifier(
        **params,
        n_estimators=n_rounds,
        objective="binary:logistic",
        eval_metric="auc",
        n_jobs=-1,
        random_state=random_state,
    )


class EncounterClassifier:
    """
    Classifier predicting whether a checklist detects the species.
    """

    MODELS = ("rf", "brt")

    def __init__(self, model_type: ModelType = "rf", params: Optional[dict] = None):
        """
        Initialize the classifier.

        Args:
            model_type: "rf" (random forest) or "brt" (boosted regression trees)
            params: Hyperparameters overriding the configured defaults
        """
        if model_type not in self.MODELS:
            raise ValueError(f"Unknown model type: {model_type}. Choose from {list(self.MODELS)}")

        defaults = config.RF_PARAMS if model_type == "rf" else config.BRT_PARAMS
        self.model_type = model_type
        self.params = {**defaults, **(params or {})}
        self.model = None
        self.features: list[str] = []
        self.is_trained = False
        self.train_stats = {}
        self._random_state = config.SEED

    def train(
        self,
        df: pd.DataFrame,
        features: list[str],
        cv_folds: int = config.CV_FOLDS,
        random_state: int = config.SEED,
    ) -> dict:
        """
        Fit the classifier on training checklists.

        For boosted trees the number of rounds is chosen by cross-validated
        AUC with early stopping; the random forest is cross-validated on AUC
        for reporting only.

        Args:
            df: Training checklists with features and ``species_observed``
            features: Predictor column names
            cv_folds: Number of cross-validation folds
            random_state: Random seed

        Returns:
            Dictionary with training statistics
        """
        X = df[features]
        y = df[LABEL].astype(int).to_numpy()

        detection_frequency = float(y.mean())
        if detection_frequency in (0.0, 1.0):
            raise ValueError("Training data needs both detections and non-detections")

        self.features = list(features)
        stats = {
            "model_type": self.model_type,
            "n_train": len(X),
            "n_detections": int(y.sum()),
            "detection_frequency": detection_frequency,
        }

        if self.model_type == "rf":
            self.model = _random_forest(detection_frequency, self.params, random_state)
            cv_scores = cross_val_score(self.model, X, y, cv=cv_folds, scoring="roc_auc")
            stats["cv_auc_mean"] = float(cv_scores.mean())
            stats["cv_auc_std"] = float(cv_scores.std())
        else:
            dtrain = xgb.DMatrix(X, label=y)
            history = xgb.cv(
                {**self.params, "objective": "binary:logistic", "eval_metric": "auc"},
                dtrain,
                num_boost_round=config.BRT_MAX_ROUNDS,
                nfold=cv_folds,
                stratified=True,
                early_stopping_rounds=config.EARLY_STOPPING_ROUNDS,
                seed=random_state,
            )
            n_rounds = len(history)
            self.model = _boosted_trees(n_rounds, self.params, random_state)
            stats["n_rounds"] = n_rounds
            stats["cv_auc_mean"] = float(history["test-auc-mean"].iloc[-1])
            stats["cv_auc_std"] = float(history["test-auc-std"].iloc[-1])

        self.model.fit(X, y)
        self.is_trained = True
        self._random_state = random_state
        self.train_stats = stats

        logger.info(f"  {self.model_type}: CV AUC {stats['cv_auc_mean']:.3f} "
                    f"(+/- {stats['cv_auc_std'] * 2:.3f})")
        return stats

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        """
        Raw encounter scores.

        Args:
            df: Rows containing the training features

        Returns:
            Array of scores in [0, 1]
        """
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")
        return self.model.predict_proba(df[self.features])[:, 1]

    def oof_scores(self, df: pd.DataFrame, cv_folds: int = config.CV_FOLDS) -> np.ndarray:
        """
        Out-of-fold scores for the training rows.

        Each row is scored by a copy of the model that did not see it, which
        makes these scores suitable for fitting a calibration curve.
        """
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")

        folds = StratifiedKFold(n_splits=cv_folds, shuffle=True, random_state=self._random_state)
        proba = cross_val_predict(
            self.model,
            df[self.features],
            df[LABEL].astype(int).to_numpy(),
            cv=folds,
            method="predict_proba",
        )
        return proba[:, 1]

    def save(self, path: str | Path) -> None:
        """Save the trained model to disk."""
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")

        save_data = {
            "model": self.model,
            "model_type": self.model_type,
            "params": self.params,
            "features": self.features,
            "train_stats": self.train_stats,
            "random_state": self._random_state,
        }
        joblib.dump(save_data, path)

    @classmethod
    def load(cls, path: str | Path) -> "EncounterClassifier":
        """Load a trained model from disk."""
        data = joblib.load(path)

        classifier = cls(model_type=data["model_type"], params=data["params"])
        classifier.model = data["model"]
        classifier.features = data["features"]
        classifier.train_stats = data["train_stats"]
        classifier._random_state = data["random_state"]
        classifier.is_trained = True

        return classifier


def compare_models(
    df: pd.DataFrame,
    features: list[str],
    model_types: Optional[list[ModelType]] = None,
    random_state: int = config.SEED,
) -> dict[str, dict]:
    """
    Train several classifier types on the same checklists.

    Returns:
        Dictionary mapping model type to classifier and training stats
    """
    if model_types is None:
        model_types = list(EncounterClassifier.MODELS)

    results = {}
    for model_type in model_types:
        logger.info(f"Training {model_type}...")
        clf = EncounterClassifier(model_type=model_type)
        stats = clf.train(df, features, random_state=random_state)
        results[model_type] = {
            "classifier": clf,
            "stats": stats,
        }

    return results


def tune_brt(
    df: pd.DataFrame,
    features: list[str],
    grid: Optional[dict] = None,
    n_rounds: int = 500,
    cv_folds: int = config.CV_FOLDS,
    random_state: int = config.SEED,
) -> dict:
    """
    Grid search over boosted tree hyperparameters, scored by CV AUC.

    Returns:
        Dictionary with ``best_params`` and ``best_auc``
    """
    grid = grid or config.BRT_TUNING_GRID
    base = _boosted_trees(n_rounds, config.BRT_PARAMS, random_state)

    search = GridSearchCV(base, grid, scoring="roc_auc", cv=cv_folds)
    search.fit(df[features], df[LABEL].astype(int).to_numpy())

    logger.info(f"  Best BRT parameters: {search.best_params_} (AUC {search.best_score_:.3f})")
    return {"best_params": search.best_params_, "best_auc": float(search.best_score_)}


def peak_detection_hour(
    classifier: EncounterClassifier,
    df: pd.DataFrame,
    step: float = 0.5,
    n_sample: int = 1000,
    seed: int = config.SEED,
) -> float:
    """
    Time of day with the highest mean predicted encounter rate.

    Sweeps ``hours_of_day`` over the range covered by most checklists
    (1st to 99th percentile) on a sample of rows, holding all other
    predictors at their observed values.
    """
    sample = df.sample(n=min(n_sample, len(df)), random_state=seed)
    lo, hi = df["hours_of_day"].quantile([0.01, 0.99])
    hours = np.arange(np.floor(lo / step) * step, hi + step / 2, step)
    hours = hours[(hours >= lo) & (hours <= hi)]
    if len(hours) == 0:
        hours = np.array([float(df["hours_of_day"].median())])

    rates = []
    for hour in hours:
        X = sample.copy()
        X["hours_of_day"] = hour
        rates.append(classifier.predict_proba(X).mean())

    peak = float(hours[int(np.argmax(rates))])
    logger.info(f"  Peak detection time: {peak:.1f} h")
    return peak
