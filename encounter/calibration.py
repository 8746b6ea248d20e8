"""
Calibration of raw classifier scores and model evaluation.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from pygam import LogisticGAM, s
from sklearn.metrics import (
    cohen_kappa_score,
    confusion_matrix,
    mean_squared_error,
    roc_auc_score,
)

logger = logging.getLogger(__name__)

THRESHOLDS = np.round(np.arange(0.01, 1.0, 0.01), 2)


class Calibrator:
    """
    Monotone map from raw classifier score to observed encounter rate.

    Random forests trained on balanced samples overestimate the encounter
    rate; the calibration curve maps their scores back onto the observed
    detection frequency while preserving the ranking of scores.

    The curve is a binomial GAM with a single smooth term on the raw score,
    constrained to be non-decreasing. The smoothing penalty is chosen by
    grid search.
    """

    def __init__(self, n_splines: int = 10):
        self.n_splines = n_splines
        self._model: Optional[LogisticGAM] = None
        self._score_range = (0.0, 1.0)

    def fit(self, scores: np.ndarray, observed: np.ndarray) -> "Calibrator":
        """
        Fit the calibration curve.

        Args:
            scores: Raw scores the model gave to rows it was not fit on
            observed: Detection labels for the same rows
        """
        scores = np.asarray(scores, dtype=float)
        observed = np.asarray(observed).astype(int)
        if len(np.unique(observed)) < 2:
            raise ValueError("Calibration needs both detections and non-detections")
        if np.ptp(scores) == 0:
            raise ValueError("Calibration needs more than one distinct score")

        gam = LogisticGAM(s(0, n_splines=self.n_splines, constraints="monotonic_inc"))
        self._model = gam.gridsearch(scores.reshape(-1, 1), observed, progress=False)
        self._score_range = (float(scores.min()), float(scores.max()))
        logger.info(f"  Calibration GAM: lambda {np.ravel(self._model.lam)[0]:.3g}, "
                    f"edf {self._model.statistics_['edof']:.1f}")
        return self

    def predict(self, scores: np.ndarray) -> np.ndarray:
        """
        Calibrated encounter rates for raw scores.

        Scores outside the range seen in fit() take the rate at the nearest end.
        """
        if self._model is None:
            raise RuntimeError("Calibrator has not been fit yet")
        scores = np.clip(np.asarray(scores, dtype=float), *self._score_range)
        return self._model.predict_proba(scores.reshape(-1, 1))

    def curve(self, n: int = 101) -> pd.DataFrame:
        """The calibration curve sampled on an even grid over [0, 1]."""
        grid = np.linspace(0, 1, n)
        return pd.DataFrame({"raw": grid, "calibrated": self.predict(grid)})


def kappa_threshold(observed: np.ndarray, scores: np.ndarray) -> float:
    """Threshold in (0, 1) maximizing Cohen's kappa of the binarized scores."""
    observed = np.asarray(observed).astype(int)
    kappas = [cohen_kappa_score(observed, (scores >= t).astype(int)) for t in THRESHOLDS]
    return float(THRESHOLDS[int(np.nanargmax(kappas))])


def evaluate(observed: np.ndarray, scores: np.ndarray) -> dict:
    """
    Discrimination and calibration metrics for one set of scores.

    Binary metrics use the kappa-maximizing threshold.

    Returns:
        Dictionary with mse, auc, threshold, sensitivity, specificity, kappa
    """
    observed = np.asarray(observed).astype(int)
    scores = np.asarray(scores, dtype=float)

    threshold = kappa_threshold(observed, scores)
    predicted = (scores >= threshold).astype(int)
    tn, fp, fn, tp = confusion_matrix(observed, predicted, labels=[0, 1]).ravel()

    return {
        "mse": float(mean_squared_error(observed, scores)),
        "auc": float(roc_auc_score(observed, scores)),
        "threshold": threshold,
        "sensitivity": float(tp / (tp + fn)) if tp + fn else float("nan"),
        "specificity": float(tn / (tn + fp)) if tn + fp else float("nan"),
        "kappa": float(cohen_kappa_score(observed, predicted)),
    }


def evaluate_model(
    observed: np.ndarray,
    raw: np.ndarray,
    calibrated: np.ndarray,
) -> pd.DataFrame:
    """Metrics for raw and calibrated test-set scores, one row each."""
    rows = []
    for name, scores in [("raw", raw), ("calibrated", calibrated)]:
        metrics = evaluate(observed, scores)
        logger.info(f"  {name:>10}: " + ", ".join(f"{k}={v:.3f}" for k, v in metrics.items()))
        rows.append({"scores": name, **metrics})
    return pd.DataFrame(rows)


def binned_rates(observed: np.ndarray, scores: np.ndarray, n_bins: int = 10) -> pd.DataFrame:
    """Observed detection frequency within equal-width score bins."""
    df = pd.DataFrame({"score": scores, "observed": np.asarray(observed).astype(float)})
    df["bin"] = pd.cut(df["score"], np.linspace(0, 1, n_bins + 1), include_lowest=True)
    out = df.groupby("bin", observed=True).agg(
        score=("score", "mean"),
        observed=("observed", "mean"),
        n=("observed", "size"),
    )
    return out.reset_index(drop=True)
