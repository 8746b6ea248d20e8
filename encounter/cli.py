"""
Command-line interface for the encounter rate pipeline.
"""

import argparse
import json
import logging
from pathlib import Path

from . import config
from .calibration import Calibrator, evaluate_model
from .covariates import (
    covariate_columns,
    join_covariates,
    load_covariates,
    load_prediction_surface,
    standardize_effort,
)
from .ebd import filter_checklists
from .geodata import build_gis_data, load_boundaries
from .model import LABEL, EncounterClassifier, feature_columns, peak_detection_hour, tune_brt
from .plots import (
    plot_calibration,
    plot_checklist_map,
    plot_diel,
    plot_encounter_map,
    plot_temporal,
)
from .predict import build_surface, display_crs
from .sampling import grid_sample, train_test_split_checklists

logger = logging.getLogger(__name__)


def run_pipeline(
    data_dir: Path = config.DATA_DIR,
    output_dir: Path = config.OUTPUT_DIR,
    model_type: str = "rf",
    seed: int = config.SEED,
    force: bool = False,
    use_grid_sample: bool = False,
    tune: bool = False,
) -> dict:
    """
    Complete pipeline: filter checklists, fit and calibrate the model,
    and map the encounter rate.

    Args:
        data_dir: Directory holding the extracts, covariates and GIS data
        output_dir: Directory to save outputs
        model_type: Type of classifier to train
        seed: Random seed
        force: Recompute the filtered checklists even if cached
        use_grid_sample: Train on the spatially undersampled checklists
        tune: Grid search boosted tree hyperparameters before training

    Returns:
        Dictionary with results and statistics
    """
    data_dir = Path(data_dir)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results = {"species": config.SPECIES_NAME, "region": config.REGION_CODE}

    logger.info("=" * 60)
    logger.info(f"Species: {config.SPECIES_NAME} ({config.REGION_CODE})")
    logger.info("=" * 60)

    # Step 1: Filter and zero-fill
    logger.info("[1/6] Filtering checklists...")
    checklists = filter_checklists(
        data_dir / config.EBD_FILE,
        data_dir / config.SED_FILE,
        data_dir / config.CHECKLISTS_FILE,
        force=force,
    )
    results["n_checklists"] = len(checklists)
    results["detection_frequency"] = float(checklists[LABEL].mean())

    plot_temporal(checklists, output_dir / "detection-by-week.png", config.SPECIES_NAME)
    plot_diel(checklists, output_dir / "detection-by-hour.png", config.SPECIES_NAME)

    gis_path = data_dir / config.GIS_FILE
    boundaries = load_boundaries(gis_path, display_crs()) if gis_path.exists() else None
    if boundaries is None:
        logger.warning(f"  {gis_path} not found, maps will have no boundaries")
    plot_checklist_map(checklists, output_dir / "checklists.png", boundaries)

    # Step 2: Covariates
    logger.info("[2/6] Joining covariates...")
    covariates = load_covariates(data_dir / config.COVARIATES_FILE)
    checklists = join_covariates(checklists, covariates)
    features = feature_columns(covariate_columns(covariates))
    results["n_with_covariates"] = len(checklists)

    # Step 3: Spatial undersampling and split
    logger.info("[3/6] Sampling and splitting...")
    sampled = grid_sample(checklists, seed=seed)
    results["n_grid_sampled"] = len(sampled)
    results["used_grid_sample"] = use_grid_sample

    train, test = train_test_split_checklists(sampled if use_grid_sample else checklists, seed=seed)
    results["n_train"] = len(train)
    results["n_test"] = len(test)

    # Step 4: Train classifier
    logger.info(f"[4/6] Training {model_type} classifier...")
    params = None
    if tune:
        if model_type != "brt":
            raise ValueError("Hyperparameter tuning is only available for brt")
        tuning = tune_brt(train, features, random_state=seed)
        params = tuning["best_params"]
        results["tuning"] = tuning

    classifier = EncounterClassifier(model_type=model_type, params=params)
    results["training"] = classifier.train(train, features, random_state=seed)

    model_path = output_dir / f"encounter_{model_type}_model.joblib"
    classifier.save(model_path)
    logger.info(f"Saved model to {model_path}")

    # Step 5: Calibrate and evaluate
    logger.info("[5/6] Calibrating and evaluating...")
    calibrator = Calibrator().fit(classifier.oof_scores(train), train[LABEL])

    raw = classifier.predict_proba(test)
    calibrated = calibrator.predict(raw)
    evaluation = evaluate_model(test[LABEL], raw, calibrated)
    evaluation.to_csv(output_dir / "evaluation.csv", index=False)
    results["evaluation"] = evaluation.to_dict(orient="records")

    plot_calibration(test[LABEL], raw, calibrator, output_dir / "calibration.png")

    # Step 6: Prediction surface
    logger.info("[6/6] Predicting encounter rate surface...")
    peak_hour = peak_detection_hour(classifier, train, seed=seed)
    results["peak_hour"] = peak_hour

    surface = load_prediction_surface(data_dir / config.SURFACE_FILE)
    surface = standardize_effort(surface, year=int(checklists["year"].max()), hours_of_day=peak_hour)
    encounter = build_surface(classifier, calibrator, surface, data_dir / config.TEMPLATE_RASTER)
    encounter.save(output_dir)
    plot_encounter_map(encounter, output_dir / "encounter-rate.png", boundaries)
    results["surface"] = encounter.summary()

    results_path = output_dir / "results.json"
    with open(results_path, "w") as f:
        json.dump(results, f, indent=2, default=str)
    logger.info(f"Saved results summary to {results_path}")

    return results


def main():
    parser = argparse.ArgumentParser(description="Model and map the eBird encounter rate of a species")
    parser.add_argument("--data-dir", "-d", default=str(config.DATA_DIR), help="Input data directory")
    parser.add_argument("--output-dir", "-o", default=str(config.OUTPUT_DIR), help="Output directory")
    parser.add_argument("--model", "-m", default="rf", choices=list(EncounterClassifier.MODELS),
                        help="Classifier type")
    parser.add_argument("--seed", "-s", type=int, default=config.SEED, help="Random seed")
    parser.add_argument("--force", action="store_true", help="Recompute cached checklists")
    parser.add_argument("--grid-sample", action="store_true",
                        help="Train on spatially undersampled checklists")
    parser.add_argument("--tune", action="store_true", help="Tune boosted tree hyperparameters")
    parser.add_argument("--build-gis", action="store_true",
                        help="Download boundary layers into the GIS geopackage first")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    data_dir = Path(args.data_dir)
    if args.build_gis:
        shapefile = data_dir / config.REGION_SHAPEFILE
        build_gis_data(
            data_dir / config.GIS_FILE,
            cache_dir=data_dir / "natural-earth",
            region_shapefile=shapefile if shapefile.exists() else None,
        )

    run_pipeline(
        data_dir=data_dir,
        output_dir=Path(args.output_dir),
        model_type=args.model,
        seed=args.seed,
        force=args.force,
        use_grid_sample=args.grid_sample,
        tune=args.tune,
    )


if __name__ == "__main__":
    main()
