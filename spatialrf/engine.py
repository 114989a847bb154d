"""
Spatial Model Engine
====================
Fits a non-spatial model and, when its residuals are spatially
autocorrelated, augments it with the spatial predictors that best remove
that autocorrelation.

Steps:
1. Non-spatial model and its multi-threshold residual Moran's I
2. Candidate spatial predictors at the positively autocorrelated thresholds
3. Ranking of the candidates (skipped by the "hengl" method)
4. Selection of the best subset (sequential or optimized)
5. Spatial model with the selected predictors and performance comparison
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import geopandas as gpd

from .config import MethodConfig, PipelineConfig, WorkerPoolConfig
from .console import echo, print_header
from .exceptions import MissingInputError, NoEligiblePredictorsError
from .models.evaluation import ModelEvaluator, evaluation_from_fit
from .models.fitters import FitResult, OLSFitter, make_fitter
from .parallel.pool import make_pool
from .selection.optimized import select_spatial_predictors_optimized
from .selection.ranking import RankingResult, rank_spatial_predictors
from .selection.sequential import SelectionResult, select_spatial_predictors_sequential
from .spatial.generators import SpatialPredictorSet, generate_spatial_predictors
from .spatial.moran import MultiThresholdMoran
from .spatial.weights import (
    SpatialWeights,
    default_distance_thresholds,
    distance_matrix_from_coordinates,
    validate_distance_matrix,
)


STATUS_SPATIAL = "spatial"
STATUS_NOT_AUTOCORRELATED = "not_autocorrelated"
STATUS_NO_ELIGIBLE_PREDICTORS = "no_eligible_predictors"


@dataclass(frozen=True, eq=False)
class SpatialModelResult:
    """
    Immutable outcome of ``fit_spatial_model``.

    When ``status`` is not "spatial" the non-spatial model is the final
    model and ``spatial`` / ``spatial_moran`` are None.
    """
    method: MethodConfig
    status: str
    non_spatial: FitResult
    non_spatial_moran: MultiThresholdMoran
    spatial: Optional[FitResult]
    spatial_moran: Optional[MultiThresholdMoran]
    spatial_predictors: SpatialPredictorSet
    ranking: Optional[RankingResult]
    selection: Optional[SelectionResult]
    performance_comparison: pd.DataFrame
    variable_importance: pd.DataFrame

    @property
    def is_spatial(self) -> bool:
        return self.status == STATUS_SPATIAL

    @property
    def model(self) -> FitResult:
        """Final model: the spatial one when it was fitted."""
        return self.spatial if self.spatial is not None else self.non_spatial

    @property
    def spatial_predictor_names(self):
        return self.spatial_predictors.names

    def moran_comparison(self) -> pd.DataFrame:
        """Residual Moran's I per threshold of both models."""
        frames = [self.non_spatial_moran.to_frame().assign(model="Non-spatial")]
        if self.spatial_moran is not None:
            frames.append(self.spatial_moran.to_frame().assign(model="Spatial"))
        df = pd.concat(frames, ignore_index=True)
        return df[["model"] + [c for c in df.columns if c != "model"]]


def performance_row(label: str, fit: FitResult, moran: MultiThresholdMoran,
                    y: np.ndarray) -> dict:
    """Fit statistics of one model."""
    q75, q25 = np.percentile(y, [75, 25])
    iqr = q75 - q25
    rmse = fit.rmse
    return {
        "model": label,
        "r_squared": fit.r_squared,
        "rmse": rmse,
        "nrmse": rmse / iqr if iqr > 0 else np.nan,
        "max_moran": moran.max_moran,
    }


IMPORTANCE_COLUMNS = ["variable", "importance"]


def variable_importance_table(fit: FitResult,
                              spatial_predictor_names: Sequence[str] = ()) -> pd.DataFrame:
    """
    Importance of the predictors of a fitted model.

    Non-spatial predictors keep one row each, while the spatial predictors
    are summarized by the max, min, mean and median of their importances.

    Args:
        fit: Fitted model.
        spatial_predictor_names: Spatial predictors among the fit predictors.

    Returns:
        DataFrame with IMPORTANCE_COLUMNS, most important first; empty when
        the fitter reports no importances
    """
    importances = fit.importances
    if importances is None or len(importances) == 0:
        return pd.DataFrame(columns=IMPORTANCE_COLUMNS)

    is_spatial = importances.index.isin(list(spatial_predictor_names))
    rows = [
        {"variable": name, "importance": float(value)}
        for name, value in importances[~is_spatial].items()
    ]
    spatial = importances[is_spatial]
    if len(spatial) > 0:
        rows.extend([
            {"variable": "spatial_predictors (max)", "importance": spatial.max()},
            {"variable": "spatial_predictors (min)", "importance": spatial.min()},
            {"variable": "spatial_predictors (mean)", "importance": spatial.mean()},
            {"variable": "spatial_predictors (median)", "importance": spatial.median()},
        ])

    df = pd.DataFrame(rows, columns=IMPORTANCE_COLUMNS)
    return df.sort_values("importance", ascending=False, kind="stable",
                          na_position="last").reset_index(drop=True)


def check_inputs(data: pd.DataFrame, dependent_name: str,
                 predictor_names: Sequence[str]):
    """Fail early when a required column is missing."""
    if data is None or len(data) == 0:
        raise MissingInputError("The data table is missing or empty.")
    if not dependent_name:
        raise MissingInputError("The dependent variable name is missing.")
    missing = [c for c in [dependent_name, *predictor_names] if c not in data.columns]
    if missing:
        raise MissingInputError(f"Columns not found in data: {missing}")


def fit_spatial_model(
    data: pd.DataFrame,
    dependent_name: str,
    predictor_names: Sequence[str],
    distance_matrix: Union[np.ndarray, pd.DataFrame],
    distance_thresholds: Optional[Sequence[float]] = None,
    method: Union[str, MethodConfig] = "mem.moran.sequential",
    fitter=None,
    weight_r_squared: Optional[float] = None,
    weight_penalization_n_predictors: Optional[float] = None,
    max_spatial_predictors: Optional[int] = None,
    base_fit: Optional[FitResult] = None,
    pool_config: Optional[WorkerPoolConfig] = None,
    verbose: bool = True
) -> SpatialModelResult:
    """
    Fit a model that accounts for the spatial autocorrelation of its residuals.

    Args:
        data: Observations, one row per distance matrix row.
        dependent_name: Response column.
        predictor_names: Non-spatial predictor columns.
        distance_matrix: Pairwise distances among observations.
        distance_thresholds: Neighborhood thresholds; defaults to 0 and a
            quarter of the maximum distance.
        method: Dotted method name or MethodConfig.
        fitter: Regression collaborator (default: OLSFitter).
        weight_r_squared: Weight of R-squared in selection (None: method default).
        weight_penalization_n_predictors: Weight of the size penalty
            (None: method default).
        max_spatial_predictors: Cap on generated MEM/PCA predictors.
        base_fit: Already fitted non-spatial model to reuse.
        pool_config: Worker pool for ranking and selection fits; None runs
            them in-process.
        verbose: Print progress.

    Returns:
        SpatialModelResult
    """
    method = MethodConfig.parse(method)
    predictor_names = list(predictor_names)
    check_inputs(data, dependent_name, predictor_names)
    d = validate_distance_matrix(distance_matrix, n_rows=len(data))

    if distance_thresholds is None:
        distance_thresholds = default_distance_thresholds(d)
    distance_thresholds = sorted(float(t) for t in distance_thresholds)
    spatial_weights = SpatialWeights.from_distance_matrix(d, distance_thresholds)

    fitter = fitter if fitter is not None else OLSFitter()
    weights = method.resolve_weights(weight_r_squared, weight_penalization_n_predictors)
    y = data[dependent_name].to_numpy(dtype=float)

    print_header(f"Spatial model: {method.name}", level=2, verbose=verbose)
    echo(f"Observations: {len(data)}, predictors: {len(predictor_names)}", verbose)
    echo(f"Distance thresholds: {spatial_weights.distance_thresholds}", verbose)

    # 1. Non-spatial model
    if base_fit is None:
        base_fit = fitter.fit(data, dependent_name, predictor_names)
    base = evaluation_from_fit(base_fit, spatial_weights, predictor_names)
    echo(f"✓ Non-spatial model: R² = {base.r_squared:.4f}, "
         f"max Moran's I = {base.max_moran:.4f}", verbose)

    def fallback(status, ranking=None, selection=None):
        return SpatialModelResult(
            method=method,
            status=status,
            non_spatial=base.fit,
            non_spatial_moran=base.moran,
            spatial=None,
            spatial_moran=None,
            spatial_predictors=SpatialPredictorSet(),
            ranking=ranking,
            selection=selection,
            performance_comparison=pd.DataFrame(
                [performance_row("Non-spatial", base.fit, base.moran, y)]
            ),
            variable_importance=variable_importance_table(base.fit)
        )

    if not base.moran.has_positive:
        echo("Residuals are not spatially correlated, this model is good to go!",
             verbose)
        return fallback(STATUS_NOT_AUTOCORRELATED)

    # 2. Candidates at the thresholds with positive autocorrelation
    candidates = generate_spatial_predictors(
        method.generator,
        d,
        spatial_weights,
        distance_thresholds=base.moran.positive_thresholds,
        max_spatial_predictors=max_spatial_predictors
    )
    echo(f"✓ Generated {len(candidates)} candidate spatial predictors "
         f"({method.generator})", verbose)

    evaluator = ModelEvaluator(data, dependent_name, fitter, spatial_weights, candidates)
    ranking = None
    selection = None

    # 3-4. Ranking and selection
    if not method.uses_selection:
        selected = candidates.names
    else:
        try:
            with make_pool(pool_config) as pool:
                ranking = rank_spatial_predictors(
                    candidates,
                    spatial_weights,
                    method=method.ranker,
                    evaluator=evaluator,
                    predictor_names=predictor_names,
                    reference_moran_i=base.max_moran,
                    pool=pool,
                    verbose=verbose
                )
                if ranking.is_empty:
                    raise NoEligiblePredictorsError(
                        "No spatial predictor reduces the residual autocorrelation"
                    )

                if method.selector == "sequential":
                    selection = select_spatial_predictors_sequential(
                        ranking,
                        evaluator,
                        predictor_names,
                        weights.weight_r_squared,
                        weights.weight_penalization_n_predictors,
                        pool=pool,
                        verbose=verbose
                    )
                else:
                    selection = select_spatial_predictors_optimized(
                        ranking,
                        candidates,
                        spatial_weights,
                        evaluator,
                        predictor_names,
                        weights.weight_r_squared,
                        weights.weight_penalization_n_predictors,
                        pool=pool,
                        verbose=verbose
                    )
                if selection.is_empty:
                    raise NoEligiblePredictorsError("Selection kept no spatial predictor")
        except NoEligiblePredictorsError as e:
            echo(f"⚠ {e}; returning the non-spatial model", verbose)
            return fallback(STATUS_NO_ELIGIBLE_PREDICTORS, ranking, selection)

        selected = list(selection.best_spatial_predictors)

    # 5. Spatial model
    spatial = evaluator(predictor_names + list(selected))
    echo(f"✓ Spatial model: {len(selected)} spatial predictors, "
         f"R² = {spatial.r_squared:.4f}, max Moran's I = {spatial.max_moran:.4f}",
         verbose)

    return SpatialModelResult(
        method=method,
        status=STATUS_SPATIAL,
        non_spatial=base.fit,
        non_spatial_moran=base.moran,
        spatial=spatial.fit,
        spatial_moran=spatial.moran,
        spatial_predictors=candidates.subset(selected),
        ranking=ranking,
        selection=selection,
        performance_comparison=pd.DataFrame([
            performance_row("Non-spatial", base.fit, base.moran, y),
            performance_row("Spatial", spatial.fit, spatial.moran, y),
        ]),
        variable_importance=variable_importance_table(spatial.fit, selected)
    )


# ==================== Pipeline I/O ====================

GEO_SUFFIXES = (".gpkg", ".geojson", ".json", ".shp", ".fgb")


def load_data(path: Path) -> pd.DataFrame:
    """Load observations from CSV, Parquet or a point layer."""
    path = Path(path)
    if not path.exists():
        raise MissingInputError(f"Data file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in GEO_SUFFIXES:
        return gpd.read_file(path)
    if suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def load_distance_matrix(path: Optional[Path], data: pd.DataFrame) -> np.ndarray:
    """
    Load a distance matrix file, or derive it from point geometry.

    Args:
        path: CSV, Parquet or NPY file; None to use the data geometry.
        data: Loaded observations.

    Returns:
        Distance matrix as an array
    """
    if path is None or not Path(path).exists():
        if isinstance(data, gpd.GeoDataFrame):
            return distance_matrix_from_coordinates(data)
        raise MissingInputError(
            f"Distance matrix not found ({path}) and the data has no point geometry"
        )

    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)
    # Drop a written-out row index
    if df.shape[1] == df.shape[0] + 1:
        df = df.iloc[:, 1:]
    return df.to_numpy(dtype=float)


def save_results(result: SpatialModelResult, results_dir: Path,
                 verbose: bool = True):
    """Write the result tables of a run as CSV files."""
    results_dir.mkdir(parents=True, exist_ok=True)

    tables = {
        "moran_comparison.csv": result.moran_comparison(),
        "performance_comparison.csv": result.performance_comparison,
        "residuals.csv": pd.DataFrame({"residuals": result.model.residuals}),
        "variable_importance.csv": result.variable_importance,
    }
    if result.ranking is not None:
        tables["ranking_criteria.csv"] = result.ranking.criteria
    if result.selection is not None:
        tables["optimization.csv"] = result.selection.optimization
    if len(result.spatial_predictors) > 0:
        tables["spatial_predictors.csv"] = result.spatial_predictors.to_frame()

    for filename, df in tables.items():
        df.to_csv(results_dir / filename, index=False)
        echo(f"✓ Saved: {results_dir / filename}", verbose)


def run_spatial_model(config: Optional[PipelineConfig] = None) -> SpatialModelResult:
    """
    Run the engine as described by a pipeline configuration.

    Args:
        config: PipelineConfig; None loads the default configuration.

    Returns:
        SpatialModelResult
    """
    if config is None:
        from .config import load_config
        config = load_config()

    verbose = config.verbose
    print_header("Loading inputs", level=2, verbose=verbose)
    data = load_data(config.paths.data_file)
    echo(f"✓ Data: {config.paths.data_file} ({len(data)} rows)", verbose)
    distance_matrix = load_distance_matrix(config.paths.distance_matrix_file, data)
    echo(f"✓ Distance matrix: {distance_matrix.shape}", verbose)

    if config.variables.predictors:
        predictor_names = list(config.variables.predictors)
    else:
        predictor_names = [
            c for c in data.select_dtypes("number").columns
            if c != config.variables.dependent
        ]

    weights = config.scoring_weights()
    result = fit_spatial_model(
        data=data,
        dependent_name=config.variables.dependent,
        predictor_names=predictor_names,
        distance_matrix=distance_matrix,
        distance_thresholds=config.spatial.distance_thresholds,
        method=config.method,
        fitter=make_fitter(config.model),
        weight_r_squared=weights.weight_r_squared,
        weight_penalization_n_predictors=weights.weight_penalization_n_predictors,
        max_spatial_predictors=config.spatial.max_spatial_predictors,
        pool_config=config.workers,
        verbose=verbose
    )

    print_header("Saving results", level=2, verbose=verbose)
    results_dir = config.get_results_subdir(config.method.name)
    save_results(result, results_dir, verbose)
    echo(f"Finished: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", verbose)
    return result
