"""
Regression Fitters
==================
Regression collaborators used by the spatial predictor engine.

Every fitter exposes ``fit(data, dependent_name, predictor_names)`` and
returns a FitResult, which is either a SingleFit or a RepeatedFit. The
engine only reads ``residuals``, ``r_squared`` and ``predictor_names``.

Fitters:
1. OLSFitter - ordinary least squares (statsmodels, pseudo-inverse)
2. RandomForestFitter - random forest with out-of-bag residuals (sklearn)
3. RepeatedFitter - averages several seeded fits of another fitter
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.ensemble import RandomForestRegressor

from ..exceptions import MissingInputError


# Forest arguments fixed by the out-of-bag residuals
OOB_PARAMS = ("oob_score", "bootstrap")


class FitResult(ABC):
    """Common capabilities of single and repeated fits."""

    @property
    @abstractmethod
    def residuals(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def r_squared(self) -> float:
        ...

    @property
    @abstractmethod
    def predictor_names(self) -> Tuple[str, ...]:
        ...

    @property
    @abstractmethod
    def importances(self) -> Optional[pd.Series]:
        """Importance per predictor name, None when the learner has none."""
        ...

    @property
    def rmse(self) -> float:
        """Root mean squared error of the residuals."""
        return float(np.sqrt(np.mean(np.square(self.residuals))))


@dataclass(frozen=True, eq=False)
class SingleFit(FitResult):
    """Result of one model fit."""
    _residuals: np.ndarray
    _r_squared: float
    _predictor_names: Tuple[str, ...]
    seed: Optional[int] = None
    _importances: Optional[np.ndarray] = None

    @property
    def residuals(self) -> np.ndarray:
        return self._residuals

    @property
    def r_squared(self) -> float:
        return self._r_squared

    @property
    def predictor_names(self) -> Tuple[str, ...]:
        return self._predictor_names

    @property
    def importances(self) -> Optional[pd.Series]:
        if self._importances is None:
            return None
        return pd.Series(self._importances, index=list(self._predictor_names),
                         name="importance", dtype=float)


@dataclass(frozen=True, eq=False)
class RepeatedFit(FitResult):
    """Several seeded fits of the same model, summarized by their means."""
    fits: Tuple[SingleFit, ...]

    def __post_init__(self):
        if not self.fits:
            raise ValueError("RepeatedFit needs at least one fit")

    @property
    def repetitions(self) -> int:
        return len(self.fits)

    @property
    def residuals(self) -> np.ndarray:
        return np.mean([f.residuals for f in self.fits], axis=0)

    @property
    def r_squared(self) -> float:
        return float(np.mean([f.r_squared for f in self.fits]))

    @property
    def r_squared_std(self) -> float:
        return float(np.std([f.r_squared for f in self.fits]))

    @property
    def predictor_names(self) -> Tuple[str, ...]:
        return self.fits[0].predictor_names

    @property
    def importances(self) -> Optional[pd.Series]:
        """Mean importance across repetitions."""
        per_fit = [f.importances for f in self.fits]
        if any(i is None for i in per_fit):
            return None
        return pd.concat(per_fit, axis=1).mean(axis=1).rename("importance")


def get_design(
    data: pd.DataFrame,
    dependent_name: str,
    predictor_names: Sequence[str]
) -> Tuple[np.ndarray, np.ndarray]:
    """Response vector and predictor matrix as float arrays."""
    missing = [c for c in [dependent_name, *predictor_names] if c not in data.columns]
    if missing:
        raise MissingInputError(f"Columns not found in data: {missing}")

    y = data[dependent_name].to_numpy(dtype=float)
    X = data[list(predictor_names)].to_numpy(dtype=float)
    if not np.all(np.isfinite(y)) or not np.all(np.isfinite(X)):
        raise ValueError("Data contains missing or infinite values")
    return y, X


class OLSFitter:
    """
    Ordinary least squares with an intercept.

    Uses the pseudo-inverse solver, so designs with more columns than rows
    (raw distance predictors) or collinear columns still fit.
    """

    seed = None

    def fit(
        self,
        data: pd.DataFrame,
        dependent_name: str,
        predictor_names: Sequence[str]
    ) -> SingleFit:
        y, X = get_design(data, dependent_name, predictor_names)
        X = sm.add_constant(X, has_constant="add")
        results = sm.OLS(y, X).fit(method="pinv")

        tss = np.sum(np.square(y - y.mean()))
        ssr = np.sum(np.square(results.resid))
        r_squared = 1.0 - ssr / tss if tss > 0 else 0.0

        # |t| of the slopes; NaN when the design leaves no residual degrees of freedom
        with np.errstate(divide="ignore", invalid="ignore"):
            t_values = np.abs(np.asarray(results.tvalues, dtype=float))[1:]

        return SingleFit(
            np.asarray(results.resid, dtype=float),
            float(r_squared),
            tuple(predictor_names),
            _importances=t_values
        )

    def with_seed(self, seed: Optional[int]) -> "OLSFitter":
        return self

    def __repr__(self):
        return "OLSFitter()"


class RandomForestFitter:
    """
    Random forest regression with out-of-bag residuals.

    Residuals are the observed values minus the out-of-bag predictions and
    R-squared is the out-of-bag score, so both measure out-of-sample fit.

    Args:
        seed: Random state of the forest. ``random_state`` in ``params`` is
            accepted as an alias.
        **params: Extra ``RandomForestRegressor`` keyword arguments.
            ``oob_score`` and ``bootstrap`` are always True.
    """

    def __init__(self, seed: Optional[int] = None, **params: Any):
        random_state = params.pop("random_state", None)
        if seed is None:
            seed = random_state
        elif random_state is not None and random_state != seed:
            raise ValueError(
                f"Conflicting seed={seed} and random_state={random_state}"
            )
        for key in OOB_PARAMS:
            if not params.pop(key, True):
                raise ValueError(f"{key}=False leaves no out-of-bag residuals")

        self.seed = seed
        self.params: Dict[str, Any] = {"n_estimators": 500, "n_jobs": 1}
        self.params.update(params)

    def fit(
        self,
        data: pd.DataFrame,
        dependent_name: str,
        predictor_names: Sequence[str]
    ) -> SingleFit:
        y, X = get_design(data, dependent_name, predictor_names)

        # A forest needs at least one feature; fall back to the mean model
        if X.shape[1] == 0:
            return SingleFit(y - y.mean(), 0.0, (), self.seed, np.empty(0))

        model = RandomForestRegressor(
            oob_score=True,
            bootstrap=True,
            random_state=self.seed,
            **self.params
        )
        model.fit(X, y)

        return SingleFit(
            y - model.oob_prediction_,
            float(model.oob_score_),
            tuple(predictor_names),
            self.seed,
            model.feature_importances_
        )

    def with_seed(self, seed: Optional[int]) -> "RandomForestFitter":
        return RandomForestFitter(seed=seed, **self.params)

    def __repr__(self):
        return f"RandomForestFitter(seed={self.seed}, params={self.params})"


class RepeatedFitter:
    """
    Fits a seedable fitter ``repetitions`` times with seeds
    ``seed, seed + 1, ...`` and averages residuals and R-squared.
    """

    def __init__(self, fitter, repetitions: int = 5, seed: Optional[int] = None):
        if repetitions < 1:
            raise ValueError("repetitions must be >= 1")
        self.fitter = fitter
        self.repetitions = int(repetitions)
        self.seed = 0 if seed is None else int(seed)

    def fit(
        self,
        data: pd.DataFrame,
        dependent_name: str,
        predictor_names: Sequence[str]
    ) -> RepeatedFit:
        fits = tuple(
            self.fitter.with_seed(self.seed + i).fit(
                data, dependent_name, predictor_names
            )
            for i in range(self.repetitions)
        )
        return RepeatedFit(fits)

    def __repr__(self):
        return (
            f"RepeatedFitter({self.fitter!r}, repetitions={self.repetitions}, "
            f"seed={self.seed})"
        )


def make_fitter(model_config):
    """
    Build the fitter described by a ModelConfig.

    Args:
        model_config: ``spatialrf.config.ModelConfig`` instance.

    Returns:
        OLSFitter, RandomForestFitter or RepeatedFitter
    """
    model_config.validate()
    if model_config.fitter == "ols":
        fitter = OLSFitter()
    else:
        fitter = RandomForestFitter(seed=model_config.seed, **model_config.params)

    if model_config.repetitions > 1:
        return RepeatedFitter(fitter, model_config.repetitions, model_config.seed)
    return fitter
