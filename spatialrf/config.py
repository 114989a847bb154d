"""
Configuration loader for the spatialrf engine.

This module provides configuration management with YAML support,
validation of method combinations and scoring weights, and path
resolution.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple, Union
import yaml

from .exceptions import ConfigurationError


# Find project root by looking for config/ directory
def find_project_root() -> Path:
    """Find the project root directory by looking for config/pipeline.yaml."""
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Max 10 levels up
        config_file = current / "config" / "pipeline.yaml"
        if config_file.exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    # Fallback: assume we're in spatialrf/ package
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = find_project_root()
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pipeline.yaml"

GENERATORS = ("mem", "pca", "hengl")
RANKERS = ("moran", "effect")
SELECTORS = ("sequential", "optimized")

METHODS = [
    "mem.moran.sequential",
    "mem.effect.sequential",
    "mem.effect.optimized",
    "hengl",
    "hengl.moran.sequential",
    "hengl.effect.sequential",
    "hengl.effect.optimized",
    "pca.moran.sequential",
    "pca.effect.sequential",
    "pca.effect.optimized",
]

FITTERS = ("ols", "random_forest")


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the optimization score used by both selectors."""
    weight_r_squared: float = 0.75
    weight_penalization_n_predictors: float = 0.25

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Both weights must lie in [0, 1]."""
        for name in ("weight_r_squared", "weight_penalization_n_predictors"):
            value = getattr(self, name)
            if value is None or not 0.0 <= float(value) <= 1.0:
                raise ConfigurationError(
                    f"Invalid {name} '{value}'. Must be a number between 0 and 1"
                )


@dataclass(frozen=True)
class MethodConfig:
    """
    Generator, ranker and selector used to build spatial predictors.

    Only ``generator="hengl"`` may go without ranker and selector, and the
    "moran" ranker cannot feed the "optimized" selector, which re-ranks
    candidates by their effect on the model residuals.
    """
    generator: str = "mem"
    ranker: Optional[str] = "moran"
    selector: Optional[str] = "sequential"

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Reject unknown options and invalid combinations."""
        if self.generator not in GENERATORS:
            raise ConfigurationError(
                f"Invalid generator '{self.generator}'. "
                f"Must be one of: {list(GENERATORS)}"
            )
        if self.ranker is not None and self.ranker not in RANKERS:
            raise ConfigurationError(
                f"Invalid ranker '{self.ranker}'. Must be one of: {list(RANKERS)}"
            )
        if self.selector is not None and self.selector not in SELECTORS:
            raise ConfigurationError(
                f"Invalid selector '{self.selector}'. "
                f"Must be one of: {list(SELECTORS)}"
            )
        if (self.ranker is None) != (self.selector is None):
            raise ConfigurationError(
                "Ranker and selector must be given together"
            )
        if self.ranker is None and self.generator != "hengl":
            raise ConfigurationError(
                f"Generator '{self.generator}' requires a ranker and a selector"
            )
        if self.ranker == "moran" and self.selector == "optimized":
            raise ConfigurationError(
                "The 'moran' ranker cannot be combined with the 'optimized' selector"
            )

    @property
    def name(self) -> str:
        """Dotted method name, e.g. ``mem.effect.optimized``."""
        parts = [self.generator, self.ranker, self.selector]
        return ".".join(p for p in parts if p is not None)

    @property
    def uses_selection(self) -> bool:
        return self.ranker is not None

    @classmethod
    def parse(cls, method: Union[str, "MethodConfig"]) -> "MethodConfig":
        """
        Build a MethodConfig from a dotted method name.

        Args:
            method: A name such as ``"pca.effect.sequential"`` or ``"hengl"``,
                or an existing MethodConfig.

        Returns:
            Validated MethodConfig instance
        """
        if isinstance(method, MethodConfig):
            return method
        if not isinstance(method, str):
            raise ConfigurationError(f"Invalid method '{method}'")
        parts = method.strip().lower().split(".")
        if len(parts) == 1:
            return cls(generator=parts[0], ranker=None, selector=None)
        if len(parts) != 3:
            raise ConfigurationError(
                f"Invalid method '{method}'. Must be one of: {METHODS}"
            )
        return cls(generator=parts[0], ranker=parts[1], selector=parts[2])

    def default_weights(self) -> ScoringWeights:
        """
        Default scoring weights for this method.

        PCA sequential methods default to 0.5 / 0.1. These are only defaults:
        ``resolve_weights`` keeps any weight the caller sets explicitly, even
        for PCA methods.
        """
        if self.selector == "optimized":
            return ScoringWeights(0.25, 0.0)
        if self.generator == "pca":
            return ScoringWeights(0.5, 0.1)
        return ScoringWeights(0.75, 0.25)

    def resolve_weights(
        self,
        weight_r_squared: Optional[float] = None,
        weight_penalization_n_predictors: Optional[float] = None
    ) -> ScoringWeights:
        """Fill the weights that were not given with the method defaults."""
        defaults = self.default_weights()
        return ScoringWeights(
            weight_r_squared=(
                defaults.weight_r_squared if weight_r_squared is None
                else weight_r_squared
            ),
            weight_penalization_n_predictors=(
                defaults.weight_penalization_n_predictors
                if weight_penalization_n_predictors is None
                else weight_penalization_n_predictors
            )
        )


@dataclass(frozen=True)
class WorkerPoolConfig:
    """
    Worker pool used for model-fit evaluations.

    A local pool uses ``n_cores`` processes. When ``cluster_ips`` is given
    the first address is the coordinator, and every node contributes the
    matching entry of ``cluster_cores`` worker processes connecting on
    ``cluster_port``.
    """
    n_cores: Optional[int] = None
    cluster_ips: Tuple[str, ...] = ()
    cluster_cores: Tuple[int, ...] = ()
    cluster_port: int = 11000
    connect_timeout: float = 60.0

    def __post_init__(self):
        # Default pool size is resolved once, here
        if self.n_cores is None:
            object.__setattr__(self, "n_cores", max(1, (os.cpu_count() or 2) - 1))
        object.__setattr__(self, "cluster_ips", tuple(self.cluster_ips or ()))
        object.__setattr__(
            self, "cluster_cores", tuple(int(c) for c in (self.cluster_cores or ()))
        )
        self.validate()

    @property
    def is_cluster(self) -> bool:
        return len(self.cluster_ips) > 0

    @property
    def total_workers(self) -> int:
        if self.is_cluster:
            return sum(self.cluster_cores)
        return self.n_cores

    def validate(self):
        """Validate pool sizes and cluster layout."""
        if int(self.n_cores) < 1:
            raise ConfigurationError(f"Invalid n_cores '{self.n_cores}'. Must be >= 1")
        if self.is_cluster:
            if len(self.cluster_cores) != len(self.cluster_ips):
                raise ConfigurationError(
                    "cluster_cores must give one core count per entry of cluster_ips"
                )
            if any(c < 1 for c in self.cluster_cores):
                raise ConfigurationError("Every cluster node needs at least one core")
        if not 0 < int(self.cluster_port) < 65536:
            raise ConfigurationError(f"Invalid cluster_port '{self.cluster_port}'")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive")


@dataclass
class PathsConfig:
    """Path configuration with automatic resolution."""
    data_file: str = "data/observations.csv"
    distance_matrix_file: Optional[str] = "data/distance_matrix.csv"
    results_dir: str = "results"

    def resolve(self, base: Path) -> "ResolvedPaths":
        """Resolve all paths relative to base directory."""
        return ResolvedPaths(
            base=base,
            data_file=base / self.data_file,
            distance_matrix_file=(
                base / self.distance_matrix_file
                if self.distance_matrix_file else None
            ),
            results=base / self.results_dir
        )


@dataclass
class ResolvedPaths:
    """Resolved absolute paths for the project."""
    base: Path
    data_file: Path
    distance_matrix_file: Optional[Path]
    results: Path

    def ensure_dirs(self):
        """Create the results directory if it doesn't exist."""
        self.results.mkdir(parents=True, exist_ok=True)


@dataclass
class VariablesConfig:
    """Variable configuration."""
    dependent: Optional[str] = None
    predictors: List[str] = field(default_factory=list)


@dataclass
class SpatialConfig:
    """Spatial predictor configuration."""
    method: str = "mem.moran.sequential"
    distance_thresholds: Optional[List[float]] = None
    max_spatial_predictors: Optional[int] = None

    def validate(self):
        """Validate thresholds and the predictor cap."""
        MethodConfig.parse(self.method)
        if self.distance_thresholds is not None:
            thresholds = [float(t) for t in self.distance_thresholds]
            if any(t < 0 for t in thresholds):
                raise ConfigurationError("Distance thresholds must be non-negative")
            if thresholds != sorted(thresholds):
                raise ConfigurationError("Distance thresholds must be ascending")
        if self.max_spatial_predictors is not None and self.max_spatial_predictors < 1:
            raise ConfigurationError("max_spatial_predictors must be >= 1")


@dataclass
class ModelConfig:
    """Regression collaborator configuration."""
    fitter: str = "ols"
    repetitions: int = 1
    seed: Optional[int] = None
    params: Dict[str, Any] = field(default_factory=dict)

    def validate(self):
        """Validate fitter kind and repetitions."""
        if self.fitter not in FITTERS:
            raise ConfigurationError(
                f"Invalid fitter '{self.fitter}'. Must be one of: {list(FITTERS)}"
            )
        if self.repetitions < 1:
            raise ConfigurationError("repetitions must be >= 1")
        if "random_state" in self.params:
            raise ConfigurationError(
                "Set the forest random state with model.seed, not model.params.random_state"
            )
        for key in ("oob_score", "bootstrap"):
            if key in self.params and not self.params[key]:
                raise ConfigurationError(
                    f"model.params.{key} must stay true: residuals are out-of-bag"
                )


class PipelineConfig:
    """
    Main configuration class for a spatialrf run.

    Loads configuration from YAML and provides typed access to all settings.

    Usage:
        config = PipelineConfig.load()  # Load from default location
        config = PipelineConfig.load("path/to/config.yaml")  # Custom path

        # Access settings
        print(config.method.name)
        print(config.paths.data_file)
        print(config.scoring_weights())
    """

    def __init__(self, config_dict: Dict[str, Any], base_path: Optional[Path] = None):
        self._raw = config_dict or {}
        self._base_path = base_path or PROJECT_ROOT
        config_dict = self._raw

        # Parse paths config
        paths_dict = config_dict.get("paths", {})
        paths_config = PathsConfig(
            data_file=paths_dict.get("data_file", "data/observations.csv"),
            distance_matrix_file=paths_dict.get(
                "distance_matrix_file", "data/distance_matrix.csv"
            ),
            results_dir=paths_dict.get("results_dir", "results")
        )
        self.paths = paths_config.resolve(self._base_path)

        # Parse variables config
        vars_dict = config_dict.get("variables", {})
        self.variables = VariablesConfig(
            dependent=vars_dict.get("dependent"),
            predictors=list(vars_dict.get("predictors", []))
        )

        # Parse spatial config
        spatial_dict = config_dict.get("spatial", {})
        self.spatial = SpatialConfig(
            method=spatial_dict.get("method", "mem.moran.sequential"),
            distance_thresholds=spatial_dict.get("distance_thresholds"),
            max_spatial_predictors=spatial_dict.get("max_spatial_predictors")
        )
        self.spatial.validate()
        self.method = MethodConfig.parse(self.spatial.method)

        # Parse scoring weights (None -> per-method defaults)
        scoring_dict = config_dict.get("scoring", {})
        self.weight_r_squared = scoring_dict.get("weight_r_squared")
        self.weight_penalization_n_predictors = scoring_dict.get(
            "weight_penalization_n_predictors"
        )
        self.scoring_weights()

        # Parse model config
        model_dict = config_dict.get("model", {})
        self.model = ModelConfig(
            fitter=model_dict.get("fitter", "ols"),
            repetitions=int(model_dict.get("repetitions", 1)),
            seed=model_dict.get("seed"),
            params=dict(model_dict.get("params", {}))
        )
        self.model.validate()

        # Parse worker pool config
        workers_dict = config_dict.get("workers", {})
        self.workers = WorkerPoolConfig(
            n_cores=workers_dict.get("n_cores"),
            cluster_ips=tuple(workers_dict.get("cluster_ips", []) or []),
            cluster_cores=tuple(workers_dict.get("cluster_cores", []) or []),
            cluster_port=int(workers_dict.get("cluster_port", 11000)),
            connect_timeout=float(workers_dict.get("connect_timeout", 60.0))
        )

        # Store raw sections for advanced access
        self.logging = config_dict.get("logging", {})

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PipelineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default.

        Returns:
            PipelineConfig instance
        """
        if config_path is None:
            path = DEFAULT_CONFIG_PATH
        else:
            path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        # Determine base path (parent of config/ directory)
        base_path = path.resolve().parent.parent

        return cls(config_dict, base_path)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any],
                  base_path: Optional[Path] = None) -> "PipelineConfig":
        """Build a configuration from an in-memory mapping."""
        return cls(config_dict, base_path)

    # ==================== Convenience Methods ====================

    @property
    def verbose(self) -> bool:
        return bool(self.logging.get("verbose", True))

    def with_method(self, method: str) -> "PipelineConfig":
        """Return a copy of this configuration using another method."""
        raw = dict(self._raw)
        raw["spatial"] = dict(raw.get("spatial", {}), method=method)
        return PipelineConfig(raw, self._base_path)

    def scoring_weights(self):
        """Scoring weights for the configured method."""
        return self.method.resolve_weights(
            self.weight_r_squared, self.weight_penalization_n_predictors
        )

    def get_results_subdir(self, name: str) -> Path:
        """Get path to a results subdirectory, creating if needed."""
        path = self.paths.results / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def summary(self) -> str:
        """Get a summary of current configuration."""
        weights = self.scoring_weights()
        thresholds = self.spatial.distance_thresholds
        if self.workers.is_cluster:
            workers = (
                f"cluster {list(self.workers.cluster_ips)} "
                f"cores={list(self.workers.cluster_cores)} "
                f"port={self.workers.cluster_port}"
            )
        else:
            workers = f"local, {self.workers.n_cores} cores"
        return f"""
spatialrf Configuration
=======================
Method: {self.method.name}
Distance thresholds: {thresholds if thresholds is not None else 'default'}
Max spatial predictors: {self.spatial.max_spatial_predictors or 'no limit'}

Paths:
  Data: {self.paths.data_file}
  Distance matrix: {self.paths.distance_matrix_file or 'from geometry'}
  Results: {self.paths.results}

Variables:
  Dependent: {self.variables.dependent}
  Predictors: {len(self.variables.predictors)} variables

Scoring:
  weight_r_squared: {weights.weight_r_squared}
  weight_penalization_n_predictors: {weights.weight_penalization_n_predictors}

Model:
  Fitter: {self.model.fitter}
  Repetitions: {self.model.repetitions}
  Seed: {self.model.seed}

Workers: {workers}
"""


# Convenience function for quick loading
def load_config(config_path: Optional[str] = None) -> PipelineConfig:
    """
    Load pipeline configuration.

    Args:
        config_path: Optional path to config file.

    Returns:
        PipelineConfig instance

    Usage:
        from spatialrf import load_config
        config = load_config()
    """
    return PipelineConfig.load(config_path)
