# ==================================================
# ================  MODULE: config  ================
# ==================================================
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

__all__ = [
    "GlobalConfig",
    "WindowConfig",
    "ClusterConfig",
    "ThresholdConfig",
    "DecoderConfig",
    "get_global_config",
    "set_global_config",
    "get_window_config",
    "set_window_config",
    "load_configs",
    "save_configs",
]

STRATEGIES = ("vectorized", "classic", "parallel")


def _summary(cfg: Any) -> None:
    print(f"[{type(cfg).__name__}]")
    for f in fields(cfg):
        print(f"  {f.name:<20}: {getattr(cfg, f.name)}")


def _update(cfg: Any, **kwargs: Any) -> Any:
    for key, value in kwargs.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
        else:
            raise AttributeError(f"[{type(cfg).__name__}] Unknown config key: '{key}'")
    return cfg


# ==================================================
# ===============  CLASS: GlobalConfig  ============
# ==================================================
@dataclass
class GlobalConfig:
    """
    Engine-wide settings shared by every array operation.

    Attributes
    ----------
    default_dtype : str, default 'float32'
        Element type of arrays created without an explicit dtype.
    reduce_dtype : str, default 'float32'
        Element type of single-channel arrays produced by channel-vector reductions.
    raise_errors : bool, default True
        If True, failing operations raise after logging. If False, they log and return None.
    processor_strategy : {'vectorized', 'classic', 'parallel'}, default 'vectorized'
        How per-pixel channel-vector callbacks are driven.
    backend : str, default 'sequential'
        Joblib backend used by the 'parallel' strategy.
    n_jobs : int, default -1
        Number of joblib workers for the 'parallel' strategy.
    seed : Optional[int]
        Seed of the random generator used by random factories and cluster initialisation.
    verbose : bool, default False
        If True, loggers are created at INFO level instead of `log_level`.
    log_dir : Optional[str]
        Directory of rotating log files. None keeps logging on the console only.
    log_level : str, default 'WARNING'
        Level name of the main logger.
    """
    default_dtype: str = "float32"
    reduce_dtype: str = "float32"
    raise_errors: bool = True
    processor_strategy: str = "vectorized"
    backend: str = "sequential"
    n_jobs: int = -1
    seed: Optional[int] = None
    verbose: bool = False
    log_dir: Optional[str] = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.processor_strategy not in STRATEGIES:
            raise ValueError(
                f"[GlobalConfig] Unsupported processor_strategy: '{self.processor_strategy}'. "
                f"Expected one of {STRATEGIES}."
            )

    def update_config(self, **kwargs) -> "GlobalConfig":
        """Dynamically update global configuration (in-place)."""
        _update(self, **kwargs)
        self.__post_init__()
        return self

    def summary(self) -> None:
        _summary(self)


# ==================================================
# ===============  CLASS: WindowConfig  ============
# ==================================================
@dataclass
class WindowConfig:
    """
    Default window geometry of the sliding-window filters.

    Any `size`, `fillvalue` or `pattern` argument left as None by an operator
    (`neighbor`, `structure`, pooling, morphology, texture...) is read from the
    active instance, see `set_window_config`.
    """
    size: Tuple[int, int] = (3, 3)
    fillvalue: float = 0.0
    pattern: List[List[int]] = field(default_factory=lambda: [[1, 1, 1], [0, 1, 0], [1, 1, 1]])

    def update_config(self, **kwargs) -> "WindowConfig":
        return _update(self, **kwargs)

    def summary(self) -> None:
        _summary(self)


# ==================================================
# ==============  CLASS: ClusterConfig  ============
# ==================================================
@dataclass
class ClusterConfig:
    """
    Settings of the vector-distance clustering step.

    Attributes
    ----------
    k : int, default 4
        Number of clusters when no centers are supplied.
    metric : {'dist', 'cossimdist'}, default 'dist'
        Distance used for assignment ('distance' and 'cosine' are accepted aliases).
    epsilon : float, default 1e-7
        Stabiliser added to the cosine denominator.
    n_steps : int, default 1
        Number of explicit assignment/update passes run by `KMeansClusterer.run`.
    seed : Optional[int]
        Seed for random center initialisation (falls back to GlobalConfig.seed).
    """
    k: int = 4
    metric: str = "dist"
    epsilon: float = 1e-7
    n_steps: int = 1
    seed: Optional[int] = None

    def update_config(self, **kwargs) -> "ClusterConfig":
        return _update(self, **kwargs)

    def summary(self) -> None:
        _summary(self)


# ==================================================
# =============  CLASS: ThresholdConfig  ===========
# ==================================================
@dataclass
class ThresholdConfig:
    """
    Settings of the thresholding operator.

    `method` is either a fixed policy ('binary', 'binary_inv', 'truncate',
    'tozero', 'tozero_inv') used with `threshold`, or an automatic selector
    ('otsu', 'yen', 'isodata', 'li', 'triangle') combined with `policy`.
    """
    threshold: float = 100.0
    method: str = "binary"
    policy: str = "binary"
    maxval: float = 255.0

    def update_config(self, **kwargs) -> "ThresholdConfig":
        return _update(self, **kwargs)

    def summary(self) -> None:
        _summary(self)


# ==================================================
# ==============  CLASS: DecoderConfig  ============
# ==================================================
@dataclass
class DecoderConfig:
    """Defaults applied when decoding pixel data from a DICOM stream."""
    unit: str = "HU"
    default_slope: float = 1.0
    default_intercept: float = 0.0
    output_dtype: str = "float32"

    def update_config(self, **kwargs) -> "DecoderConfig":
        return _update(self, **kwargs)

    def summary(self) -> None:
        _summary(self)


# ====[ Active global configuration ]====
_ACTIVE_GLOBAL_CFG = GlobalConfig()


def get_global_config() -> GlobalConfig:
    return _ACTIVE_GLOBAL_CFG


def set_global_config(cfg: Optional[GlobalConfig] = None, **kwargs) -> GlobalConfig:
    """
    Replace the active global configuration, or update it in place with `kwargs`.

    Returns
    -------
    GlobalConfig
        The configuration now in effect.
    """
    global _ACTIVE_GLOBAL_CFG
    if cfg is not None:
        if not isinstance(cfg, GlobalConfig):
            raise TypeError(f"[config] Expected GlobalConfig, got {type(cfg).__name__}.")
        _ACTIVE_GLOBAL_CFG = cfg
    if kwargs:
        _ACTIVE_GLOBAL_CFG.update_config(**kwargs)
    return _ACTIVE_GLOBAL_CFG


# ====[ Active window configuration ]====
_ACTIVE_WINDOW_CFG = WindowConfig()


def get_window_config() -> WindowConfig:
    return _ACTIVE_WINDOW_CFG


def set_window_config(cfg: Optional[WindowConfig] = None, **kwargs) -> WindowConfig:
    """
    Replace the active window defaults, or update them in place with `kwargs`.
    """
    global _ACTIVE_WINDOW_CFG
    if cfg is not None:
        if not isinstance(cfg, WindowConfig):
            raise TypeError(f"[config] Expected WindowConfig, got {type(cfg).__name__}.")
        _ACTIVE_WINDOW_CFG = cfg
    if kwargs:
        _ACTIVE_WINDOW_CFG.update_config(**kwargs)
    return _ACTIVE_WINDOW_CFG


# ====[ YAML persistence ]====
_SECTIONS = {
    "global": GlobalConfig,
    "window": WindowConfig,
    "cluster": ClusterConfig,
    "threshold": ThresholdConfig,
    "decoder": DecoderConfig,
}


def load_configs(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration sections from a YAML file.

    Parameters
    ----------
    path : str | Path
        YAML file whose top-level keys are section names
        ('global', 'window', 'cluster', 'threshold', 'decoder').

    Returns
    -------
    dict
        Section name -> config instance. Missing sections get their defaults.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"[config] Top-level YAML node must be a mapping, got {type(raw).__name__}.")

    unknown = set(raw) - set(_SECTIONS)
    if unknown:
        raise KeyError(f"[config] Unknown config sections: {sorted(unknown)}")

    out: Dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        cfg = cls()
        section = raw.get(name) or {}
        if "size" in section:
            section["size"] = tuple(section["size"])
        cfg.update_config(**section)
        out[name] = cfg
    return out


def save_configs(path: Union[str, Path], **cfgs: Any) -> Path:
    """
    Dump config instances to YAML, one section per keyword (e.g. ``global_=GlobalConfig()``).
    A trailing underscore on the keyword is stripped.
    """
    payload: Dict[str, Any] = {}
    for name, cfg in cfgs.items():
        key = name.rstrip("_")
        if key not in _SECTIONS:
            raise KeyError(f"[config] Unknown config section: '{key}'")
        data = asdict(cfg)
        if "size" in data:
            data["size"] = list(data["size"])
        payload[key] = data

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False)
    return path
