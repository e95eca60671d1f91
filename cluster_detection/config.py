"""Configuration management for cluster scans.

Provides default scan parameters and loading utilities so runs can be
reproduced from a JSON file.
"""
from __future__ import annotations

import copy
import json
import pathlib

_DEFAULT = {
    "fitness": {
        "function_type": "poisson",
        "threshold": 0.01
    },
    "besag_newell": {"neighbours": 10},
    "gam": {
        "min_radius": None,
        "max_radius": None,
        "radius_increment": None,
        "overlap_ratio": 0.5,
        "n_jobs": 1
    },
    "raster": {
        "cell_size": 0.0,
        "standardize": False
    }
}


def load_config(path: str | None = "cluster_config.json") -> dict:
    """Load scan configuration from JSON file.

    Loads user configuration file and merges with default configuration.
    User values override defaults for matching keys.

    Args:
        path: Path to configuration JSON file. If None or file doesn't exist,
            returns default configuration.

    Returns:
        dict: Merged configuration dictionary (a fresh copy).
    """
    merged = copy.deepcopy(_DEFAULT)
    p = pathlib.Path(path) if path else None
    if p and p.exists():
        with p.open("r", encoding="utf-8") as f:
            user = json.load(f)
        for k, v in user.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = v
    return merged


def scanner_kwargs(config: dict, method: str) -> dict:
    """Flatten the fitness, strategy and raster sections into scanner arguments.

    Args:
        config: Configuration from load_config().
        method: "gam" or "besag_newell".

    Returns:
        Keyword arguments for make_scanner().
    """
    kwargs = dict(config.get("fitness", {}))
    kwargs.update(config.get(method, {}))
    kwargs.update(config.get("raster", {}))
    return kwargs
