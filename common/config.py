from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from common.types import Bounds
from interp.idw import IDWOptions


DEFAULT_CONFIG_PATH = "config/params.yaml"

DEFAULTS: Dict[str, Any] = {
    # Ghana extent
    "bounds": {"north": 11.2, "south": 4.74, "east": 1.2, "west": -3.3},
    "grid": {"resolution": 0.1},
    "idw": {"power": 2.0, "max_distance": 10.0, "min_points": 1},
    "render": {"opacity": 0.8, "palette": ["#ffffb2", "#bd0026"]},
    "cache": {"capacity": 20},
    "server": {"host": "0.0.0.0", "port": 8000, "allow_origins": ["*"]},
    "logging": {"level": "INFO"},
}


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load YAML params merged over DEFAULTS.

    Path precedence: explicit `path`, env OVERLAY_CONFIG, config/params.yaml.
    A missing file yields the defaults.
    """
    path = path or os.environ.get("OVERLAY_CONFIG") or DEFAULT_CONFIG_PATH
    if not Path(path).exists():
        return copy.deepcopy(DEFAULTS)
    with open(path, "r") as f:
        user = yaml.safe_load(f) or {}
    if not isinstance(user, Mapping):
        raise ValueError(f"Config root must be a mapping: {path}")
    return _deep_merge(DEFAULTS, user)


def bounds_from_config(P: Mapping[str, Any]) -> Bounds:
    return Bounds.from_mapping(P.get("bounds", DEFAULTS["bounds"]))


def idw_options_from_config(P: Mapping[str, Any]) -> IDWOptions:
    c = P.get("idw", {})
    return IDWOptions(
        power=float(c.get("power", 2.0)),
        max_distance=c.get("max_distance", 10.0),
        min_points=int(c.get("min_points", 1)),
    )
