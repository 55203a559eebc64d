################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

"""
Configuration data for the MSF measurement core
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any
from typing import Mapping
from typing import Optional

import numpy as np
import yaml


# Nanoseconds per second for time conversions
_NS_PER_S: int = 1_000_000_000

# Default upper bound on the state dimension
MAX_STATE_DIM: int = 64

# Default upper bound on a single measurement dimension
MAX_MEASUREMENT_DIM: int = 16

# Absolute tolerance for symmetry and PSD checks on configured matrices
_MATRIX_TOL: float = 1.0e-9


class MsfConfigError(Exception):
    """Raised when MSF configuration validation or loading fails."""


@dataclass(frozen=True)
class MsfConfig:
    """
    Shared MSF configuration values

    Fields:
        max_delay_window_sec: Span in seconds of retained state history
        initial_uncertainty: NxN covariance seeded on init and at startup
        noise_covariances: Default measurement covariance R per sensor kind
        max_state_dim: Upper bound on the state dimension
        max_measurement_dim: Upper bound on a single measurement dimension
        max_delay_window_ns: Span in nanoseconds of retained state history
    """

    max_delay_window_sec: float
    initial_uncertainty: np.ndarray
    noise_covariances: dict[str, np.ndarray] = field(default_factory=dict)
    max_state_dim: int = MAX_STATE_DIM
    max_measurement_dim: int = MAX_MEASUREMENT_DIM

    max_delay_window_ns: int = field(init=False)

    def __post_init__(self) -> None:
        """Validate the configuration and derive nanosecond thresholds."""
        if not math.isfinite(self.max_delay_window_sec):
            raise MsfConfigError("max_delay_window_sec must be finite")
        if self.max_delay_window_sec <= 0.0:
            raise MsfConfigError("max_delay_window_sec must be positive")
        _require_positive_int(self.max_state_dim, "max_state_dim")
        _require_positive_int(self.max_measurement_dim, "max_measurement_dim")

        initial: np.ndarray = _as_covariance(
            self.initial_uncertainty, "initial_uncertainty", allow_singular=True
        )
        if initial.shape[0] > self.max_state_dim:
            raise MsfConfigError("initial_uncertainty exceeds max_state_dim")
        object.__setattr__(self, "initial_uncertainty", initial)

        noise: dict[str, np.ndarray] = {}
        sensor_kind: str
        for sensor_kind, matrix in self.noise_covariances.items():
            r: np.ndarray = _as_covariance(
                matrix, f"noise_covariances.{sensor_kind}", allow_singular=False
            )
            if r.shape[0] > self.max_measurement_dim:
                raise MsfConfigError(
                    f"noise_covariances.{sensor_kind} exceeds max_measurement_dim"
                )
            noise[str(sensor_kind)] = r
        object.__setattr__(self, "noise_covariances", noise)

        object.__setattr__(
            self,
            "max_delay_window_ns",
            int(round(self.max_delay_window_sec * _NS_PER_S)),
        )

    @property
    def state_dim(self) -> int:
        return int(self.initial_uncertainty.shape[0])

    def noise_covariance(self, sensor_kind: str) -> Optional[np.ndarray]:
        """Return a copy of the configured R for a sensor kind, if any."""
        r: Optional[np.ndarray] = self.noise_covariances.get(sensor_kind)
        if r is None:
            return None
        return r.copy()

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> MsfConfig:
        """Construct a configuration from a nested mapping."""
        if not isinstance(params, Mapping):
            raise MsfConfigError("MSF parameters must be a mapping")
        if "max_delay_window_sec" not in params:
            raise MsfConfigError("max_delay_window_sec must be set")
        if "initial_uncertainty" not in params:
            raise MsfConfigError("initial_uncertainty must be set")

        unknown: set[str] = set(params) - {
            "max_delay_window_sec",
            "initial_uncertainty",
            "noise_covariances",
            "max_state_dim",
            "max_measurement_dim",
        }
        if unknown:
            raise MsfConfigError(f"Unknown MSF parameters: {sorted(unknown)}")

        noise_raw: Any = params.get("noise_covariances", {}) or {}
        if not isinstance(noise_raw, Mapping):
            raise MsfConfigError("noise_covariances must be a mapping")

        try:
            window_sec: float = float(params["max_delay_window_sec"])
        except (TypeError, ValueError) as exc:
            raise MsfConfigError("max_delay_window_sec must be a number") from exc

        return cls(
            max_delay_window_sec=window_sec,
            initial_uncertainty=_matrix_from_value(
                params["initial_uncertainty"], "initial_uncertainty"
            ),
            noise_covariances={
                str(kind): _matrix_from_value(value, f"noise_covariances.{kind}")
                for kind, value in noise_raw.items()
            },
            max_state_dim=params.get("max_state_dim", MAX_STATE_DIM),
            max_measurement_dim=params.get("max_measurement_dim", MAX_MEASUREMENT_DIM),
        )


def load_msf_config(path: str | os.PathLike[str]) -> MsfConfig:
    """Load an MSF configuration from a YAML file."""
    path_obj: Path = Path(os.fspath(path))
    if path_obj.suffix.lower() not in {".yaml", ".yml"}:
        raise MsfConfigError("Path must end with .yaml or .yml")

    try:
        text: str = path_obj.read_text(encoding="utf-8")
        data: Any = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as exc:
        raise MsfConfigError(f"Failed to load MSF config from {path_obj}") from exc

    if data is None:
        raise MsfConfigError(f"MSF config {path_obj} is empty")

    return MsfConfig.from_dict(data)


def _require_positive_int(value: Any, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise MsfConfigError(f"{name} must be an int")
    if value <= 0:
        raise MsfConfigError(f"{name} must be positive")


def _matrix_from_value(value: Any, name: str) -> np.ndarray:
    """Accept a full matrix or a diagonal list."""
    try:
        array: np.ndarray = np.asarray(value, dtype=float)
    except (TypeError, ValueError) as exc:
        raise MsfConfigError(f"{name} must be numeric") from exc
    if array.ndim == 1:
        return np.diag(array)
    return array


def _as_covariance(value: Any, name: str, *, allow_singular: bool) -> np.ndarray:
    matrix: np.ndarray = np.array(value, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise MsfConfigError(f"{name} must be a square matrix")
    if matrix.shape[0] == 0:
        raise MsfConfigError(f"{name} must not be empty")
    if not np.all(np.isfinite(matrix)):
        raise MsfConfigError(f"{name} must contain finite values")
    if not np.allclose(matrix, matrix.T, atol=_MATRIX_TOL):
        raise MsfConfigError(f"{name} must be symmetric")

    matrix = 0.5 * (matrix + matrix.T)
    if allow_singular:
        min_eig: float = float(np.min(np.linalg.eigvalsh(matrix)))
        if min_eig < -_MATRIX_TOL:
            raise MsfConfigError(f"{name} must be positive semi-definite")
    else:
        try:
            np.linalg.cholesky(matrix)
        except np.linalg.LinAlgError as exc:
            raise MsfConfigError(f"{name} must be positive definite") from exc

    return matrix
