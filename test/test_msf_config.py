################################################################################
#
#  Copyright (C) 2026 Garrett Brown
#  This file is part of OASIS - https://github.com/eigendude/OASIS
#
#  SPDX-License-Identifier: Apache-2.0
#  See DOCS/LICENSING.md for more information.
#
################################################################################

from __future__ import annotations

import math
from pathlib import Path
from typing import Any
from typing import Optional

import numpy as np
import pytest

from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_config import MsfConfigError
from oasis_fusion.localization.msf.msf_config import load_msf_config


def _build_params() -> dict[str, Any]:
    return {
        "max_delay_window_sec": 0.5,
        "initial_uncertainty": [1.0] * 12,
        "noise_covariances": {
            "position": [0.25, 0.25, 1.0],
            "pressure": [[4.0]],
        },
    }


def test_config_from_dict_expands_diagonals() -> None:
    config: MsfConfig = MsfConfig.from_dict(_build_params())

    assert config.state_dim == 12
    assert np.array_equal(config.initial_uncertainty, np.eye(12))
    assert config.max_delay_window_ns == 500_000_000

    position_r: Optional[np.ndarray] = config.noise_covariance("position")
    assert position_r is not None
    assert np.array_equal(position_r, np.diag([0.25, 0.25, 1.0]))

    pressure_r: Optional[np.ndarray] = config.noise_covariance("pressure")
    assert pressure_r is not None
    assert np.array_equal(pressure_r, [[4.0]])

    assert config.noise_covariance("magnetometer") is None


def test_config_noise_covariance_returns_copy() -> None:
    config: MsfConfig = MsfConfig.from_dict(_build_params())

    position_r: Optional[np.ndarray] = config.noise_covariance("position")
    assert position_r is not None
    position_r[0, 0] = 100.0

    again: Optional[np.ndarray] = config.noise_covariance("position")
    assert again is not None
    assert again[0, 0] == 0.25


def test_config_defaults() -> None:
    config: MsfConfig = MsfConfig(
        max_delay_window_sec=1.0, initial_uncertainty=np.eye(3)
    )

    assert config.max_state_dim == 64
    assert config.max_measurement_dim == 16
    assert config.noise_covariances == {}


@pytest.mark.parametrize("missing", ["max_delay_window_sec", "initial_uncertainty"])
def test_config_requires_keys(missing: str) -> None:
    params: dict[str, Any] = _build_params()
    del params[missing]

    with pytest.raises(MsfConfigError):
        MsfConfig.from_dict(params)


def test_config_rejects_unknown_keys() -> None:
    params: dict[str, Any] = _build_params()
    params["max_delay_window"] = 1.0

    with pytest.raises(MsfConfigError):
        MsfConfig.from_dict(params)


@pytest.mark.parametrize("window", [0.0, -1.0, math.inf, math.nan])
def test_config_rejects_bad_window(window: float) -> None:
    with pytest.raises(MsfConfigError):
        MsfConfig(max_delay_window_sec=window, initial_uncertainty=np.eye(3))


def test_config_rejects_bad_matrices() -> None:
    with pytest.raises(MsfConfigError):
        MsfConfig(
            max_delay_window_sec=1.0,
            initial_uncertainty=np.array([[1.0, 0.5], [0.0, 1.0]]),
        )
    with pytest.raises(MsfConfigError):
        MsfConfig(max_delay_window_sec=1.0, initial_uncertainty=np.diag([1.0, -1.0]))
    with pytest.raises(MsfConfigError):
        MsfConfig(max_delay_window_sec=1.0, initial_uncertainty=np.ones((2, 3)))
    with pytest.raises(MsfConfigError):
        MsfConfig(
            max_delay_window_sec=1.0,
            initial_uncertainty=np.eye(3),
            noise_covariances={"position": np.zeros((3, 3))},
        )


def test_config_allows_singular_initial_uncertainty() -> None:
    config: MsfConfig = MsfConfig(
        max_delay_window_sec=1.0, initial_uncertainty=np.zeros((3, 3))
    )

    assert np.array_equal(config.initial_uncertainty, np.zeros((3, 3)))


def test_config_enforces_dimension_bounds() -> None:
    with pytest.raises(MsfConfigError):
        MsfConfig(
            max_delay_window_sec=1.0,
            initial_uncertainty=np.eye(5),
            max_state_dim=4,
        )
    with pytest.raises(MsfConfigError):
        MsfConfig(
            max_delay_window_sec=1.0,
            initial_uncertainty=np.eye(3),
            noise_covariances={"position": np.eye(3)},
            max_measurement_dim=2,
        )
    with pytest.raises(MsfConfigError):
        MsfConfig(
            max_delay_window_sec=1.0,
            initial_uncertainty=np.eye(3),
            max_measurement_dim=0,
        )


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path: Path = tmp_path / "msf.yaml"
    path.write_text(
        "max_delay_window_sec: 2.0\n"
        "initial_uncertainty: [1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1, 1]\n"
        "noise_covariances:\n"
        "  position:\n"
        "    - [1.0, 0.0, 0.0]\n"
        "    - [0.0, 1.0, 0.0]\n"
        "    - [0.0, 0.0, 2.0]\n"
        "max_measurement_dim: 8\n",
        encoding="utf-8",
    )

    config: MsfConfig = load_msf_config(path)

    assert config.max_delay_window_sec == 2.0
    assert config.state_dim == 12
    assert config.max_measurement_dim == 8

    position_r: Optional[np.ndarray] = config.noise_covariance("position")
    assert position_r is not None
    assert np.array_equal(position_r, np.diag([1.0, 1.0, 2.0]))


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(MsfConfigError):
        load_msf_config(tmp_path / "msf.json")
    with pytest.raises(MsfConfigError):
        load_msf_config(tmp_path / "missing.yaml")

    empty: Path = tmp_path / "empty.yml"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(MsfConfigError):
        load_msf_config(empty)

    broken: Path = tmp_path / "broken.yaml"
    broken.write_text("max_delay_window_sec: [1.0\n", encoding="utf-8")
    with pytest.raises(MsfConfigError):
        load_msf_config(broken)
