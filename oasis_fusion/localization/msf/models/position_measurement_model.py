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
Direct 3D position measurement model
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from oasis_fusion.localization.msf.msf_errors import ConversionFailedError
from oasis_fusion.localization.msf.msf_state import ComponentKey
from oasis_fusion.localization.msf.msf_state import MsfStateIndex


@dataclass(frozen=True)
class PositionReading:
    """
    Position sensor reading

    Fields:
        frame_id: Sensor frame identifier
        position_m: Measured position in meters, XYZ order
        position_cov: 3x3 covariance in m^2, row-major, empty if unknown
    """

    frame_id: str
    position_m: list[float]
    position_cov: list[float]


class PositionMeasurementModel:
    """
    Observes one 3-vector component of the state directly

    z = p, H = [0 .. I .. 0]
    """

    def __init__(self, index: MsfStateIndex, component: ComponentKey = "p") -> None:
        self._slice: slice = index.component_slice(component)
        if index.component(component).size != 3:
            raise ValueError("Position component must have size 3")

    @property
    def sensor_kind(self) -> str:
        return "position"

    @property
    def z_dim(self) -> int:
        return 3

    def frame_id(self, reading: PositionReading) -> str:
        return reading.frame_id

    def measurement_vector(self, reading: PositionReading) -> np.ndarray:
        z: np.ndarray = np.asarray(reading.position_m, dtype=float)
        if z.shape != (3,):
            raise ConversionFailedError("Position reading must have 3 entries")
        if not np.all(np.isfinite(z)):
            raise ConversionFailedError("Position reading contains non-finite values")
        return z

    def reading_covariance(self, reading: PositionReading) -> Optional[np.ndarray]:
        r_raw: np.ndarray = np.asarray(reading.position_cov, dtype=float)
        if r_raw.size != 9:
            return None
        r_candidate: np.ndarray = r_raw.reshape(3, 3)
        if not np.all(np.isfinite(r_candidate)):
            return None
        if np.any(np.diag(r_candidate) <= 0.0):
            return None
        r_sym: np.ndarray = 0.5 * (r_candidate + r_candidate.T)
        try:
            np.linalg.cholesky(r_sym)
        except np.linalg.LinAlgError:
            return None
        return r_sym

    def linearize(self, state: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        z_hat: np.ndarray = np.array(state[self._slice], dtype=float)
        h: np.ndarray = np.zeros((3, state.shape[0]), dtype=float)
        h[:, self._slice] = np.eye(3, dtype=float)
        return z_hat, h
