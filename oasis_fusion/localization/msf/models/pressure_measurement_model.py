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
Barometric height measurement model
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from oasis_fusion.localization.msf.msf_errors import ConversionFailedError
from oasis_fusion.localization.msf.msf_state import ComponentKey
from oasis_fusion.localization.msf.msf_state import MsfStateIndex


# Largest plausible absolute height in meters
_MAX_ABS_HEIGHT_M: float = 100_000.0


@dataclass(frozen=True)
class PressureReading:
    """
    Pressure-derived height reading

    Fields:
        frame_id: Sensor frame identifier
        height_m: Height above the reference level in meters
        height_var: Height variance in m^2, zero or negative if unknown
    """

    frame_id: str
    height_m: float
    height_var: float


class PressureMeasurementModel:
    """
    Observes the vertical position, optionally offset by a height bias

    z = p_z + b_p
    """

    def __init__(
        self,
        index: MsfStateIndex,
        position_component: ComponentKey = "p",
        bias_component: Optional[ComponentKey] = None,
    ) -> None:
        position_slice: slice = index.component_slice(position_component)
        if index.component(position_component).size != 3:
            raise ValueError("Position component must have size 3")
        self._height_index: int = position_slice.start + 2

        self._bias_index: Optional[int] = None
        if bias_component is not None:
            if index.component(bias_component).size != 1:
                raise ValueError("Height bias component must have size 1")
            self._bias_index = index.component_slice(bias_component).start

    @property
    def sensor_kind(self) -> str:
        return "pressure"

    @property
    def z_dim(self) -> int:
        return 1

    def frame_id(self, reading: PressureReading) -> str:
        return reading.frame_id

    def measurement_vector(self, reading: PressureReading) -> np.ndarray:
        height_m: float = float(reading.height_m)
        if not math.isfinite(height_m):
            raise ConversionFailedError("Height reading is not finite")
        if abs(height_m) > _MAX_ABS_HEIGHT_M:
            raise ConversionFailedError(f"Height reading {height_m} is out of range")
        return np.array([height_m], dtype=float)

    def reading_covariance(self, reading: PressureReading) -> Optional[np.ndarray]:
        height_var: float = float(reading.height_var)
        if not math.isfinite(height_var) or height_var <= 0.0:
            return None
        return np.array([[height_var]], dtype=float)

    def linearize(self, state: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        h: np.ndarray = np.zeros((1, state.shape[0]), dtype=float)
        h[0, self._height_index] = 1.0
        z_hat: float = float(state[self._height_index])
        if self._bias_index is not None:
            h[0, self._bias_index] = 1.0
            z_hat += float(state[self._bias_index])
        return np.array([z_hat], dtype=float), h
