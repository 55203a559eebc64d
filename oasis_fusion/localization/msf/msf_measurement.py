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
Construction of typed, init and invalid measurements
"""

from __future__ import annotations

import math
from typing import Any
from typing import Optional

import numpy as np

from oasis_fusion.localization.msf.models.sensor_model import MsfSensorModel
from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import AlreadySetError
from oasis_fusion.localization.msf.msf_errors import ConversionFailedError
from oasis_fusion.localization.msf.msf_errors import DimensionMismatchError
from oasis_fusion.localization.msf.msf_errors import MeasurementError
from oasis_fusion.localization.msf.msf_errors import NotSetError
from oasis_fusion.localization.msf.msf_state import ComponentKey
from oasis_fusion.localization.msf.msf_state import MsfStateIndex
from oasis_fusion.localization.msf.msf_types import InitPayload
from oasis_fusion.localization.msf.msf_types import InvalidPayload
from oasis_fusion.localization.msf.msf_types import MeasurementKind
from oasis_fusion.localization.msf.msf_types import MsfMeasurement
from oasis_fusion.localization.msf.msf_types import TypedPayload


# Absolute tolerance for the PSD check on an initial covariance override
_PSD_TOL: float = 1.0e-9


def typed_measurement_from_reading(
    model: MsfSensorModel,
    reading: Any,
    t_meas: float,
    *,
    state_dim: int,
    config: MsfConfig,
) -> MsfMeasurement:
    """
    Convert a raw sensor reading into a typed measurement

    The reading covariance is used when it is valid, otherwise the configured
    covariance for the sensor kind. H is checked by linearizing the model at
    the zero state of the target dimension.
    """

    _validate_time(t_meas)

    z_dim: int = model.z_dim
    if z_dim <= 0 or z_dim > config.max_measurement_dim:
        raise DimensionMismatchError(
            f"{model.sensor_kind} measurement dimension {z_dim} is out of bounds"
        )
    if state_dim > config.max_state_dim:
        raise DimensionMismatchError(
            f"State dimension {state_dim} exceeds max_state_dim {config.max_state_dim}"
        )

    try:
        z: np.ndarray = np.asarray(model.measurement_vector(reading), dtype=float)
    except (TypeError, ValueError) as exc:
        raise ConversionFailedError(
            f"{model.sensor_kind} reading could not be converted"
        ) from exc
    if z.shape != (z_dim,):
        raise DimensionMismatchError(
            f"{model.sensor_kind} measurement must have {z_dim} entries"
        )
    if not np.all(np.isfinite(z)):
        raise ConversionFailedError(f"{model.sensor_kind} reading is not finite")

    try:
        r: Optional[np.ndarray] = model.reading_covariance(reading)
        frame_id: str = model.frame_id(reading)
    except (TypeError, ValueError) as exc:
        raise ConversionFailedError(
            f"{model.sensor_kind} reading metadata could not be converted"
        ) from exc
    if r is None:
        r = config.noise_covariance(model.sensor_kind)
    if r is None:
        raise ConversionFailedError(
            f"No usable noise covariance for {model.sensor_kind}"
        )
    r = np.asarray(r, dtype=float)
    if r.shape != (z_dim, z_dim):
        raise DimensionMismatchError(
            f"{model.sensor_kind} R must be {z_dim}x{z_dim}, got {r.shape}"
        )

    try:
        z_hat: np.ndarray
        h: np.ndarray
        z_hat, h = model.linearize(np.zeros(state_dim, dtype=float))
    except (ValueError, IndexError) as exc:
        raise DimensionMismatchError(
            f"{model.sensor_kind} model does not fit a state of size {state_dim}"
        ) from exc
    if h.shape != (z_dim, state_dim) or z_hat.shape != (z_dim,):
        raise DimensionMismatchError(
            f"{model.sensor_kind} H must be {z_dim}x{state_dim}, got {h.shape}"
        )

    return MsfMeasurement(
        t_meas=t_meas,
        kind=MeasurementKind.TYPED,
        payload=TypedPayload(
            sensor_kind=model.sensor_kind,
            frame_id=frame_id,
            model=model,
            z=z,
            r=r,
        ),
    )


def measurement_from_reading(
    model: MsfSensorModel,
    reading: Any,
    t_meas: float,
    *,
    state_dim: int,
    config: MsfConfig,
) -> MsfMeasurement:
    """Like typed_measurement_from_reading, but failures become invalid values."""
    try:
        return typed_measurement_from_reading(
            model, reading, t_meas, state_dim=state_dim, config=config
        )
    except MeasurementError as exc:
        return invalid_measurement(t_meas, exc)


def invalid_measurement(t_meas: float, error: MeasurementError) -> MsfMeasurement:
    # Keep the sentinel orderable even when the timestamp was the problem
    t_sort: float = t_meas if math.isfinite(t_meas) else 0.0
    return MsfMeasurement(
        t_meas=t_sort,
        kind=MeasurementKind.INVALID,
        payload=InvalidPayload(reason=error.kind, message=str(error)),
    )


class InitMeasurement:
    """
    Stages initial values for a subset of the state components

    Each initializing sensor fills the components it knows about and leaves
    the rest unflagged, so several init measurements can seed one state
    without overwriting each other. A flag is set by the setter and must be
    cleared before the component can be set again.
    """

    def __init__(
        self,
        index: MsfStateIndex,
        contains_initial_sensor_readings: bool = False,
    ) -> None:
        self._index: MsfStateIndex = index
        self._contains_initial_sensor_readings: bool = contains_initial_sensor_readings
        self._values: dict[int, np.ndarray] = {}
        self._flags: list[bool] = [False] * index.component_count
        self._covariance: Optional[np.ndarray] = None
        self._gyro_m: np.ndarray = np.zeros(3, dtype=float)
        self._accel_m: np.ndarray = np.zeros(3, dtype=float)

    @property
    def contains_initial_sensor_readings(self) -> bool:
        return self._contains_initial_sensor_readings

    def set_component_init_value(self, component: ComponentKey, value: Any) -> None:
        number: int = self._index.component_number(component)
        if self._flags[number]:
            raise AlreadySetError(
                f"Init value for component {component} is already set"
            )
        size: int = self._index.component(number).size
        array: np.ndarray = np.array(value, dtype=float).reshape(-1)
        if array.shape != (size,):
            raise DimensionMismatchError(
                f"Init value for component {component} must have {size} entries"
            )
        if not np.all(np.isfinite(array)):
            raise ConversionFailedError(
                f"Init value for component {component} is not finite"
            )
        self._values[number] = array
        self._flags[number] = True

    def clear_component_init_value(self, component: ComponentKey) -> None:
        number: int = self._index.component_number(component)
        self._flags[number] = False

    def has_component_init_value(self, component: ComponentKey) -> bool:
        return self._flags[self._index.component_number(component)]

    def get_component_init_value(self, component: ComponentKey) -> np.ndarray:
        number: int = self._index.component_number(component)
        if not self._flags[number]:
            raise NotSetError(f"Init value for component {component} is not set")
        return self._values[number].copy()

    def set_initial_covariance(self, covariance: Any) -> None:
        """Seed flagged components from this covariance instead of the config."""
        n: int = self._index.total_dim
        matrix: np.ndarray = np.array(covariance, dtype=float)
        if matrix.shape != (n, n):
            raise DimensionMismatchError(f"Initial covariance must be {n}x{n}")
        if not np.all(np.isfinite(matrix)):
            raise ConversionFailedError("Initial covariance is not finite")
        matrix = 0.5 * (matrix + matrix.T)
        if float(np.min(np.linalg.eigvalsh(matrix))) < -_PSD_TOL:
            raise ConversionFailedError(
                "Initial covariance is not positive semi-definite"
            )
        self._covariance = matrix

    def set_gyro_reading(self, gyro_m: Any) -> None:
        self._gyro_m = _vector3(gyro_m, "Gyro reading")

    def set_accel_reading(self, accel_m: Any) -> None:
        self._accel_m = _vector3(accel_m, "Accel reading")

    def build(self, t_meas: float) -> MsfMeasurement:
        """Freeze the staged values into an init measurement."""
        _validate_time(t_meas)
        values: dict[int, np.ndarray] = {
            number: self._values[number].copy()
            for number, flagged in enumerate(self._flags)
            if flagged
        }
        covariance: Optional[np.ndarray] = None
        if self._covariance is not None:
            covariance = self._covariance.copy()
        return MsfMeasurement(
            t_meas=t_meas,
            kind=MeasurementKind.INIT,
            payload=InitPayload(
                values=values,
                covariance=covariance,
                contains_initial_sensor_readings=self._contains_initial_sensor_readings,
                gyro_m=self._gyro_m.copy(),
                accel_m=self._accel_m.copy(),
            ),
        )


def _validate_time(t_meas: float) -> None:
    if not math.isfinite(t_meas):
        raise ConversionFailedError("Measurement timestamp is not finite")


def _vector3(value: Any, name: str) -> np.ndarray:
    array: np.ndarray = np.array(value, dtype=float).reshape(-1)
    if array.shape != (3,):
        raise DimensionMismatchError(f"{name} must have 3 entries")
    if not np.all(np.isfinite(array)):
        raise ConversionFailedError(f"{name} is not finite")
    return array
