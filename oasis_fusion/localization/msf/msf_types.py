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
Types and helpers for MSF measurement processing
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional
from typing import Union

import numpy as np

from oasis_fusion.localization.msf.models.sensor_model import MsfSensorModel
from oasis_fusion.localization.msf.msf_errors import MeasurementErrorKind


class MeasurementKind(enum.Enum):
    """
    Enumerates the closed set of measurement variants

    Attributes:
        TYPED: Sensor reading converted into correction inputs
        INIT: Staged initialization of flagged state components
        INVALID: Sentinel for a reading that failed conversion
    """

    TYPED = "typed"
    INIT = "init"
    INVALID = "invalid"


@dataclass(frozen=True)
class TypedPayload:
    """
    Sensor measurement payload

    Fields:
        sensor_kind: Sensor kind name used for reporting and default noise
        frame_id: Sensor frame identifier
        model: Sensor model used to linearize at the target state
        z: Measurement vector, length z_dim
        r: Measurement noise covariance, z_dim x z_dim
    """

    sensor_kind: str
    frame_id: str
    model: MsfSensorModel
    z: np.ndarray
    r: np.ndarray

    @property
    def z_dim(self) -> int:
        return int(self.z.shape[0])


@dataclass(frozen=True)
class InitPayload:
    """
    Staged initialization payload

    Fields:
        values: Init value per component number, present only when flagged
        covariance: Optional NxN covariance whose flagged blocks are seeded
        contains_initial_sensor_readings: True when gyro_m and accel_m are seeds
        gyro_m: Raw gyro reading in rad/s, XYZ order
        accel_m: Raw accel reading in m/s^2, XYZ order
    """

    values: dict[int, np.ndarray]
    covariance: Optional[np.ndarray]
    contains_initial_sensor_readings: bool
    gyro_m: np.ndarray
    accel_m: np.ndarray

    @property
    def flagged_components(self) -> list[int]:
        return sorted(self.values)


@dataclass(frozen=True)
class InvalidPayload:
    """
    Payload of a measurement that failed conversion

    Fields:
        reason: Error kind raised during conversion
        message: Human readable description of the failure
    """

    reason: MeasurementErrorKind
    message: str


MsfMeasurementPayload = Union[
    TypedPayload,
    InitPayload,
    InvalidPayload,
]


@dataclass(frozen=True)
class MsfMeasurement:
    """
    Time-stamped measurement in the common filter timeline

    Fields:
        t_meas: Measurement timestamp in seconds
        kind: Variant tag for dispatching apply
        payload: Variant data for the selected kind
    """

    t_meas: float
    kind: MeasurementKind
    payload: MsfMeasurementPayload


@dataclass(frozen=True)
class CorrectionResult:
    """
    Ephemeral result of one Kalman correction

    Fields:
        gain: Kalman gain K, N x m
        delta: State correction K * res, length N
        covariance: Joseph-form updated covariance, N x N
        s: Innovation covariance H P H^T + R, m x m
        maha_d2: Squared Mahalanobis distance of the residual
    """

    gain: np.ndarray
    delta: np.ndarray
    covariance: np.ndarray
    s: np.ndarray
    maha_d2: float


@dataclass(frozen=True)
class MsfMatrix:
    """
    Row-major matrix data used by update reporting

    Fields:
        rows: Number of rows in the matrix
        cols: Number of columns in the matrix
        data: Row-major matrix entries
    """

    rows: int
    cols: int
    data: list[float]

    @staticmethod
    def from_array(matrix: np.ndarray) -> MsfMatrix:
        rows: int = int(matrix.shape[0])
        cols: int = int(matrix.shape[1]) if matrix.ndim > 1 else 1
        return MsfMatrix(rows=rows, cols=cols, data=matrix.flatten().tolist())

    @staticmethod
    def empty() -> MsfMatrix:
        return MsfMatrix(rows=0, cols=0, data=[])


@dataclass(frozen=True)
class MsfUpdateData:
    """
    Generic update report payload

    Fields:
        sensor: Sensor kind such as position, pressure or init
        frame_id: Measurement frame identifier
        t_meas: Measurement timestamp in seconds
        accepted: True when the update is applied
        reject_reason: Reason for rejection when not accepted
        z_dim: Dimension of the measurement vector
        nu: Residual vector values
        r: Measurement noise covariance used for the update
        s: Innovation covariance including measurement noise
        maha_d2: Squared Mahalanobis distance of the residual
        delayed: True when applied to a historical snapshot
        t_target: Timestamp of the snapshot the update was applied to
    """

    sensor: str
    frame_id: str
    t_meas: float
    accepted: bool
    reject_reason: str
    z_dim: int
    nu: list[float]
    r: MsfMatrix
    s: MsfMatrix
    maha_d2: float
    delayed: bool
    t_target: Optional[float]
