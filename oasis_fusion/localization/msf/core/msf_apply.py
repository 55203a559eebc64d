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
Measurement dispatch and delay resolution
"""

from __future__ import annotations

from typing import NoReturn
from typing import Optional
from typing import Protocol
from typing import cast

import numpy as np

from oasis_fusion.localization.msf.core.correction_engine import CorrectionEngine
from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import DimensionMismatchError
from oasis_fusion.localization.msf.msf_errors import InvalidMeasurementError
from oasis_fusion.localization.msf.msf_errors import TooOldError
from oasis_fusion.localization.msf.msf_state import MsfStateIndex
from oasis_fusion.localization.msf.msf_state import StateSnapshot
from oasis_fusion.localization.msf.msf_types import CorrectionResult
from oasis_fusion.localization.msf.msf_types import InitPayload
from oasis_fusion.localization.msf.msf_types import InvalidPayload
from oasis_fusion.localization.msf.msf_types import MeasurementKind
from oasis_fusion.localization.msf.msf_types import MsfMatrix
from oasis_fusion.localization.msf.msf_types import MsfMeasurement
from oasis_fusion.localization.msf.msf_types import MsfUpdateData
from oasis_fusion.localization.msf.msf_types import TypedPayload


class MsfContext(Protocol):
    """
    Facilities a measurement needs from the processing context

    reapply_from() is the contract with the propagation stage: after a
    correction lands on a historical snapshot, everything after t_meas must
    be brought forward to the head again.
    """

    config: MsfConfig
    index: MsfStateIndex
    engine: CorrectionEngine

    def current_head(self) -> StateSnapshot: ...

    def find_at_or_before(self, t_meas: float) -> Optional[StateSnapshot]: ...

    def too_old(self, t_meas: float) -> bool: ...

    def reapply_from(self, t_meas: float) -> None: ...


def resolve_snapshot(
    t_meas: float, context: MsfContext
) -> tuple[StateSnapshot, bool]:
    """Return the snapshot a measurement applies to and whether it is delayed."""
    head: StateSnapshot = context.current_head()
    if t_meas >= head.t_meas:
        return head, False

    if context.too_old(t_meas):
        raise TooOldError(
            f"Measurement at {t_meas} predates the retained window "
            f"ending at head {head.t_meas}"
        )
    snapshot: Optional[StateSnapshot] = context.find_at_or_before(t_meas)
    if snapshot is None:
        raise TooOldError(f"No retained snapshot at or before {t_meas}")
    return snapshot, True


def apply_measurement(
    measurement: MsfMeasurement, context: MsfContext
) -> MsfUpdateData:
    """
    Apply a measurement to the snapshot matching its timestamp

    Delayed measurements are applied to the nearest retained snapshot at or
    before their time, then the context is asked to reapply forward from
    the measurement time.
    """

    if measurement.kind == MeasurementKind.INVALID:
        _raise_invalid(measurement)

    snapshot: StateSnapshot
    delayed: bool
    snapshot, delayed = resolve_snapshot(measurement.t_meas, context)
    update: MsfUpdateData = _dispatch(measurement, snapshot, context, delayed)
    if delayed:
        context.reapply_from(measurement.t_meas)
    return update


def apply_to_snapshot(
    measurement: MsfMeasurement, snapshot: StateSnapshot, context: MsfContext
) -> MsfUpdateData:
    """Apply a measurement to an explicitly chosen snapshot."""
    if measurement.kind == MeasurementKind.INVALID:
        _raise_invalid(measurement)
    return _dispatch(measurement, snapshot, context, delayed=False)


def _dispatch(
    measurement: MsfMeasurement,
    snapshot: StateSnapshot,
    context: MsfContext,
    delayed: bool,
) -> MsfUpdateData:
    if measurement.kind == MeasurementKind.TYPED:
        typed_payload: TypedPayload = cast(TypedPayload, measurement.payload)
        return _apply_typed(measurement, typed_payload, snapshot, context, delayed)
    if measurement.kind == MeasurementKind.INIT:
        init_payload: InitPayload = cast(InitPayload, measurement.payload)
        return _apply_init(measurement, init_payload, snapshot, context, delayed)
    _raise_invalid(measurement)


def _raise_invalid(measurement: MsfMeasurement) -> NoReturn:
    message: str = "Applied an invalid measurement"
    if isinstance(measurement.payload, InvalidPayload):
        message = (
            f"Applied an invalid measurement ({measurement.payload.reason.value}: "
            f"{measurement.payload.message})"
        )
    raise InvalidMeasurementError(message)


def _apply_typed(
    measurement: MsfMeasurement,
    payload: TypedPayload,
    snapshot: StateSnapshot,
    context: MsfContext,
    delayed: bool,
) -> MsfUpdateData:
    z_hat: np.ndarray
    h: np.ndarray
    try:
        z_hat, h = payload.model.linearize(snapshot.state)
    except (ValueError, IndexError) as exc:
        raise DimensionMismatchError(
            f"{payload.sensor_kind} model does not fit the target state"
        ) from exc
    z_hat = np.asarray(z_hat, dtype=float).reshape(-1)
    if z_hat.shape != payload.z.shape:
        raise DimensionMismatchError(
            f"{payload.sensor_kind} prediction must have {payload.z_dim} entries"
        )
    residual: np.ndarray = payload.z - z_hat

    result: CorrectionResult = context.engine.apply_correction(
        snapshot, h, residual, payload.r
    )

    return MsfUpdateData(
        sensor=payload.sensor_kind,
        frame_id=payload.frame_id,
        t_meas=measurement.t_meas,
        accepted=True,
        reject_reason="",
        z_dim=payload.z_dim,
        nu=residual.tolist(),
        r=MsfMatrix.from_array(payload.r),
        s=MsfMatrix.from_array(result.s),
        maha_d2=result.maha_d2,
        delayed=delayed,
        t_target=snapshot.t_meas,
    )


def _apply_init(
    measurement: MsfMeasurement,
    payload: InitPayload,
    snapshot: StateSnapshot,
    context: MsfContext,
    delayed: bool,
) -> MsfUpdateData:
    index: MsfStateIndex = context.index
    n: int = index.total_dim
    if snapshot.state_dim != n or snapshot.covariance.shape != (n, n):
        raise DimensionMismatchError(
            f"Snapshot does not match the {n}-dimensional state layout"
        )

    seed: np.ndarray = context.config.initial_uncertainty
    if payload.covariance is not None:
        seed = payload.covariance
    if seed.shape != (n, n):
        raise DimensionMismatchError(f"Initial covariance must be {n}x{n}")

    # Work on a copy so a bad component leaves the snapshot untouched
    candidate: StateSnapshot = snapshot.copy()
    for number in payload.flagged_components:
        block: slice = index.component_slice(number)
        value: np.ndarray = payload.values[number]
        if value.shape != (block.stop - block.start,):
            raise DimensionMismatchError(
                f"Init value for component {number} does not match the layout"
            )
        candidate.state[block] = value
        candidate.covariance[block, :] = 0.0
        candidate.covariance[:, block] = 0.0
        candidate.covariance[block, block] = seed[block, block]
        candidate.reset_flags[number] = True

    if payload.contains_initial_sensor_readings:
        candidate.gyro_m = payload.gyro_m.copy()
        candidate.accel_m = payload.accel_m.copy()

    snapshot.assign(candidate)

    return MsfUpdateData(
        sensor="init",
        frame_id="",
        t_meas=measurement.t_meas,
        accepted=True,
        reject_reason="",
        z_dim=0,
        nu=[],
        r=MsfMatrix.empty(),
        s=MsfMatrix.empty(),
        maha_d2=0.0,
        delayed=delayed,
        t_target=snapshot.t_meas,
    )
