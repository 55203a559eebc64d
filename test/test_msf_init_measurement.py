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
from typing import cast

import numpy as np
import pytest

from oasis_fusion.localization.msf.core.msf_core import MsfCore
from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import AlreadySetError
from oasis_fusion.localization.msf.msf_errors import ConversionFailedError
from oasis_fusion.localization.msf.msf_errors import DimensionMismatchError
from oasis_fusion.localization.msf.msf_errors import NotSetError
from oasis_fusion.localization.msf.msf_measurement import InitMeasurement
from oasis_fusion.localization.msf.msf_state import MsfStateIndex
from oasis_fusion.localization.msf.msf_state import StateSnapshot
from oasis_fusion.localization.msf.msf_state import default_index
from oasis_fusion.localization.msf.msf_types import InitPayload
from oasis_fusion.localization.msf.msf_types import MeasurementKind
from oasis_fusion.localization.msf.msf_types import MsfMeasurement
from oasis_fusion.localization.msf.msf_types import MsfUpdateData


def _build_config() -> MsfConfig:
    return MsfConfig(
        max_delay_window_sec=1.0,
        initial_uncertainty=np.diag(np.arange(1.0, 13.0)),
    )


def _build_core() -> MsfCore:
    core: MsfCore = MsfCore(_build_config())
    # Fill the covariance so cleared cross terms are observable
    head: StateSnapshot = core.current_head()
    head.covariance = np.full((12, 12), 0.25) + np.eye(12)
    return core


def test_init_set_get_clear() -> None:
    init: InitMeasurement = InitMeasurement(default_index())

    assert not init.has_component_init_value("p")
    with pytest.raises(NotSetError):
        init.get_component_init_value("p")

    init.set_component_init_value("p", [1.0, 2.0, 3.0])

    assert init.has_component_init_value("p")
    assert init.has_component_init_value(0)
    assert np.array_equal(init.get_component_init_value("p"), [1.0, 2.0, 3.0])

    init.clear_component_init_value("p")

    assert not init.has_component_init_value("p")
    with pytest.raises(NotSetError):
        init.get_component_init_value("p")


def test_init_rejects_second_set_until_cleared() -> None:
    init: InitMeasurement = InitMeasurement(default_index())
    init.set_component_init_value("v", [0.0, 0.0, 1.0])

    with pytest.raises(AlreadySetError):
        init.set_component_init_value("v", [0.0, 0.0, 2.0])

    assert np.array_equal(init.get_component_init_value("v"), [0.0, 0.0, 1.0])

    init.clear_component_init_value("v")
    init.clear_component_init_value("v")
    init.set_component_init_value("v", [0.0, 0.0, 2.0])

    assert np.array_equal(init.get_component_init_value("v"), [0.0, 0.0, 2.0])


def test_init_validates_values() -> None:
    init: InitMeasurement = InitMeasurement(default_index())

    with pytest.raises(DimensionMismatchError):
        init.set_component_init_value("p", [1.0, 2.0])
    with pytest.raises(ConversionFailedError):
        init.set_component_init_value("p", [1.0, math.nan, 3.0])
    with pytest.raises(DimensionMismatchError):
        init.set_component_init_value("unknown", [1.0, 2.0, 3.0])
    with pytest.raises(DimensionMismatchError):
        init.set_component_init_value(4, [1.0, 2.0, 3.0])

    assert not init.has_component_init_value("p")


def test_init_build_copies_flagged_values_only() -> None:
    init: InitMeasurement = InitMeasurement(default_index())
    init.set_component_init_value("p", [1.0, 2.0, 3.0])
    init.set_component_init_value("b_w", [0.1, 0.2, 0.3])
    init.clear_component_init_value("b_w")

    measurement: MsfMeasurement = init.build(4.0)

    assert measurement.kind == MeasurementKind.INIT
    assert measurement.t_meas == 4.0
    payload: InitPayload = cast(InitPayload, measurement.payload)
    assert payload.flagged_components == [0]

    # Later staging does not leak into the built measurement
    init.clear_component_init_value("p")
    init.set_component_init_value("p", [9.0, 9.0, 9.0])

    assert np.array_equal(payload.values[0], [1.0, 2.0, 3.0])


def test_init_build_rejects_non_finite_time() -> None:
    init: InitMeasurement = InitMeasurement(default_index())

    with pytest.raises(ConversionFailedError):
        init.build(math.inf)


def test_init_apply_seeds_flagged_components() -> None:
    core: MsfCore = _build_core()
    index: MsfStateIndex = core.index
    init: InitMeasurement = InitMeasurement(index)
    init.set_component_init_value("v", [1.0, -1.0, 0.5])

    update: MsfUpdateData = core.process_measurement(init.build(0.0))
    head: StateSnapshot = core.current_head()
    block: slice = index.component_slice("v")

    assert update.accepted
    assert update.sensor == "init"
    assert np.array_equal(head.state[block], [1.0, -1.0, 0.5])
    assert np.array_equal(head.reset_flags, [False, True, False, False])

    # The block is seeded from the configured uncertainty, cross terms cleared
    assert np.array_equal(head.covariance[block, block], np.diag([4.0, 5.0, 6.0]))
    assert np.all(head.covariance[block, :3] == 0.0)
    assert np.all(head.covariance[:3, block] == 0.0)
    assert np.all(head.covariance[block, 6:] == 0.0)

    # Unflagged components are untouched
    assert np.all(head.state[:3] == 0.0)
    assert head.covariance[0, 1] == 0.25
    assert head.covariance[0, 9] == 0.25


def test_init_disjoint_components_commute() -> None:
    index: MsfStateIndex = default_index()
    init_p: InitMeasurement = InitMeasurement(index)
    init_p.set_component_init_value("p", [1.0, 2.0, 3.0])
    init_b: InitMeasurement = InitMeasurement(index)
    init_b.set_component_init_value("b_a", [0.01, 0.02, 0.03])

    core_pb: MsfCore = _build_core()
    core_pb.process_measurement(init_p.build(0.0))
    core_pb.process_measurement(init_b.build(0.0))

    core_bp: MsfCore = _build_core()
    core_bp.process_measurement(init_b.build(0.0))
    core_bp.process_measurement(init_p.build(0.0))

    head_pb: StateSnapshot = core_pb.current_head()
    head_bp: StateSnapshot = core_bp.current_head()

    assert np.array_equal(head_pb.state, head_bp.state)
    assert np.array_equal(head_pb.covariance, head_bp.covariance)
    assert np.array_equal(head_pb.reset_flags, [True, False, False, True])


def test_init_covariance_override() -> None:
    core: MsfCore = _build_core()
    init: InitMeasurement = InitMeasurement(core.index)
    init.set_component_init_value("p", [0.0, 0.0, 0.0])
    init.set_initial_covariance(np.eye(12) * 7.0)

    core.process_measurement(init.build(0.0))
    head: StateSnapshot = core.current_head()

    assert np.array_equal(head.covariance[:3, :3], np.eye(3) * 7.0)
    # Unflagged blocks keep their previous values
    assert head.covariance[3, 3] == 1.25


def test_init_sensor_readings_are_optional() -> None:
    index: MsfStateIndex = default_index()

    core: MsfCore = _build_core()
    without_seed: InitMeasurement = InitMeasurement(index)
    without_seed.set_component_init_value("b_w", [0.0, 0.0, 0.0])
    without_seed.set_gyro_reading([0.1, 0.2, 0.3])
    core.process_measurement(without_seed.build(0.0))

    assert np.array_equal(core.current_head().gyro_m, np.zeros(3))

    with_seed: InitMeasurement = InitMeasurement(
        index, contains_initial_sensor_readings=True
    )
    with_seed.set_component_init_value("b_a", [0.0, 0.0, 0.0])
    with_seed.set_gyro_reading([0.1, 0.2, 0.3])
    with_seed.set_accel_reading([0.0, 0.0, 9.81])
    core.process_measurement(with_seed.build(0.0))

    assert np.array_equal(core.current_head().gyro_m, [0.1, 0.2, 0.3])
    assert np.array_equal(core.current_head().accel_m, [0.0, 0.0, 9.81])


def test_core_is_initialized_after_all_components_seeded() -> None:
    core: MsfCore = _build_core()
    index: MsfStateIndex = core.index

    first: InitMeasurement = InitMeasurement(index)
    first.set_component_init_value("p", [0.0, 0.0, 0.0])
    first.set_component_init_value("v", [0.0, 0.0, 0.0])
    core.process_measurement(first.build(0.0))

    assert not core.is_initialized()

    second: InitMeasurement = InitMeasurement(index)
    second.set_component_init_value("b_w", [0.0, 0.0, 0.0])
    second.set_component_init_value("b_a", [0.0, 0.0, 0.0])
    core.process_measurement(second.build(0.0))

    assert core.is_initialized()


def test_init_rejects_indefinite_covariance_override() -> None:
    core: MsfCore = _build_core()
    init: InitMeasurement = InitMeasurement(core.index)
    init.set_component_init_value("p", [0.0, 0.0, 0.0])

    with pytest.raises(ConversionFailedError):
        init.set_initial_covariance(-5.0 * np.eye(12))
    # Positive diagonal, negative eigenvalues from the off-diagonal terms
    off_diagonal: np.ndarray = np.diag(np.full(11, 2.0), k=1)
    indefinite: np.ndarray = np.eye(12) + off_diagonal + off_diagonal.T
    with pytest.raises(ConversionFailedError):
        init.set_initial_covariance(indefinite)

    # The rejected override is not staged, so the config seeds the block
    measurement: MsfMeasurement = init.build(0.0)
    payload: InitPayload = cast(InitPayload, measurement.payload)
    assert payload.covariance is None

    core.process_measurement(measurement)
    head: StateSnapshot = core.current_head()

    assert np.array_equal(head.covariance[:3, :3], np.diag([1.0, 2.0, 3.0]))
    assert float(np.min(np.linalg.eigvalsh(head.covariance))) >= 0.0
