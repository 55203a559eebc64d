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
Processing context that owns the state history and drains measurements
"""

from __future__ import annotations

from typing import Callable
from typing import Optional
from typing import cast

import numpy as np

from oasis_fusion.localization.msf.core.correction_engine import CorrectionEngine
from oasis_fusion.localization.msf.core.msf_apply import apply_measurement
from oasis_fusion.localization.msf.msf_buffer import StateHistoryBuffer
from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import MeasurementError
from oasis_fusion.localization.msf.msf_scheduler import MeasurementScheduler
from oasis_fusion.localization.msf.msf_state import MsfStateIndex
from oasis_fusion.localization.msf.msf_state import StateSnapshot
from oasis_fusion.localization.msf.msf_state import default_index
from oasis_fusion.localization.msf.msf_types import MeasurementKind
from oasis_fusion.localization.msf.msf_types import MsfMatrix
from oasis_fusion.localization.msf.msf_types import MsfMeasurement
from oasis_fusion.localization.msf.msf_types import MsfUpdateData
from oasis_fusion.localization.msf.msf_types import TypedPayload
from oasis_fusion.localization.msf.reporting.update_reporter import MsfReporter
from oasis_fusion.localization.msf.reporting.update_reporter import UpdateReporter


class MsfCore:
    """
    Single-consumer owner of the state history and measurement queue

    Producers call enqueue() from any thread. The estimation loop calls
    process_pending() to apply queued measurements in time order. The
    propagation stage pushes new heads with insert_snapshot() and receives
    reapply_from() requests after delayed corrections.
    """

    def __init__(
        self,
        config: MsfConfig,
        index: Optional[MsfStateIndex] = None,
        *,
        reapply_hook: Optional[Callable[[float], None]] = None,
        reporter: Optional[MsfReporter] = None,
        t_start: float = 0.0,
    ) -> None:
        self.config: MsfConfig = config
        self.index: MsfStateIndex = index if index is not None else default_index()
        self.engine: CorrectionEngine = CorrectionEngine(config)
        self._reapply_hook: Optional[Callable[[float], None]] = reapply_hook
        self._reporter: MsfReporter = (
            reporter if reporter is not None else UpdateReporter()
        )
        self._buffer: StateHistoryBuffer = StateHistoryBuffer(config)
        self._scheduler: MeasurementScheduler = MeasurementScheduler()
        self._buffer.insert(StateSnapshot.initial(self.index, config, t_start))
        self.diagnostics: dict[str, int] = {
            "processed": 0,
            "rejected": 0,
            "reapply_requests": 0,
        }

    @property
    def buffer(self) -> StateHistoryBuffer:
        return self._buffer

    def pending_count(self) -> int:
        return len(self._scheduler)

    def current_head(self) -> StateSnapshot:
        head: Optional[StateSnapshot] = self._buffer.head()
        # The initial snapshot is never evicted without a newer head
        assert head is not None
        return head

    def find_at_or_before(self, t_meas: float) -> Optional[StateSnapshot]:
        return self._buffer.find_at_or_before(t_meas)

    def too_old(self, t_meas: float) -> bool:
        return self._buffer.too_old(t_meas)

    def reapply_from(self, t_meas: float) -> None:
        self.diagnostics["reapply_requests"] += 1
        if self._reapply_hook is not None:
            self._reapply_hook(t_meas)

    def insert_snapshot(self, snapshot: StateSnapshot) -> None:
        n: int = self.index.total_dim
        if snapshot.state_dim != n or snapshot.covariance.shape != (n, n):
            raise ValueError(f"Snapshot must match the {n}-dimensional layout")
        if snapshot.reset_flags.shape != (self.index.component_count,):
            raise ValueError("Snapshot reset flags must match the layout")
        self._buffer.insert(snapshot)

    def is_initialized(self) -> bool:
        return bool(np.all(self.current_head().reset_flags))

    def enqueue(self, measurement: MsfMeasurement) -> None:
        self._scheduler.enqueue(measurement)

    def process_pending(self) -> list[MsfUpdateData]:
        updates: list[MsfUpdateData] = []
        while True:
            measurement: Optional[MsfMeasurement] = self._scheduler.drain_next()
            if measurement is None:
                break
            updates.append(self.process_measurement(measurement))
        return updates

    def process_measurement(self, measurement: MsfMeasurement) -> MsfUpdateData:
        self.diagnostics["processed"] += 1
        update: MsfUpdateData
        try:
            update = apply_measurement(measurement, self)
        except MeasurementError as exc:
            self.diagnostics["rejected"] += 1
            update = self._build_rejected_update(measurement, exc)
        self._reporter.report(update)
        return update

    def _build_rejected_update(
        self, measurement: MsfMeasurement, error: MeasurementError
    ) -> MsfUpdateData:
        sensor: str = measurement.kind.value
        frame_id: str = ""
        z_dim: int = 0
        r: MsfMatrix = MsfMatrix.empty()
        if measurement.kind == MeasurementKind.TYPED:
            payload: TypedPayload = cast(TypedPayload, measurement.payload)
            sensor = payload.sensor_kind
            frame_id = payload.frame_id
            z_dim = payload.z_dim
            r = MsfMatrix.from_array(payload.r)

        return MsfUpdateData(
            sensor=sensor,
            frame_id=frame_id,
            t_meas=measurement.t_meas,
            accepted=False,
            reject_reason=error.kind.value,
            z_dim=z_dim,
            nu=[],
            r=r,
            s=MsfMatrix.empty(),
            maha_d2=0.0,
            delayed=False,
            t_target=None,
        )
