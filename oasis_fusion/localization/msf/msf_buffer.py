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
Fixed-lag state history buffer
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterator
from typing import Optional

from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_state import StateSnapshot


class StateHistoryBuffer:
    """
    Fixed-lag buffer that stores state snapshots in time order

    Snapshots are owned by the buffer and corrected in place. Eviction of
    snapshots older than head time minus the delay window is the only way a
    snapshot leaves the buffer.
    """

    def __init__(self, config: MsfConfig) -> None:
        self._config: MsfConfig = config
        self._snapshots: list[StateSnapshot] = []
        self._timestamps: list[float] = []
        self.diagnostics: dict[str, int] = {
            "inserted": 0,
            "evicted": 0,
        }

    def __len__(self) -> int:
        return len(self._snapshots)

    def insert(self, snapshot: StateSnapshot) -> None:
        insert_index: int = bisect_right(self._timestamps, snapshot.t_meas)
        self._timestamps.insert(insert_index, snapshot.t_meas)
        self._snapshots.insert(insert_index, snapshot)
        self.diagnostics["inserted"] += 1
        self._evict()

    def head(self) -> Optional[StateSnapshot]:
        if not self._snapshots:
            return None
        return self._snapshots[-1]

    def head_time(self) -> Optional[float]:
        if not self._timestamps:
            return None
        return self._timestamps[-1]

    def earliest_time(self) -> Optional[float]:
        if not self._timestamps:
            return None
        return self._timestamps[0]

    def too_old(self, t_meas: float) -> bool:
        head_time: Optional[float] = self.head_time()
        if head_time is None:
            return False
        return t_meas < head_time - self._config.max_delay_window_sec

    def find_at_or_before(self, t_meas: float) -> Optional[StateSnapshot]:
        if self.too_old(t_meas):
            return None
        index: int = bisect_right(self._timestamps, t_meas)
        if index == 0:
            return None
        return self._snapshots[index - 1]

    def iter_snapshots(self) -> Iterator[StateSnapshot]:
        yield from self._snapshots

    def iter_after(self, t_meas: float) -> Iterator[StateSnapshot]:
        """Yield snapshots strictly after t_meas up to the head."""
        start_index: int = bisect_right(self._timestamps, t_meas)
        for snapshot in self._snapshots[start_index:]:
            yield snapshot

    def _evict(self) -> None:
        head_time: Optional[float] = self.head_time()
        if head_time is None:
            return
        cutoff: float = head_time - self._config.max_delay_window_sec
        index: int = 0
        while index < len(self._snapshots) and self._timestamps[index] < cutoff:
            index += 1
        if index > 0:
            del self._snapshots[:index]
            del self._timestamps[:index]
            self.diagnostics["evicted"] += index
