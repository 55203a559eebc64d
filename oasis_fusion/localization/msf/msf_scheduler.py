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
Time-ordered queue of pending measurements
"""

from __future__ import annotations

import heapq
import itertools
import math
import threading
from typing import Iterator
from typing import Optional

from oasis_fusion.localization.msf.msf_types import MsfMeasurement


# Heap entry: (t_meas, insertion sequence, measurement)
_Entry = tuple[float, int, MsfMeasurement]


def sort_key(measurement: MsfMeasurement, sequence: int) -> tuple[float, int]:
    """Order by measurement time, then by insertion order."""
    return (measurement.t_meas, sequence)


class MeasurementScheduler:
    """
    Pending measurement queue drained in non-decreasing time order

    Producers on any thread may enqueue. A single consumer drains.
    Measurements with equal timestamps are drained in enqueue order.
    """

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._heap: list[_Entry] = []
        self._sequence: Iterator[int] = itertools.count()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)

    def enqueue(self, measurement: MsfMeasurement) -> None:
        if not math.isfinite(measurement.t_meas):
            raise ValueError("Measurement timestamp must be finite")
        with self._lock:
            sequence: int = next(self._sequence)
            t_meas, seq = sort_key(measurement, sequence)
            heapq.heappush(self._heap, (t_meas, seq, measurement))

    def drain_next(self) -> Optional[MsfMeasurement]:
        with self._lock:
            if not self._heap:
                return None
            entry: _Entry = heapq.heappop(self._heap)
        return entry[2]

    def peek_time(self) -> Optional[float]:
        with self._lock:
            if not self._heap:
                return None
            return self._heap[0][0]
