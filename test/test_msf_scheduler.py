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

import itertools
import math
import random
import threading
from typing import Optional
from typing import cast

import pytest

from oasis_fusion.localization.msf.msf_errors import MeasurementErrorKind
from oasis_fusion.localization.msf.msf_scheduler import MeasurementScheduler
from oasis_fusion.localization.msf.msf_types import InvalidPayload
from oasis_fusion.localization.msf.msf_types import MeasurementKind
from oasis_fusion.localization.msf.msf_types import MsfMeasurement


def _build_measurement(t_meas: float, tag: str = "") -> MsfMeasurement:
    return MsfMeasurement(
        t_meas=t_meas,
        kind=MeasurementKind.INVALID,
        payload=InvalidPayload(reason=MeasurementErrorKind.INVALID, message=tag),
    )


def _drain_all(scheduler: MeasurementScheduler) -> list[MsfMeasurement]:
    drained: list[MsfMeasurement] = []
    while True:
        measurement: Optional[MsfMeasurement] = scheduler.drain_next()
        if measurement is None:
            return drained
        drained.append(measurement)


def test_scheduler_drains_out_of_order_enqueue_in_time_order() -> None:
    scheduler: MeasurementScheduler = MeasurementScheduler()

    for t_meas in (1.0, 3.0, 2.0):
        scheduler.enqueue(_build_measurement(t_meas))

    times: list[float] = [m.t_meas for m in _drain_all(scheduler)]

    assert times == [1.0, 2.0, 3.0]


def test_scheduler_orders_every_permutation() -> None:
    timestamps: tuple[float, ...] = (0.5, 1.0, 1.5, 2.0)

    for permutation in itertools.permutations(timestamps):
        scheduler: MeasurementScheduler = MeasurementScheduler()
        for t_meas in permutation:
            scheduler.enqueue(_build_measurement(t_meas))

        times: list[float] = [m.t_meas for m in _drain_all(scheduler)]

        assert times == list(timestamps)


def test_scheduler_keeps_enqueue_order_for_equal_timestamps() -> None:
    scheduler: MeasurementScheduler = MeasurementScheduler()

    scheduler.enqueue(_build_measurement(2.0, "late"))
    scheduler.enqueue(_build_measurement(1.0, "first"))
    scheduler.enqueue(_build_measurement(1.0, "second"))
    scheduler.enqueue(_build_measurement(1.0, "third"))

    tags: list[str] = [
        cast(InvalidPayload, m.payload).message for m in _drain_all(scheduler)
    ]

    assert tags == ["first", "second", "third", "late"]


def test_scheduler_empty_queue() -> None:
    scheduler: MeasurementScheduler = MeasurementScheduler()

    assert scheduler.drain_next() is None
    assert scheduler.peek_time() is None
    assert len(scheduler) == 0

    scheduler.enqueue(_build_measurement(4.0))
    scheduler.enqueue(_build_measurement(3.0))

    assert scheduler.peek_time() == 3.0
    assert len(scheduler) == 2


def test_scheduler_rejects_non_finite_timestamp() -> None:
    scheduler: MeasurementScheduler = MeasurementScheduler()

    with pytest.raises(ValueError):
        scheduler.enqueue(_build_measurement(math.nan))

    assert len(scheduler) == 0


def test_scheduler_concurrent_producers() -> None:
    scheduler: MeasurementScheduler = MeasurementScheduler()
    producer_count: int = 4
    per_producer: int = 250

    def _produce(seed: int) -> None:
        rng: random.Random = random.Random(seed)
        for _ in range(per_producer):
            scheduler.enqueue(_build_measurement(rng.uniform(0.0, 10.0)))

    threads: list[threading.Thread] = [
        threading.Thread(target=_produce, args=(seed,))
        for seed in range(producer_count)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    times: list[float] = [m.t_meas for m in _drain_all(scheduler)]

    assert len(times) == producer_count * per_producer
    assert times == sorted(times)
