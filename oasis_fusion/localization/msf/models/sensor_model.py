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
Sensor model contract used to build typed measurements
"""

from __future__ import annotations

from typing import Any
from typing import Optional
from typing import Protocol

import numpy as np


class MsfSensorModel(Protocol):
    """
    Converts raw readings of one sensor kind into correction inputs

    Implementations are stateless with respect to the filter: the
    measurement vector and covariance come from the reading, the prediction
    and Jacobian come from the state the update is applied to.
    """

    @property
    def sensor_kind(self) -> str: ...

    @property
    def z_dim(self) -> int: ...

    def frame_id(self, reading: Any) -> str: ...

    def measurement_vector(self, reading: Any) -> np.ndarray: ...

    def reading_covariance(self, reading: Any) -> Optional[np.ndarray]: ...

    def linearize(self, state: np.ndarray) -> tuple[np.ndarray, np.ndarray]: ...
