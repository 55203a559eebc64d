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
State layout and time-indexed state snapshots
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from typing import Sequence
from typing import Union

import numpy as np

from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import DimensionMismatchError


# Component key by number in layout order or by name
ComponentKey = Union[int, str]

# Default layout: position, velocity, gyro bias, accel bias
_DEFAULT_COMPONENTS: tuple[tuple[str, int], ...] = (
    ("p", 3),
    ("v", 3),
    ("b_w", 3),
    ("b_a", 3),
)


@dataclass(frozen=True)
class StateComponent:
    """
    One named block of the state vector

    Fields:
        name: Component name such as p or b_w
        offset: Index of the first entry in the state vector
        size: Number of state vector entries
    """

    name: str
    offset: int
    size: int

    @property
    def slice(self) -> slice:
        return slice(self.offset, self.offset + self.size)


class MsfStateIndex:
    """
    Ordered layout of the components making up the state vector
    """

    def __init__(self, components: Sequence[tuple[str, int]]) -> None:
        if not components:
            raise ValueError("State layout must contain at least one component")

        self._components: list[StateComponent] = []
        self._numbers: dict[str, int] = {}
        offset: int = 0
        for name, size in components:
            if name in self._numbers:
                raise ValueError(f"Duplicate state component: {name}")
            if size <= 0:
                raise ValueError(f"State component {name} must have positive size")
            self._numbers[name] = len(self._components)
            self._components.append(StateComponent(name=name, offset=offset, size=size))
            offset += size
        self._total_dim: int = offset

    @property
    def total_dim(self) -> int:
        return self._total_dim

    @property
    def component_count(self) -> int:
        return len(self._components)

    @property
    def components(self) -> list[StateComponent]:
        return list(self._components)

    def component(self, key: ComponentKey) -> StateComponent:
        return self._components[self.component_number(key)]

    def component_number(self, key: ComponentKey) -> int:
        if isinstance(key, str):
            number: Optional[int] = self._numbers.get(key)
            if number is None:
                raise DimensionMismatchError(f"Unknown state component: {key}")
            return number
        if key < 0 or key >= len(self._components):
            raise DimensionMismatchError(f"State component {key} is out of range")
        return key

    def component_slice(self, key: ComponentKey) -> slice:
        return self.component(key).slice


def default_index() -> MsfStateIndex:
    return MsfStateIndex(_DEFAULT_COMPONENTS)


@dataclass
class StateSnapshot:
    """
    State and covariance at one point of the filter timeline

    Fields:
        t_meas: Snapshot timestamp in seconds
        state: State vector, length N
        covariance: State covariance, N x N, symmetric PSD
        reset_flags: Per-component flags set once a component has been seeded
        gyro_m: Raw gyro reading in rad/s, XYZ order
        accel_m: Raw accel reading in m/s^2, XYZ order
    """

    t_meas: float
    state: np.ndarray
    covariance: np.ndarray
    reset_flags: np.ndarray
    gyro_m: np.ndarray
    accel_m: np.ndarray

    def copy(self) -> StateSnapshot:
        return StateSnapshot(
            t_meas=self.t_meas,
            state=np.array(self.state, dtype=float),
            covariance=np.array(self.covariance, dtype=float),
            reset_flags=np.array(self.reset_flags, dtype=bool),
            gyro_m=np.array(self.gyro_m, dtype=float),
            accel_m=np.array(self.accel_m, dtype=float),
        )

    def assign(self, other: StateSnapshot) -> None:
        """Overwrite this snapshot in place with the contents of another."""
        self.state = np.array(other.state, dtype=float)
        self.covariance = np.array(other.covariance, dtype=float)
        self.reset_flags = np.array(other.reset_flags, dtype=bool)
        self.gyro_m = np.array(other.gyro_m, dtype=float)
        self.accel_m = np.array(other.accel_m, dtype=float)

    @property
    def state_dim(self) -> int:
        return int(self.state.shape[0])

    @staticmethod
    def initial(
        index: MsfStateIndex, config: MsfConfig, t_meas: float
    ) -> StateSnapshot:
        if index.total_dim != config.state_dim:
            raise DimensionMismatchError(
                f"State layout has {index.total_dim} entries but "
                f"initial_uncertainty is {config.state_dim}x{config.state_dim}"
            )
        return StateSnapshot(
            t_meas=t_meas,
            state=np.zeros(index.total_dim, dtype=float),
            covariance=config.initial_uncertainty.copy(),
            reset_flags=np.zeros(index.component_count, dtype=bool),
            gyro_m=np.zeros(3, dtype=float),
            accel_m=np.zeros(3, dtype=float),
        )
