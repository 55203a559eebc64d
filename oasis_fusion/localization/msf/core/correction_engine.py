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
Generic EKF correction with a Joseph-form covariance update
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from oasis_fusion.localization.msf.msf_config import MsfConfig
from oasis_fusion.localization.msf.msf_errors import ConversionFailedError
from oasis_fusion.localization.msf.msf_errors import DimensionMismatchError
from oasis_fusion.localization.msf.msf_errors import SingularInnovationError
from oasis_fusion.localization.msf.msf_state import StateSnapshot
from oasis_fusion.localization.msf.msf_types import CorrectionResult


# Relative jitter added to S before factorization, scaled by its largest diagonal
_BASE_JITTER: float = 1.0e-12

# Relative jitter retries when the first Cholesky factorization fails
_JITTER_RETRIES: tuple[float, ...] = (1.0e-10, 1.0e-8, 1.0e-6)


class CorrectionEngine:
    """
    Kalman measurement update against a state snapshot

    Equations:
        S  = H P Hᵀ + R
        K  = P Hᵀ S⁻¹
        δx = K res
        P' = (I - K H) P (I - K H)ᵀ + K R Kᵀ

    S is factorized with Cholesky and never inverted explicitly. A failed
    correction raises before the snapshot is touched, so state and covariance
    are either fully updated or left exactly as they were.
    """

    def __init__(self, config: MsfConfig) -> None:
        self._config: MsfConfig = config

    def compute_innovation(
        self, h: np.ndarray, p: np.ndarray, r: np.ndarray
    ) -> np.ndarray:
        """Return S = H P Hᵀ + R, symmetrized."""
        s: np.ndarray = h @ p @ h.T + r
        return 0.5 * (s + s.T)

    def factorize_innovation(self, s: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Return the lower Cholesky factor of S and the S it factorizes."""
        diag: np.ndarray = np.diag(s)
        if not np.all(np.isfinite(s)):
            raise SingularInnovationError("S contains non-finite values")
        if np.any(diag <= 0.0):
            raise SingularInnovationError("S has a non-positive diagonal")

        scale: float = max(1.0, float(np.max(np.abs(diag))))
        identity: np.ndarray = np.eye(s.shape[0], dtype=float)
        s_try: np.ndarray = s + (_BASE_JITTER * scale) * identity
        try:
            return np.linalg.cholesky(s_try), s_try
        except np.linalg.LinAlgError:
            pass

        for factor in _JITTER_RETRIES:
            s_try = s + (factor * scale) * identity
            try:
                return np.linalg.cholesky(s_try), s_try
            except np.linalg.LinAlgError:
                continue

        raise SingularInnovationError("S is not positive definite")

    def compute_kalman_gain(
        self, p: np.ndarray, h: np.ndarray, l_factor: np.ndarray
    ) -> np.ndarray:
        """Return K = P Hᵀ S⁻¹ from the Cholesky factor of S."""
        ph_t: np.ndarray = p @ h.T
        tmp: np.ndarray = np.linalg.solve(l_factor, ph_t.T)
        s_inv_ph_t: np.ndarray = np.linalg.solve(l_factor.T, tmp)
        return s_inv_ph_t.T

    def joseph_update(
        self, p: np.ndarray, k_gain: np.ndarray, h: np.ndarray, r: np.ndarray
    ) -> np.ndarray:
        """Return the symmetrized Joseph-form covariance update."""
        identity: np.ndarray = np.eye(p.shape[0], dtype=float)
        temp: np.ndarray = identity - k_gain @ h
        p_new: np.ndarray = temp @ p @ temp.T + k_gain @ r @ k_gain.T
        return 0.5 * (p_new + p_new.T)

    def correct(
        self,
        state: np.ndarray,
        covariance: np.ndarray,
        h: np.ndarray,
        residual: np.ndarray,
        r: np.ndarray,
    ) -> CorrectionResult:
        """Compute a correction without modifying any input."""
        h, residual, r = self._validate_inputs(state, covariance, h, residual, r)

        s: np.ndarray = self.compute_innovation(h, covariance, r)
        l_factor: np.ndarray
        l_factor, s = self.factorize_innovation(s)

        k_gain: np.ndarray = self.compute_kalman_gain(covariance, h, l_factor)
        delta: np.ndarray = k_gain @ residual
        p_new: np.ndarray = self.joseph_update(covariance, k_gain, h, r)

        y: np.ndarray = np.linalg.solve(l_factor, residual)
        maha_d2: float = float(y @ y)

        if not np.all(np.isfinite(delta)) or not np.all(np.isfinite(p_new)):
            raise SingularInnovationError("Correction produced non-finite values")

        return CorrectionResult(
            gain=k_gain,
            delta=delta,
            covariance=p_new,
            s=s,
            maha_d2=maha_d2,
        )

    def apply_correction(
        self,
        snapshot: StateSnapshot,
        h: np.ndarray,
        residual: np.ndarray,
        r: np.ndarray,
    ) -> CorrectionResult:
        """Correct a snapshot in place, leaving it untouched on failure."""
        result: CorrectionResult = self.correct(
            snapshot.state, snapshot.covariance, h, residual, r
        )
        snapshot.state = snapshot.state + result.delta
        snapshot.covariance = result.covariance
        return result

    def _validate_inputs(
        self,
        state: np.ndarray,
        covariance: np.ndarray,
        h: np.ndarray,
        residual: np.ndarray,
        r: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        n: int = int(state.shape[0])
        if n > self._config.max_state_dim:
            raise DimensionMismatchError(
                f"State dimension {n} exceeds max_state_dim "
                f"{self._config.max_state_dim}"
            )
        if covariance.shape != (n, n):
            raise DimensionMismatchError(f"P must be {n}x{n}")

        h_arr: np.ndarray = np.asarray(h, dtype=float)
        res_arr: np.ndarray = np.asarray(residual, dtype=float).reshape(-1)
        r_arr: np.ndarray = np.asarray(r, dtype=float)

        m: int = int(res_arr.shape[0])
        if m == 0:
            raise DimensionMismatchError("Residual must not be empty")
        if m > self._config.max_measurement_dim:
            raise DimensionMismatchError(
                f"Measurement dimension {m} exceeds max_measurement_dim "
                f"{self._config.max_measurement_dim}"
            )
        if h_arr.shape != (m, n):
            raise DimensionMismatchError(f"H must be {m}x{n}, got {h_arr.shape}")
        if r_arr.shape != (m, m):
            raise DimensionMismatchError(f"R must be {m}x{m}, got {r_arr.shape}")

        bad_input: Optional[str] = None
        if not np.all(np.isfinite(h_arr)):
            bad_input = "H"
        elif not np.all(np.isfinite(res_arr)):
            bad_input = "residual"
        elif not np.all(np.isfinite(r_arr)):
            bad_input = "R"
        if bad_input is not None:
            raise ConversionFailedError(f"{bad_input} contains non-finite values")

        return h_arr, res_arr, r_arr
