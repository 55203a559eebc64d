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
Error taxonomy for MSF measurement processing
"""

from __future__ import annotations

import enum


class MeasurementErrorKind(enum.Enum):
    """
    Enumerates the reasons a measurement can fail

    The value doubles as the deterministic reject reason in update reports.

    Attributes:
        CONVERSION_FAILED: Raw reading could not be turned into correction inputs
        DIMENSION_MISMATCH: H, R, residual or init value size is inconsistent
        TOO_OLD: Measurement predates the retained history window
        SINGULAR_INNOVATION: Innovation covariance is not positive definite
        NOT_SET: Init value was read before being set
        ALREADY_SET: Init value was set twice without being cleared
        INVALID: Apply was called on an invalid measurement
    """

    CONVERSION_FAILED = "conversion_failed"
    DIMENSION_MISMATCH = "dimension_mismatch"
    TOO_OLD = "too_old"
    SINGULAR_INNOVATION = "singular_innovation"
    NOT_SET = "not_set"
    ALREADY_SET = "already_set"
    INVALID = "invalid"


class MeasurementError(Exception):
    """Base class for failures raised while converting or applying measurements."""

    kind: MeasurementErrorKind = MeasurementErrorKind.INVALID


class ConversionFailedError(MeasurementError):
    """Raised when a raw sensor reading is degenerate."""

    kind = MeasurementErrorKind.CONVERSION_FAILED


class DimensionMismatchError(MeasurementError):
    """Raised when matrix or vector sizes disagree with the state size."""

    kind = MeasurementErrorKind.DIMENSION_MISMATCH


class TooOldError(MeasurementError):
    """Raised when no snapshot is retained at or before the measurement time."""

    kind = MeasurementErrorKind.TOO_OLD


class SingularInnovationError(MeasurementError):
    """Raised when the innovation covariance cannot be factorized."""

    kind = MeasurementErrorKind.SINGULAR_INNOVATION


class NotSetError(MeasurementError):
    """Raised when reading an init value whose flag is clear."""

    kind = MeasurementErrorKind.NOT_SET


class AlreadySetError(MeasurementError):
    """Raised when setting an init value whose flag has not been cleared."""

    kind = MeasurementErrorKind.ALREADY_SET


class InvalidMeasurementError(MeasurementError):
    """Raised when applying an invalid measurement."""

    kind = MeasurementErrorKind.INVALID
