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
Core MSF processing modules
"""

from __future__ import annotations

from oasis_fusion.localization.msf.core.correction_engine import CorrectionEngine
from oasis_fusion.localization.msf.core.msf_core import MsfCore


__all__ = ["CorrectionEngine", "MsfCore"]
