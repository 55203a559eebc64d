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
Collaborators that receive MSF update reports
"""

from __future__ import annotations

import logging
from typing import Optional
from typing import Protocol

from oasis_fusion.localization.msf.msf_types import MsfUpdateData


_LOG: logging.Logger = logging.getLogger(__name__)


class MsfReporter(Protocol):
    def report(self, update: MsfUpdateData) -> None: ...


class UpdateReporter:
    """
    Count update reports and forward them to a logger

    Accepted updates are logged at DEBUG and rejections at WARNING.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._log: logging.Logger = logger if logger is not None else _LOG
        self.diagnostics: dict[str, int] = {
            "accepted": 0,
            "rejected": 0,
        }

    def report(self, update: MsfUpdateData) -> None:
        if update.accepted:
            self.diagnostics["accepted"] += 1
            self._log.debug(
                "Applied %s update at t=%.6f to snapshot t=%s (delayed=%s, d2=%.3f)",
                update.sensor,
                update.t_meas,
                update.t_target,
                update.delayed,
                update.maha_d2,
            )
            return

        self.diagnostics["rejected"] += 1
        reason_key: str = f"reject_{update.reject_reason}"
        self.diagnostics[reason_key] = self.diagnostics.get(reason_key, 0) + 1
        self._log.warning(
            "Rejected %s update at t=%.6f: %s",
            update.sensor,
            update.t_meas,
            update.reject_reason,
        )
