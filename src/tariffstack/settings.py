"""Environment-backed settings for schedule processing."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_STATISTICAL_CODE_LENGTH = 10
DEFAULT_VALID_CODE_LENGTHS: tuple[int, ...] = (2, 4, 6, 8, 10)
DEFAULT_AMBIGUOUS_LABEL_LENGTH = 15


@dataclass(frozen=True)
class ScheduleSettings:
    """Knobs for hierarchy reconstruction.

    ``statistical_code_length`` decides which codes are terminal (selectable).
    ``valid_code_lengths`` lists the digit counts a schedule code may have;
    rows outside it are dropped as malformed.
    """

    statistical_code_length: int = DEFAULT_STATISTICAL_CODE_LENGTH
    valid_code_lengths: tuple[int, ...] = DEFAULT_VALID_CODE_LENGTHS
    ambiguous_label_length: int = DEFAULT_AMBIGUOUS_LABEL_LENGTH

    @classmethod
    def from_env(cls) -> "ScheduleSettings":
        raw = os.getenv("TARIFFSTACK_STAT_CODE_LENGTH")
        length = DEFAULT_STATISTICAL_CODE_LENGTH
        if raw:
            try:
                length = int(raw)
            except ValueError:
                logger.warning("Ignoring non-integer TARIFFSTACK_STAT_CODE_LENGTH=%r", raw)
        valid = DEFAULT_VALID_CODE_LENGTHS
        if length not in valid:
            valid = tuple(sorted({*valid, length}))
        return cls(statistical_code_length=length, valid_code_lengths=valid)
