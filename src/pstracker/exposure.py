#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Exposure Settings
Per-session raw exposure preferences stored in the [Exposure] record section.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Tuple


class WhiteBalanceMode(IntEnum):
    DEFAULT = 0
    CAMERA = 1
    AVERAGE = 2
    CUSTOM = 3


class BrightnessMode(IntEnum):
    AUTO_HISTOGRAM = 0
    DISABLED = 1
    SCALED = 2


# Custom multiplier order: R, G1, B, G2
WB_CHANNELS = ("R", "G1", "B", "G2")
NEUTRAL_MULTIPLIERS = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True)
class ExposureSettings:
    wb_mode: WhiteBalanceMode = WhiteBalanceMode.CAMERA
    wb_custom: Tuple[float, float, float, float] = NEUTRAL_MULTIPLIERS
    bright_mode: BrightnessMode = BrightnessMode.AUTO_HISTOGRAM
    bright_scale: float = 1.0

    def make_independently_consistent(self) -> "ExposureSettings":
        """Copy with the values that the chosen modes ignore reset to neutral."""
        wb_custom = self.wb_custom if self.wb_mode == WhiteBalanceMode.CUSTOM else NEUTRAL_MULTIPLIERS
        bright_scale = self.bright_scale if self.bright_mode == BrightnessMode.SCALED else 1.0
        return replace(self, wb_custom=wb_custom, bright_scale=bright_scale)


DEFAULT_EXPOSURE = ExposureSettings()
