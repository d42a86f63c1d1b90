"""
Vibrance Mapper - Convert abstract vibrance into backend parameters
===================================================================

Vibrance is a signed value in [-100, +100]: 0 leaves colors untouched,
negative values move toward grayscale and positive values oversaturate.
Each backend needs a different parameter shape, produced here:

- gamma triplet (xrandr --gamma): ``factor = 1 + value / gamma_divisor``,
  clamped to [factor_min, factor_max], inverted into a gamma and clamped
  again to [gamma_min, gamma_max]. Red and blue are skewed with
  ``gamma ** red_exponent`` and ``gamma ** blue_exponent``. This is a
  perceptual approximation, not a colorimetric model.
- 3x3 saturation matrix (output CTM): the classic luminance-preserving
  saturation transform with s = 1 + value / saturation_divisor.
- control-protocol code (DDC/CI VCP 0x8A): ``round((value + 100) / 2)``
  on a 0..100 scale, 50 being neutral.

All conversions clamp their output; out-of-range input is never rejected.
"""

import math
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

VIBRANCE_MIN = -100
VIBRANCE_MAX = 100
VIBRANCE_NEUTRAL = 0

SAFE_VIBRANCE_MIN = -75
SAFE_VIBRANCE_MAX = 75

VCP_MIN = 0
VCP_MAX = 100

# Luma weights for linear RGB (Haeberli, "Matrix Operations for Image Processing")
LUMA_WEIGHTS = (0.3086, 0.6094, 0.0820)

Number = Union[int, float]


@dataclass
class MappingConstants:
    """Scaling constants shared by every conversion."""
    gamma_divisor: float = 100.0
    factor_min: float = 0.3
    factor_max: float = 3.0
    gamma_min: float = 0.5
    gamma_max: float = 2.0
    red_exponent: float = 0.8
    blue_exponent: float = 1.2
    saturation_divisor: float = 100.0


DEFAULT_MAPPING = MappingConstants()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_vibrance(value: Number, low: int = VIBRANCE_MIN, high: int = VIBRANCE_MAX) -> int:
    """Clamp a vibrance value into [low, high] and round it to an integer.

    Raises:
        ValueError: If value is NaN
    """
    value = float(value)
    if math.isnan(value):
        raise ValueError("Vibrance must be a number, got NaN")
    return int(round(_clamp(value, low, high)))


def from_legacy_percent(percent: Number) -> int:
    """Map the legacy saturation scale [0, 200] (100 = neutral) to vibrance."""
    return clamp_vibrance(float(percent) - 100)


def gamma_triplet(value: Number, mapping: MappingConstants = DEFAULT_MAPPING) -> Tuple[float, float, float]:
    """Return (red, green, blue) gamma for a vibrance value."""
    factor = 1.0 + clamp_vibrance(value) / mapping.gamma_divisor
    factor = _clamp(factor, mapping.factor_min, mapping.factor_max)

    gamma = _clamp(1.0 / factor, mapping.gamma_min, mapping.gamma_max)
    red = _clamp(gamma ** mapping.red_exponent, mapping.gamma_min, mapping.gamma_max)
    blue = _clamp(gamma ** mapping.blue_exponent, mapping.gamma_min, mapping.gamma_max)
    return (round(red, 3), round(gamma, 3), round(blue, 3))


def saturation_scalar(value: Number, mapping: MappingConstants = DEFAULT_MAPPING) -> float:
    """Return the saturation multiplier s for a vibrance value, within [0, 2]."""
    return _clamp(1.0 + clamp_vibrance(value) / mapping.saturation_divisor, 0.0, 2.0)


def saturation_matrix(value: Number, mapping: MappingConstants = DEFAULT_MAPPING) -> np.ndarray:
    """
    Build the 3x3 saturation matrix for a vibrance value.

    Row i produces output channel i: ``M[i][j] = (1 - s) * w[j]`` plus ``s``
    on the diagonal. Every row sums to 1, so grays are preserved; s = 0
    collapses to luminance and s = 1 is the identity.

    Args:
        value: Vibrance in [-100, 100] (clamped)
        mapping: Scaling constants

    Returns:
        3x3 float array
    """
    s = saturation_scalar(value, mapping)
    weights = np.array(LUMA_WEIGHTS, dtype=float)
    matrix = np.tile((1.0 - s) * weights, (3, 1))
    matrix += np.eye(3) * s
    return matrix


def vcp_code(value: Number) -> int:
    """Return the DDC/CI 0..100 saturation code for a vibrance value."""
    code = math.floor((clamp_vibrance(value) + 100) / 2.0 + 0.5)
    return int(_clamp(code, VCP_MIN, VCP_MAX))
