"""Interpolation utilities for keyframe animation.

Provides the easing table referenced by ``PositionKeyframe.interpolation`` and
the clamped blend used to resolve animated values between keyframes.

Usage:
    from cliptrack.utils.interpolation import ease_between, get_easing_function

    # Linear blend
    value = ease_between(0.0, 100.0, 0.5)  # -> 50.0

    # With easing
    value = ease_between(0.0, 100.0, 0.5, get_easing_function("ease_in"))  # -> 12.5
"""

import math
from typing import Callable

Easing = Callable[[float], float]


# =============================================================================
# Easing Functions
# =============================================================================


def linear(t: float) -> float:
    """Linear easing (no easing)."""
    return t


def ease_in(t: float) -> float:
    """Ease in (cubic)."""
    return t * t * t


def ease_out(t: float) -> float:
    """Ease out (cubic)."""
    return 1 - (1 - t) ** 3


def ease_in_out(t: float) -> float:
    """Ease in-out (cubic)."""
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def ease_in_quad(t: float) -> float:
    return t * t


def ease_out_quad(t: float) -> float:
    return 1 - (1 - t) * (1 - t)


def ease_in_out_sine(t: float) -> float:
    return -(math.cos(math.pi * t) - 1) / 2


def hold(t: float) -> float:
    """Step: keep the start value until the next keyframe."""
    return 0.0 if t < 1 else 1.0


# Easing name -> function lookup for keyframe records
EASING_FUNCTIONS: dict[str, Easing] = {
    "linear": linear,
    "ease_in": ease_in,
    "ease_out": ease_out,
    "ease_in_out": ease_in_out,
    "ease_in_quad": ease_in_quad,
    "ease_out_quad": ease_out_quad,
    "ease_in_out_sine": ease_in_out_sine,
    "hold": hold,
}


def get_easing_function(name: str) -> Easing:
    """Get an easing function by name.

    Args:
        name: Easing function name (e.g., "ease_in_out", "linear")

    Returns:
        Easing function

    Raises:
        ValueError: If the easing name is not recognized
    """
    fn = EASING_FUNCTIONS.get(name)
    if fn is None:
        raise ValueError(
            f"Unknown easing function: {name}. "
            f"Available: {', '.join(EASING_FUNCTIONS.keys())}"
        )
    return fn


# =============================================================================
# Core Interpolation
# =============================================================================


def ease_between(start: float, end: float, ratio: float, easing: Easing = linear) -> float:
    """Blend ``start`` towards ``end``; ``ratio`` is clamped to [0, 1]."""
    t = max(0.0, min(1.0, ratio))
    return start + (end - start) * easing(t)
