"""Risk scoring for postal areas from demographic indicators."""

from __future__ import annotations

import math

from permitbot.common.constants import RISK_HIGH, RISK_LOW, RISK_MEDIUM

NEUTRAL_CRIME_SCORE = 5
NEUTRAL_BUILDING_AGE = 50
SCORE_MIN = 1
SCORE_MAX = 10
HIGH_THRESHOLD = 7.0
MEDIUM_THRESHOLD = 4.5


def clamp(value: int, *, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def poverty_rate(numerator: float | None, denominator: float | None) -> float | None:
    if numerator is None or denominator is None or denominator <= 0:
        return None
    return 100.0 * numerator / denominator


def crime_score(rate: float | None) -> int:
    if rate is None:
        return NEUTRAL_CRIME_SCORE
    return clamp(round_half_up(rate / 25 * 9) + 1, minimum=SCORE_MIN, maximum=SCORE_MAX)


def fire_score(median_build_year: int | None, *, year: int) -> int:
    building_age = year - median_build_year if median_build_year else NEUTRAL_BUILDING_AGE
    return clamp(round_half_up(building_age / 100 * 9) + 1, minimum=SCORE_MIN, maximum=SCORE_MAX)


def risk_level(crime: int, fire: int) -> str:
    combined = (crime + fire) / 2
    if combined >= HIGH_THRESHOLD:
        return RISK_HIGH
    if combined >= MEDIUM_THRESHOLD:
        return RISK_MEDIUM
    return RISK_LOW


def score_area(rate: float | None, median_build_year: int | None, *, year: int) -> tuple[int, int, str] | None:
    """Return ``(crime_score, fire_score, risk_level)`` or None when no signal exists."""
    if rate is None and not median_build_year:
        return None
    crime = crime_score(rate)
    fire = fire_score(median_build_year, year=year)
    return crime, fire, risk_level(crime, fire)
