"""Cross-session trends and date-of-birth based groupings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from pitchside.services.ratings import CATEGORIES, SessionAggregate
from pitchside.utils import parse_date_safe

TREND_THRESHOLD = 0.1

UP = 'up'
DOWN = 'down'
FLAT = 'flat'

QUARTILES = ['Q1', 'Q2', 'Q3', 'Q4']

MIN_AGE_GROUP = 5
MAX_AGE_GROUP = 18


@dataclass(frozen=True)
class Trend:
    first: float | None
    last: float | None
    delta: float | None
    direction: str | None
    points: int

    def to_dict(self):
        return {
            'first': None if self.first is None else round(self.first, 2),
            'last': None if self.last is None else round(self.last, 2),
            'delta': self.delta,
            'direction': self.direction,
            'points': self.points,
        }


def classify(delta):
    if delta is None:
        return None
    if delta > TREND_THRESHOLD:
        return UP
    if delta < -TREND_THRESHOLD:
        return DOWN
    return FLAT


def first_last_delta(values: Sequence[float | None]) -> Trend:
    """Delta between the first and last defined values, skipping gaps."""
    defined = [v for v in values if v is not None]
    if len(defined) < 2:
        first = defined[0] if defined else None
        return Trend(first, first, None, None, len(defined))
    first, last = defined[0], defined[-1]
    delta = round(last - first, 2)
    return Trend(first, last, delta, classify(delta), len(defined))


@dataclass(frozen=True)
class TrendReport:
    overall: Trend
    categories: dict

    def to_dict(self):
        return {
            'overall': self.overall.to_dict(),
            'categories': {c: t.to_dict() for c, t in self.categories.items()},
        }


def analyze(aggregates: Sequence[SessionAggregate]) -> TrendReport:
    """Trend per category and overall for one team and theme.

    ``aggregates`` must already be ordered by session date.
    """
    categories = {
        category: first_last_delta([a.average(category) for a in aggregates])
        for category in CATEGORIES
    }
    overall = first_last_delta([a.overall for a in aggregates])
    return TrendReport(overall=overall, categories=categories)


def relative_age_quartile(dob):
    """Birth-month quartile for a 1 January cohort cut-off; Q1 is the oldest."""
    if dob is None:
        return None
    if isinstance(dob, str):
        dob = parse_date_safe(dob)
        if dob is None:
            return None
    return QUARTILES[(dob.month - 1) // 3]


def raq_summary(dobs):
    counts = {q: 0 for q in QUARTILES}
    for dob in dobs:
        quartile = relative_age_quartile(dob)
        if quartile:
            counts[quartile] += 1
    total = sum(counts.values())
    return {
        'total': total,
        'counts': counts,
        'percent': {q: (round(n / total * 100) if total else 0) for q, n in counts.items()},
    }


def age_group_for_season(dob, season_start):
    """'U<n>' label where n = season year - birth year + 1, within U5..U18."""
    if isinstance(dob, str):
        dob = parse_date_safe(dob)
    if isinstance(season_start, str):
        season_start = parse_date_safe(season_start)
    if not dob or not season_start:
        return None
    n = season_start.year - dob.year + 1
    if n < MIN_AGE_GROUP or n > MAX_AGE_GROUP:
        return None
    return f'U{n}'


def player_matches_team_age_group(dob, team_age_group, season_start):
    calculated = age_group_for_season(dob, season_start)
    if not calculated or not team_age_group:
        return False
    return calculated.upper() == team_age_group.strip().upper()
