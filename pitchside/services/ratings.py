"""Rating aggregation for coach development feedback.

Ratings are integers 0-5 where 0 means "not assessed". Every average here
ignores zeros, and a category without any non-zero sample has no average
(``None``) rather than 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from pitchside.errors import ValidationError

CATEGORIES = [
    'ball_control',
    'passing',
    'shooting',
    'fitness',
    'attitude',
    'coachability',
    'positioning',
    'speed_agility',
]

NOT_ASSESSED = 0
MAX_RATING = 5


def round2(value):
    if value is None:
        return None
    return round(value, 2)


@dataclass(frozen=True)
class RatingEntry:
    """One coach's ratings for one player in one session."""
    session_id: int
    player_id: int
    coach_id: int
    values: Mapping[str, int] = field(default_factory=dict)
    comments: str | None = None

    def value(self, category):
        return self.values.get(category, NOT_ASSESSED) or NOT_ASSESSED


@dataclass(frozen=True)
class CategoryStat:
    average: float | None
    count: int

    @property
    def defined(self):
        return self.average is not None


@dataclass(frozen=True)
class RatingSummary:
    categories: Mapping[str, CategoryStat]

    @property
    def overall(self):
        """Mean of the defined category averages, None when none are defined."""
        defined = [s.average for s in self.categories.values() if s.average is not None]
        if not defined:
            return None
        return sum(defined) / len(defined)

    def average(self, category):
        return self.categories[category].average

    def to_dict(self):
        return {
            'overall': round2(self.overall),
            'category_avgs': {c: round2(s.average) for c, s in self.categories.items()},
            'category_counts': {c: s.count for c, s in self.categories.items()},
        }


@dataclass(frozen=True)
class SessionAggregate:
    """Two-level session aggregate: per-player means, then the mean across players."""
    session_id: int
    categories: Mapping[str, CategoryStat]
    present_count: int = 0
    session_date: object = None
    theme: str | None = None

    @property
    def overall(self):
        defined = [s.average for s in self.categories.values() if s.average is not None]
        if not defined:
            return None
        return sum(defined) / len(defined)

    @property
    def rated_slots(self):
        return sum(s.count for s in self.categories.values())

    @property
    def possible_slots(self):
        return self.present_count * len(CATEGORIES)

    def average(self, category):
        return self.categories[category].average

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'session_date': self.session_date.isoformat() if hasattr(self.session_date, 'isoformat') else self.session_date,
            'theme': self.theme,
            'present_count': self.present_count,
            'rated_slots': self.rated_slots,
            'possible_slots': self.possible_slots,
            'overall': round2(self.overall),
            'category_avgs': {c: round2(s.average) for c, s in self.categories.items()},
            'category_rated_counts': {c: s.count for c, s in self.categories.items()},
        }


def validate_rating_values(values):
    """Check a category -> rating mapping, filling missing categories with 0."""
    if values is None:
        raise ValidationError('Ratings are required')
    if not isinstance(values, Mapping):
        raise ValidationError('Ratings must map categories to values')
    unknown = sorted(set(values) - set(CATEGORIES))
    if unknown:
        raise ValidationError(f'Unknown rating categories: {", ".join(unknown)}')

    cleaned = {}
    for category in CATEGORIES:
        raw = values.get(category, NOT_ASSESSED)
        if raw is None:
            raw = NOT_ASSESSED
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f'{category} must be a whole number between 0 and {MAX_RATING}')
        if raw < NOT_ASSESSED or raw > MAX_RATING:
            raise ValidationError(f'{category} must be between 0 and {MAX_RATING}')
        cleaned[category] = raw
    return cleaned


def category_average(values: Iterable[int | None]) -> CategoryStat:
    assessed = [v for v in values if v is not None and v > NOT_ASSESSED]
    if not assessed:
        return CategoryStat(None, 0)
    return CategoryStat(sum(assessed) / len(assessed), len(assessed))


def summarize(entries: Iterable[RatingEntry]) -> RatingSummary:
    """Flat average of every entry in scope, per category."""
    entries = list(entries)
    return RatingSummary({
        category: category_average(e.value(category) for e in entries)
        for category in CATEGORIES
    })


def summarize_for_coach(entries, coach_id):
    """What a single coach sees: only their own entries."""
    return summarize(e for e in entries if e.coach_id == coach_id)


def player_averages(entries: Iterable[RatingEntry]) -> dict[int, RatingSummary]:
    """Pool every coach's entries for each player."""
    by_player = {}
    for entry in entries:
        by_player.setdefault(entry.player_id, []).append(entry)
    return {player_id: summarize(rows) for player_id, rows in by_player.items()}


def session_aggregate(session_id, entries, present_player_ids=None,
                      session_date=None, theme=None) -> SessionAggregate:
    """Average within each player across coaches, then across players.

    When ``present_player_ids`` is given only those players contribute and
    the present count comes from it; otherwise every rated player counts.
    """
    entries = [e for e in entries if e.session_id == session_id]
    per_player = player_averages(entries)

    if present_player_ids is not None:
        present = set(present_player_ids)
        per_player = {pid: s for pid, s in per_player.items() if pid in present}
        present_count = len(present)
    else:
        present_count = len(per_player)

    categories = {}
    for category in CATEGORIES:
        player_means = [
            s.average(category) for s in per_player.values()
            if s.average(category) is not None
        ]
        if player_means:
            categories[category] = CategoryStat(sum(player_means) / len(player_means), len(player_means))
        else:
            categories[category] = CategoryStat(None, 0)

    return SessionAggregate(
        session_id=session_id,
        categories=categories,
        present_count=present_count,
        session_date=session_date,
        theme=theme,
    )

