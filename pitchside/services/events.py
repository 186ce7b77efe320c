"""Append-only match event log and the score derived from it."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace

from pitchside.errors import InvalidEventType, ValidationError
from pitchside.utils import parse_bool

GOAL = 'goal'
YELLOW_CARD = 'yellow_card'
RED_CARD = 'red_card'
SUBSTITUTION = 'substitution'
EVENT_TYPES = (GOAL, YELLOW_CARD, RED_CARD, SUBSTITUTION)

SCORED = 'scored'
CONCEDED = 'conceded'
GOAL_TYPES = (SCORED, CONCEDED)

GOAL_CONTEXTS = ('open_play', 'free_kick', 'corner', 'penalty', 'other')
SUB_REASONS = ('injury', 'tactical', 'yellow_card', 'fatigue', 'other')


@dataclass(frozen=True)
class MatchEvent:
    event_type: str
    minute: int
    player_id: int | None = None
    team_id: int | None = None
    goal_type: str | None = None
    goal_context: str | None = None
    assisting_player_id: int | None = None
    is_own_goal: bool = False
    player_off_id: int | None = None
    sub_reason: str | None = None
    notes: str | None = None
    id: int | None = None
    seq: int | None = None

    def to_dict(self):
        return {
            'id': self.id,
            'event_type': self.event_type,
            'minute': self.minute,
            'player_id': self.player_id,
            'team_id': self.team_id,
            'goal_type': self.goal_type,
            'goal_context': self.goal_context,
            'assisting_player_id': self.assisting_player_id,
            'is_own_goal': self.is_own_goal,
            'player_off_id': self.player_off_id,
            'sub_reason': self.sub_reason,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class Score:
    goals_for: int
    goals_against: int

    def to_dict(self):
        return {'goals_for': self.goals_for, 'goals_against': self.goals_against}


def validate_event(event):
    """Raise ValidationError (or InvalidEventType) for a malformed event."""
    if event.event_type not in EVENT_TYPES:
        raise InvalidEventType(f'Invalid event_type: {event.event_type}')

    minute = event.minute
    if isinstance(minute, bool) or not isinstance(minute, int) or minute < 0:
        raise ValidationError('minute must be a non-negative whole number')

    if event.event_type == GOAL:
        if event.goal_type not in GOAL_TYPES:
            raise ValidationError('goal_type required for goals (scored or conceded)')
        if event.goal_context not in GOAL_CONTEXTS:
            raise ValidationError(
                'Invalid goal_context: must be one of ' + ', '.join(GOAL_CONTEXTS))
        if event.goal_type == SCORED:
            if event.player_id is None:
                raise ValidationError('Player required for scored goals')
            if not event.is_own_goal and event.assisting_player_id is None:
                raise ValidationError('Assist player required for regular goals')
    elif event.event_type == SUBSTITUTION:
        if event.player_id is None:
            raise ValidationError('Player coming on required')
        if event.player_off_id is None:
            raise ValidationError('Player going off required')
        if event.player_id == event.player_off_id:
            raise ValidationError('Players coming on and going off must differ')
        if event.sub_reason not in SUB_REASONS:
            raise ValidationError('Invalid sub_reason')
    else:
        if event.player_id is None:
            raise ValidationError('Player required for this event')


def event_from_dict(data, minute=None):
    """Build an event from request data, falling back to ``minute`` when absent."""
    def as_id(key):
        value = data.get(key)
        if value in (None, ''):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid {key}')

    raw_minute = data.get('minute', minute)
    if raw_minute is None:
        raise ValidationError('minute is required')
    if isinstance(raw_minute, str):
        if not raw_minute.strip().isdigit():
            raise ValidationError('Invalid minute')
        raw_minute = int(raw_minute)

    return MatchEvent(
        event_type=data.get('event_type'),
        minute=raw_minute,
        player_id=as_id('player_id'),
        team_id=as_id('team_id'),
        goal_type=data.get('goal_type') or None,
        goal_context=data.get('goal_context') or None,
        assisting_player_id=as_id('assisting_player_id'),
        is_own_goal=parse_bool(data.get('is_own_goal'), 'is_own_goal'),
        player_off_id=as_id('player_off_id'),
        sub_reason=data.get('sub_reason') or None,
        notes=data.get('notes') or None,
    )


def normalize(event):
    """Blank out the fields that do not belong to the event's type."""
    if event.event_type == GOAL:
        return replace(
            event, player_off_id=None, sub_reason=None,
            assisting_player_id=event.assisting_player_id if event.goal_type == SCORED else None,
        )
    if event.event_type == SUBSTITUTION:
        return replace(event, goal_type=None, goal_context=None, assisting_player_id=None, is_own_goal=False)
    return replace(
        event, goal_type=None, goal_context=None, assisting_player_id=None,
        is_own_goal=False, player_off_id=None, sub_reason=None,
    )


def derive_score(events):
    goals_for = goals_against = 0
    for event in events:
        if event.event_type != GOAL:
            continue
        if event.goal_type == SCORED:
            goals_for += 1
        elif event.goal_type == CONCEDED:
            goals_against += 1
    return Score(goals_for, goals_against)


class MatchEventLog:
    """Ordered, append-only collection of match events."""

    def __init__(self, events=None):
        self._events = []
        for event in events or []:
            self._append(event)

    def _append(self, event):
        event = replace(event, seq=len(self._events))
        self._events.append(event)
        return event

    def record(self, event):
        validate_event(event)
        return self._append(normalize(event))

    def __len__(self):
        return len(self._events)

    def __iter__(self):
        return iter(self.timeline())

    def timeline(self):
        """Events by minute, ties kept in insertion order."""
        return sorted(self._events, key=lambda e: (e.minute, e.seq))

    def score(self):
        return derive_score(self._events)

    def discipline(self):
        yellows = Counter()
        reds = Counter()
        for event in self._events:
            if event.event_type == YELLOW_CARD:
                yellows[event.player_id] += 1
            elif event.event_type == RED_CARD:
                reds[event.player_id] += 1
        players = set(yellows) | set(reds)
        return {
            pid: {'yellow_cards': yellows[pid], 'red_cards': reds[pid]}
            for pid in players
        }
