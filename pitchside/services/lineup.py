"""Working match lineup: starters, substitutes and formation slots."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from pitchside.errors import ConflictError, NotFoundError, RosterFull, ValidationError
from pitchside.utils import parse_bool

STARTER = 'starter'
SUB = 'sub'
ROLES = (STARTER, SUB)

DEFAULT_SQUAD_SIZE = 11

FORMATIONS = {
    '4-4-2': ['GK', 'LB', 'CB', 'CB', 'RB', 'LM', 'CM', 'CM', 'RM', 'ST', 'ST'],
    '4-3-3': ['GK', 'LB', 'CB', 'CB', 'RB', 'LM', 'CM', 'RM', 'LW', 'ST', 'RW'],
    '3-5-2': ['GK', 'CB', 'CB', 'CB', 'LWB', 'LM', 'CM', 'RM', 'RWB', 'ST', 'ST'],
    '5-3-2': ['GK', 'LB', 'CB', 'CB', 'CB', 'RB', 'LM', 'CM', 'RM', 'ST', 'ST'],
    '4-2-3-1': ['GK', 'LB', 'CB', 'CB', 'RB', 'DM', 'DM', 'LW', 'CM', 'RW', 'ST'],
}

# goalkeeper, then defence, midfield, attack
POSITION_ORDER = {
    'GK': 0,
    'LB': 1, 'LWB': 1, 'CB': 2, 'RB': 3, 'RWB': 3,
    'DM': 4, 'LM': 4, 'CM': 5, 'AM': 6, 'RM': 7,
    'LW': 8, 'RW': 9,
    'ST': 10, 'CF': 10,
}
UNRANKED = 99

_AGE_GROUP_RE = re.compile(r'U(\d{1,2})', re.IGNORECASE)


def required_squad_size(age_group):
    """Players per side for an age-group label such as 'U11'."""
    if not age_group:
        return DEFAULT_SQUAD_SIZE
    m = _AGE_GROUP_RE.search(age_group)
    if not m:
        return DEFAULT_SQUAD_SIZE
    band = int(m.group(1))
    if band <= 11:
        return 7
    if band == 12:
        return 9
    return DEFAULT_SQUAD_SIZE


def position_rank(position):
    return POSITION_ORDER.get(position or '', UNRANKED)


@dataclass(frozen=True)
class LineupEntry:
    player_id: int
    role: str
    position: str | None = None
    shirt_number: int | None = None
    is_captain: bool = False

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'role': self.role,
            'position': self.position,
            'shirt_number': self.shirt_number,
            'is_captain': self.is_captain,
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Each lineup entry must be an object')
        try:
            player_id = int(data['player_id'])
        except (KeyError, TypeError, ValueError):
            raise ValidationError('Each lineup entry needs a player_id')
        role = data.get('role')
        if role not in ROLES:
            raise ValidationError(f'Invalid role: {role}')
        shirt = data.get('shirt_number')
        if shirt in ('', None):
            shirt = None
        else:
            try:
                shirt = int(shirt)
            except (TypeError, ValueError):
                raise ValidationError('shirt_number must be a number')
        return cls(
            player_id=player_id,
            role=role,
            position=data.get('position') or None,
            shirt_number=shirt,
            is_captain=parse_bool(data.get('is_captain'), 'is_captain'),
        )


class LineupManager:
    """Working set of lineup entries for one match before they are committed."""

    def __init__(self, required_size=DEFAULT_SQUAD_SIZE, entries=None):
        self.required_size = required_size
        self._entries = []
        self.formation = None
        for entry in entries or []:
            self._entries.append(entry)

    @classmethod
    def for_age_group(cls, age_group, entries=None):
        return cls(required_squad_size(age_group), entries)

    @property
    def entries(self):
        return list(self._entries)

    @property
    def starters(self):
        return [e for e in self._entries if e.role == STARTER]

    @property
    def subs(self):
        return [e for e in self._entries if e.role == SUB]

    def is_complete(self):
        return len(self.starters) == self.required_size

    def get(self, player_id):
        for entry in self._entries:
            if entry.player_id == player_id:
                return entry
        return None

    def add_player(self, player_id, role):
        if role not in ROLES:
            raise ValidationError(f'Invalid role: {role}')
        if self.get(player_id) is not None:
            raise ConflictError('Player is already in the lineup')
        if role == STARTER and len(self.starters) >= self.required_size:
            raise RosterFull(f'Maximum {self.required_size} starters allowed')
        entry = LineupEntry(player_id=player_id, role=role)
        self._entries.append(entry)
        return entry

    def remove_player(self, player_id):
        self._entries = [e for e in self._entries if e.player_id != player_id]

    def set_field(self, player_id, **patch):
        allowed = {'position', 'shirt_number', 'is_captain'}
        unknown = set(patch) - allowed
        if unknown:
            raise ValidationError(f'Cannot update {", ".join(sorted(unknown))}')
        for i, entry in enumerate(self._entries):
            if entry.player_id == player_id:
                self._entries[i] = replace(entry, **patch)
                return self._entries[i]
        raise NotFoundError('Player is not in the lineup')

    def apply_formation(self, name):
        """Assign formation slots to starters in position-priority order.

        Starters are re-sorted by their current position each call, so manual
        position changes made after a previous formation are overwritten.
        """
        positions = FORMATIONS.get(name)
        if positions is None:
            raise ValidationError(f'Unknown formation: {name}')

        ordered = sorted(self.starters, key=lambda e: position_rank(e.position))
        assigned = {}
        for idx, starter in enumerate(ordered):
            if idx < len(positions):
                assigned[starter.player_id] = positions[idx]

        self._entries = [
            replace(e, position=assigned[e.player_id]) if e.role == STARTER and e.player_id in assigned else e
            for e in self._entries
        ]
        self.formation = name
        return self.entries

    def load_previous(self, previous_entries):
        """Replace the working lineup wholesale with another match's lineup."""
        self._entries = [
            LineupEntry(
                player_id=e.player_id,
                role=e.role,
                position=e.position,
                shirt_number=e.shirt_number,
                is_captain=e.is_captain,
            )
            for e in previous_entries
        ]
        return self.entries

    def sorted_starters(self):
        return sorted(self.starters, key=lambda e: position_rank(e.position))
