"""Match clock state machine.

Transitions are pure functions from one ``TimerState`` to the next.
``MatchTimer`` binds them to a session and a ``TimerStore`` so the state is
saved after every transition and tick.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Protocol

from pitchside.errors import InvalidTransition, ValidationError

FIRST = 'first'
SECOND = 'second'


class Phase(str, Enum):
    NOT_STARTED = 'not_started'
    FIRST_HALF_RUNNING = 'first_half_running'
    FIRST_HALF_PAUSED = 'first_half_paused'
    HALF_TIME = 'half_time'
    SECOND_HALF_RUNNING = 'second_half_running'
    SECOND_HALF_PAUSED = 'second_half_paused'
    FULL_TIME = 'full_time'


RUNNING = {Phase.FIRST_HALF_RUNNING, Phase.SECOND_HALF_RUNNING}
PAUSED = {Phase.FIRST_HALF_PAUSED, Phase.SECOND_HALF_PAUSED}
IN_HALF = RUNNING | PAUSED


@dataclass(frozen=True)
class TimerState:
    minute: int = 0
    second: int = 0
    is_running: bool = False
    has_started: bool = False
    period: str = FIRST
    is_half_time: bool = False
    is_full_time: bool = False

    @property
    def phase(self):
        if self.is_full_time:
            return Phase.FULL_TIME
        if self.is_half_time:
            return Phase.HALF_TIME
        if not self.has_started:
            return Phase.NOT_STARTED
        if self.period == SECOND:
            return Phase.SECOND_HALF_RUNNING if self.is_running else Phase.SECOND_HALF_PAUSED
        return Phase.FIRST_HALF_RUNNING if self.is_running else Phase.FIRST_HALF_PAUSED

    @property
    def display(self):
        return f'{self.minute:02d}:{self.second:02d}'

    def to_dict(self):
        data = asdict(self)
        data['phase'] = self.phase.value
        data['display'] = self.display
        return data

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        return cls(
            minute=int(data.get('minute', 0)),
            second=int(data.get('second', 0)),
            is_running=bool(data.get('is_running', False)),
            has_started=bool(data.get('has_started', False)),
            period=data.get('period') or FIRST,
            is_half_time=bool(data.get('is_half_time', False)),
            is_full_time=bool(data.get('is_full_time', False)),
        )


def start(state):
    phase = state.phase
    if phase in RUNNING:
        return state
    if phase == Phase.NOT_STARTED or phase in PAUSED:
        return replace(state, is_running=True, has_started=True)
    raise InvalidTransition(f'Cannot start the clock at {phase.value}')


def pause(state):
    if state.phase in RUNNING:
        return replace(state, is_running=False)
    return state


def call_half_time(state):
    if state.phase not in (Phase.FIRST_HALF_RUNNING, Phase.FIRST_HALF_PAUSED):
        raise InvalidTransition(f'Cannot call half time at {state.phase.value}')
    return replace(state, is_running=False, is_half_time=True)


def resume_second_half(state):
    if state.phase != Phase.HALF_TIME:
        raise InvalidTransition(f'Cannot start the second half at {state.phase.value}')
    return replace(state, is_half_time=False, period=SECOND, minute=0, second=0, is_running=True)


def call_full_time(state):
    if state.phase not in (Phase.SECOND_HALF_RUNNING, Phase.SECOND_HALF_PAUSED):
        raise InvalidTransition(f'Cannot call full time at {state.phase.value}')
    return replace(state, is_running=False, is_full_time=True)


def reset(state):
    return TimerState()


def adjust_minute(state, delta):
    if delta not in (1, -1):
        raise ValidationError('Minute adjustments are +1 or -1')
    if state.phase not in IN_HALF:
        raise InvalidTransition(f'Cannot adjust the clock at {state.phase.value}')
    return replace(state, minute=max(0, state.minute + delta))


def tick(state, seconds=1):
    """Advance a running clock; stopped clocks are returned unchanged."""
    if seconds < 0:
        raise ValidationError('Cannot tick backwards')
    if state.phase not in RUNNING:
        return state
    carry, second = divmod(state.second + seconds, 60)
    return replace(state, minute=state.minute + carry, second=second)


class TimerStore(Protocol):
    def load(self, session_id) -> TimerState | None: ...

    def save(self, session_id, state: TimerState) -> None: ...


class InMemoryTimerStore:
    def __init__(self):
        self._states = {}

    def load(self, session_id):
        return self._states.get(session_id)

    def save(self, session_id, state):
        self._states[session_id] = state


class MatchTimer:
    """Clock for one session, persisted through ``store`` after every change."""

    ACTIONS = ('start', 'pause', 'half_time', 'second_half', 'full_time', 'reset', 'adjust', 'tick')

    def __init__(self, session_id, store):
        self.session_id = session_id
        self.store = store
        self.state = store.load(session_id) or TimerState()

    def _apply(self, new_state):
        self.store.save(self.session_id, new_state)
        self.state = new_state
        return new_state

    @property
    def minute(self):
        return self.state.minute

    @property
    def phase(self):
        return self.state.phase

    def start(self):
        return self._apply(start(self.state))

    def pause(self):
        return self._apply(pause(self.state))

    def call_half_time(self):
        return self._apply(call_half_time(self.state))

    def resume_second_half(self):
        return self._apply(resume_second_half(self.state))

    def call_full_time(self):
        return self._apply(call_full_time(self.state))

    def reset(self):
        return self._apply(reset(self.state))

    def adjust_minute(self, delta):
        return self._apply(adjust_minute(self.state, delta))

    def tick(self, seconds=1):
        return self._apply(tick(self.state, seconds))

    def dispatch(self, action, amount=None):
        """Run a named action, as sent by the timer endpoint."""
        if action == 'start':
            return self.start()
        if action == 'pause':
            return self.pause()
        if action == 'half_time':
            return self.call_half_time()
        if action == 'second_half':
            return self.resume_second_half()
        if action == 'full_time':
            return self.call_full_time()
        if action == 'reset':
            return self.reset()
        if action == 'adjust':
            return self.adjust_minute(1 if amount is None else amount)
        if action == 'tick':
            return self.tick(1 if amount is None else amount)
        raise ValidationError(f'Unknown timer action: {action}')
