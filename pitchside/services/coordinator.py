"""Ties lineup, event log and clock together for one match session."""

from __future__ import annotations

import logging

from pitchside.errors import LineupIncomplete
from pitchside.services.events import MatchEventLog, event_from_dict, validate_event, normalize
from pitchside.services.timer import Phase

logger = logging.getLogger(__name__)

LEADING = 'Leading'
LOSING = 'Losing'
LEVEL = 'Level'
STARTED = 'Started'


class EventFeed:
    """Fan-out of accepted match events to subscribers.

    Transport is left to the caller: an HTTP adapter may poll, a test may
    collect into a list.
    """

    def __init__(self):
        self._subscribers = []

    def subscribe(self, callback):
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, session_id, event):
        for callback in list(self._subscribers):
            callback(session_id, event)


def match_status(timer_state, score):
    if timer_state is None or not timer_state.has_started:
        return None
    if score.goals_for > score.goals_against:
        return LEADING
    if score.goals_for < score.goals_against:
        return LOSING
    if score.goals_for == 0:
        return STARTED
    return LEVEL


class SessionCoordinator:
    def __init__(self, session_id, lineup, event_log=None, timer=None, feed=None, persist=None):
        self.session_id = session_id
        self.lineup = lineup
        self.event_log = event_log if event_log is not None else MatchEventLog()
        self.timer = timer
        self.feed = feed
        self.persist = persist

    @property
    def current_minute(self):
        if self.timer is None:
            return 0
        return self.timer.minute

    @property
    def lineup_complete(self):
        return self.lineup.is_complete()

    def record_event(self, data):
        """Validate, persist and log a new event built from ``data``.

        The minute defaults to the clock's current minute. Nothing is stored
        or logged if any check fails.
        """
        if not self.lineup_complete:
            raise LineupIncomplete(
                'Please complete the lineup before logging match events')

        event = normalize(event_from_dict(data, minute=self.current_minute))
        validate_event(event)
        if self.persist is not None:
            event = self.persist(self.session_id, event)
        event = self.event_log.record(event)
        logger.info('Session %s: %s at %s\'', self.session_id, event.event_type, event.minute)
        if self.feed is not None:
            self.feed.publish(self.session_id, event)
        return event

    def score(self):
        return self.event_log.score()

    def status(self):
        state = self.timer.state if self.timer is not None else None
        return match_status(state, self.score())

    def snapshot(self):
        state = self.timer.state if self.timer is not None else None
        return {
            'session_id': self.session_id,
            'minute': self.current_minute,
            'phase': state.phase.value if state else Phase.NOT_STARTED.value,
            'lineup_complete': self.lineup_complete,
            'score': self.score().to_dict(),
            'status': self.status(),
        }
