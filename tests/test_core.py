from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from pitchside.errors import (
    AuthorizationError, ConflictError, DependencyFailure, LineupIncomplete, NotFoundError,
    ValidationError,
)
from pitchside.models import Attendance, MatchDetails, TeamSession
from pitchside.services import core
from pitchside.services.events import MatchEvent
from pitchside.services.lineup import STARTER, SUB, LineupEntry
from pitchside.services.timer import Phase


MATCH = {'opposition': 'Rovers', 'venue_type': 'away'}


def training(seeded, day, theme='Passing'):
    return core.create_session(seeded['team_id'], day, 'training', theme=theme)


def match(seeded, day, theme=None):
    return core.create_session(seeded['team_id'], day, 'match', theme=theme, match_details=dict(MATCH))


def starters(seeded, count=7):
    return [{'player_id': pid, 'role': 'starter'} for pid in seeded['player_ids'][:count]]


# --- Sessions ---

def test_create_training_session(seeded):
    session_id = training(seeded, '2025-09-01', theme='  Passing  ')
    session = core.get_session(session_id)
    assert session.session_date == date(2025, 9, 1)
    assert session.theme == 'Passing'
    assert session.match_details is None


def test_create_match_session_with_details(seeded):
    session_id = match(seeded, '06/09/2025')
    data = core.session_to_dict(core.get_session(session_id))
    assert data['session_date'] == '2025-09-06'
    assert data['match_details']['opposition'] == 'Rovers'
    assert data['match_details']['goals_for'] == 0


@pytest.mark.parametrize('kwargs', [
    {'session_date': 'someday', 'session_type': 'training'},
    {'session_date': '2025-09-01', 'session_type': 'friendly'},
    {'session_date': '2025-09-01', 'session_type': 'match', 'match_details': {}},
    {'session_date': '2025-09-01', 'session_type': 'match',
     'match_details': {'opposition': 'Rovers', 'venue_type': 'moon'}},
])
def test_create_session_validates_before_insert(seeded, kwargs):
    with pytest.raises(ValidationError):
        core.create_session(seeded['team_id'], **kwargs)
    assert TeamSession.query.count() == 0


def test_create_session_unknown_team(seeded):
    with pytest.raises(NotFoundError):
        core.create_session(999, '2025-09-01', 'training')


def test_match_details_failure_removes_session(seeded, monkeypatch):
    def failing_details(**kwargs):
        raise SQLAlchemyError('disk full')

    monkeypatch.setattr(core, 'MatchDetails', failing_details)
    with pytest.raises(DependencyFailure):
        match(seeded, '2025-09-06')

    assert TeamSession.query.count() == 0
    assert MatchDetails.query.count() == 0


def test_list_themes(seeded):
    training(seeded, '2025-09-01', theme='Passing')
    training(seeded, '2025-09-08', theme='Passing')
    training(seeded, '2025-09-15', theme='Defending')
    training(seeded, '2025-09-22', theme=None)
    core.create_session(seeded['other_team_id'], '2025-09-01', 'training', theme='Shooting')

    assert core.list_themes() == ['Defending', 'Passing', 'Shooting']
    assert core.list_themes({seeded['team_id']}) == ['Defending', 'Passing']
    assert core.list_themes(set()) == []


def test_list_sessions_newest_first(seeded):
    first = training(seeded, '2025-09-01')
    second = training(seeded, '2025-09-08')
    assert [s.id for s in core.list_sessions({seeded['team_id']})] == [second, first]
    assert core.list_sessions(set()) == []


# --- Attendance ---

def test_attendance_upsert_keeps_one_record(seeded):
    session_id = training(seeded, '2025-09-01')
    player_id = seeded['player_ids'][0]
    core.upsert_attendance(session_id, player_id, 'present')
    core.upsert_attendance(session_id, player_id, 'absent')

    assert Attendance.query.filter_by(session_id=session_id, player_id=player_id).count() == 1
    assert core.get_attendance(session_id) == [{'player_id': player_id, 'status': 'absent'}]


def test_attendance_rejects_unknown_status(seeded):
    session_id = training(seeded, '2025-09-01')
    with pytest.raises(ValidationError):
        core.upsert_attendance(session_id, seeded['player_ids'][0], 'late')
    with pytest.raises(NotFoundError):
        core.upsert_attendance(session_id, 999, 'present')


# --- Ratings ---

def test_ratings_are_scoped_to_the_acting_coach(seeded):
    session_id = training(seeded, '2025-09-01')
    pid = seeded['player_ids'][0]
    core.upsert_ratings(session_id, seeded['coach_id'], pid, {'passing': 5})
    core.upsert_ratings(session_id, seeded['assistant_id'], pid, {'passing': 3}, comments='Good')
    core.upsert_ratings(session_id, seeded['coach_id'], pid, {'passing': 4})

    entries = core.get_ratings(session_id)
    assert len(entries) == 2
    by_coach = {e.coach_id: e for e in entries}
    assert by_coach[seeded['coach_id']].values['passing'] == 4
    assert by_coach[seeded['assistant_id']].comments == 'Good'

    core.upsert_attendance(session_id, pid, 'present')
    view = core.session_rating_view(session_id, seeded['coach_id'])
    assert view['coach_summary']['category_avgs']['passing'] == 4.0
    assert view['players'][pid]['category_avgs']['passing'] == 3.5
    assert view['session']['category_avgs']['passing'] == 3.5
    assert [e['player_id'] for e in view['entries']] == [pid]


def test_invalid_ratings_are_not_saved(seeded):
    session_id = training(seeded, '2025-09-01')
    with pytest.raises(ValidationError):
        core.upsert_ratings(session_id, seeded['coach_id'], seeded['player_ids'][0], {'passing': 9})
    assert core.get_ratings(session_id) == []


def test_rating_comments_must_be_text(seeded):
    session_id = training(seeded, '2025-09-01')
    pid = seeded['player_ids'][0]
    with pytest.raises(ValidationError):
        core.upsert_ratings(session_id, seeded['coach_id'], pid, {'passing': 3}, comments=['nice'])
    assert core.get_ratings(session_id) == []


# --- Lineup ---

def test_commit_lineup_requires_full_side(seeded):
    session_id = match(seeded, '2025-09-06')
    with pytest.raises(ValidationError, match='at least one starter'):
        core.commit_lineup(session_id, [{'player_id': seeded['player_ids'][0], 'role': 'sub'}])
    with pytest.raises(ValidationError, match='Must have 7 starters'):
        core.commit_lineup(session_id, starters(seeded, 6))
    assert core.get_lineup(session_id) == []


def test_commit_lineup_saves_formation(seeded):
    session_id = match(seeded, '2025-09-06')
    lineup = starters(seeded) + [{'player_id': seeded['player_ids'][7], 'role': 'sub'}]
    manager = core.commit_lineup(session_id, lineup, formation='4-4-2')

    assert manager.is_complete()
    stored = core.get_lineup(session_id)
    assert len(stored) == 8
    assert {e.position for e in stored if e.role == STARTER} == {'GK', 'LB', 'CB', 'RB', 'LM', 'CM'}
    assert core.get_session(session_id).match_details.formation == '4-4-2'


def test_replace_lineup_swaps_everything(seeded):
    session_id = match(seeded, '2025-09-06')
    p = seeded['player_ids']
    core.replace_lineup(session_id, [LineupEntry(p[0], STARTER), LineupEntry(p[1], SUB)])
    core.replace_lineup(session_id, [LineupEntry(p[2], STARTER)])
    assert [e.player_id for e in core.get_lineup(session_id)] == [p[2]]

    with pytest.raises(ConflictError):
        core.replace_lineup(session_id, [LineupEntry(p[3], STARTER), LineupEntry(p[3], SUB)])
    assert [e.player_id for e in core.get_lineup(session_id)] == [p[2]]


def test_replace_lineup_failure_keeps_previous_lineup(seeded):
    session_id = match(seeded, '2025-09-06')
    p = seeded['player_ids']
    core.replace_lineup(session_id, [LineupEntry(p[0], STARTER, position='GK')])

    # the second row violates NOT NULL on player_id, after the delete has run
    with pytest.raises(DependencyFailure):
        core.replace_lineup(session_id, [LineupEntry(p[1], STARTER), LineupEntry(None, SUB)])

    assert core.get_lineup(session_id) == [LineupEntry(p[0], STARTER, position='GK')]


def test_previous_lineup_comes_from_latest_earlier_match(seeded):
    p = seeded['player_ids']
    older = match(seeded, '2025-09-06')
    newer = match(seeded, '2025-09-13')
    training(seeded, '2025-09-15')
    upcoming = match(seeded, '2025-09-20')
    core.replace_lineup(older, [LineupEntry(p[0], STARTER)])
    core.replace_lineup(newer, [LineupEntry(p[1], STARTER, position='GK', is_captain=True)])

    session = core.get_session(upcoming)
    previous = core.get_previous_lineup(session.team_id, session.session_date)
    assert previous == [LineupEntry(p[1], STARTER, position='GK', is_captain=True)]
    assert core.get_previous_lineup(seeded['team_id'], date(2025, 9, 1)) == []


# --- Match events ---

def test_coordinator_persists_and_caches_score(seeded):
    session_id = match(seeded, '2025-09-06')
    p = seeded['player_ids']
    core.commit_lineup(session_id, starters(seeded))

    coordinator = core.build_coordinator(session_id, created_by=seeded['coach_id'])
    coordinator.record_event({
        'event_type': 'goal', 'goal_type': 'scored', 'goal_context': 'penalty',
        'player_id': p[0], 'assisting_player_id': p[1], 'minute': 4,
    })
    coordinator.record_event({'event_type': 'goal', 'goal_type': 'conceded', 'goal_context': 'corner', 'minute': 9})
    coordinator.record_event({
        'event_type': 'goal', 'goal_type': 'scored', 'goal_context': 'open_play',
        'player_id': p[2], 'is_own_goal': True, 'minute': 9,
    })

    details = core.get_session(session_id).match_details
    assert (details.goals_for, details.goals_against) == (2, 1)

    reloaded = core.build_coordinator(session_id)
    assert reloaded.score().to_dict() == {'goals_for': 2, 'goals_against': 1}
    events = core.get_match_events(session_id)
    assert [e.minute for e in events] == [4, 9, 9]
    assert events[1].goal_type == 'conceded'
    assert all(e.team_id == seeded['team_id'] for e in events)
    assert core.get_match_events(session_id, since=events[0].id) == events[1:]


def test_coordinator_requires_complete_lineup(seeded):
    session_id = match(seeded, '2025-09-06')
    coordinator = core.build_coordinator(session_id)
    with pytest.raises(LineupIncomplete):
        coordinator.record_event({'event_type': 'yellow_card', 'player_id': seeded['player_ids'][0], 'minute': 1})
    assert core.get_match_events(session_id) == []


def test_training_sessions_have_no_match_tools(seeded):
    session_id = training(seeded, '2025-09-01')
    with pytest.raises(ValidationError):
        core.build_coordinator(session_id)
    with pytest.raises(ValidationError):
        core.match_timer(session_id)


def test_append_match_event_failure(seeded, monkeypatch):
    session_id = match(seeded, '2025-09-06')

    def broken_cache(session):
        raise SQLAlchemyError('locked')

    monkeypatch.setattr(core, '_refresh_score_cache', broken_cache)
    with pytest.raises(DependencyFailure):
        core.append_match_event(session_id, MatchEvent(event_type='yellow_card', minute=2, player_id=seeded['player_ids'][0]))
    assert core.get_match_events(session_id) == []


# --- Timer ---

def test_timer_state_survives_reload(seeded):
    session_id = match(seeded, '2025-09-06')
    timer = core.match_timer(session_id)
    timer.start()
    timer.tick(95)
    timer.call_half_time()

    reloaded = core.match_timer(session_id)
    assert reloaded.phase == Phase.HALF_TIME
    assert reloaded.state.display == '01:35'
    assert core.build_coordinator(session_id).current_minute == 1


# --- Reports ---

def _rate_session(seeded, session_id, ratings):
    """``ratings`` maps player index -> {coach key -> passing value}."""
    for idx, by_coach in ratings.items():
        pid = seeded['player_ids'][idx]
        core.upsert_attendance(session_id, pid, 'present')
        for coach_key, value in by_coach.items():
            core.upsert_ratings(session_id, seeded[coach_key], pid, {'passing': value})


def test_session_summaries_and_trend(seeded):
    first = training(seeded, '2025-09-01')
    second = training(seeded, '2025-09-08')
    training(seeded, '2025-09-15', theme='Defending')
    _rate_session(seeded, first, {0: {'coach_id': 5, 'assistant_id': 5}, 1: {'coach_id': 1}})
    _rate_session(seeded, second, {0: {'coach_id': 4}, 1: {'coach_id': 4}})
    core.upsert_attendance(second, seeded['player_ids'][2], 'present')

    result = core.get_session_summaries(seeded['team_id'], 'Passing', {seeded['team_id']})
    assert result['meta']['session_count'] == 2
    assert result['meta']['first_session_date'] == '2025-09-01'
    first_row, second_row = result['sessions']
    assert first_row['category_avgs']['passing'] == 3.0
    assert first_row['present_count'] == 2
    assert second_row['present_count'] == 3
    assert second_row['possible_slots'] == 24
    assert second_row['rated_slots'] == 2
    assert result['trends']['categories']['passing']['delta'] == 1.0
    assert result['trends']['categories']['passing']['direction'] == 'up'
    assert result['trends']['categories']['shooting']['delta'] is None


def test_session_summaries_access_rules(seeded):
    training(seeded, '2025-09-01')
    team_id = seeded['team_id']

    with pytest.raises(ValidationError):
        core.get_session_summaries(team_id, '  ', {team_id})
    with pytest.raises(ValidationError):
        core.get_session_summaries(None, 'Passing', {team_id})

    empty = core.get_session_summaries(team_id, 'Passing', set())
    assert empty['sessions'] == []
    assert empty['trends'] is None

    with pytest.raises(AuthorizationError):
        core.get_session_summaries(team_id, 'Passing', {seeded['other_team_id']})

    none = core.get_session_summaries(team_id, 'Finishing', {team_id})
    assert none['sessions'] == []
    assert none['meta']['team_name'] == 'Lions'


def test_team_raq(seeded):
    summary = core.team_raq(seeded['team_id'])
    assert summary['total'] == 8
    assert summary['counts'] == {'Q1': 3, 'Q2': 2, 'Q3': 1, 'Q4': 2}


def test_team_attendance_summary(seeded):
    p = seeded['player_ids']
    s1 = training(seeded, '2025-09-01')
    s2 = training(seeded, '2025-09-08')
    core.upsert_attendance(s1, p[1], 'present')
    core.upsert_attendance(s2, p[1], 'present')
    core.upsert_attendance(s1, p[0], 'present')
    core.upsert_attendance(s2, p[0], 'absent')

    summary = core.team_attendance_summary(seeded['team_id'])
    assert summary['total_sessions'] == 2
    top, second = summary['players'][:2]
    assert (top['player_id'], top['present'], top['present_pct']) == (p[1], 2, 100)
    assert (second['player_id'], second['present_pct']) == (p[0], 50)
    assert summary['players'][-1]['marked'] == 0


def test_player_development(seeded):
    pid = seeded['player_ids'][0]
    s1 = training(seeded, '2025-09-01')
    s2 = match(seeded, '2025-09-06')
    core.upsert_attendance(s1, pid, 'present')
    core.upsert_attendance(s2, pid, 'present')
    core.upsert_ratings(s1, seeded['coach_id'], pid, {'passing': 2, 'attitude': 5}, comments='Keen')
    core.upsert_ratings(s2, seeded['coach_id'], pid, {'passing': 4})

    dev = core.player_development(pid)
    assert dev['summary']['category_avgs']['passing'] == 3.0
    assert dev['summary']['category_avgs']['attitude'] == 5.0
    assert dev['summary']['category_avgs']['shooting'] is None
    assert dev['training_sessions'] == 1
    assert dev['training_attended'] == 1
    assert dev['recent_comments'] == [{'session_id': s1, 'comments': 'Keen'}]


# --- Roster ---

def test_find_potential_duplicates():
    known = ['Alfie Barnes', 'Ben Carter']
    assert core.find_potential_duplicates(['Alfie Barnes'], known) == ["'Alfie Barnes' already exists."]
    assert 'Did you mean' in core.find_potential_duplicates(['Alfie Barns'], known)[0]
    assert core.find_potential_duplicates(['Zach Young'], known) == []
    assert core.find_potential_duplicates(['Zach Young'], []) == []


def test_add_player_checks_duplicates(seeded):
    with pytest.raises(ConflictError):
        core.add_player('Alfie Barnes', team_id=seeded['team_id'])
    result = core.add_player('Alfie Barnes', dob='2015-05-05', team_id=seeded['team_id'], confirm=True)
    assert result['age_group_match'] is True
    assert len(core.roster(seeded['team_id'])) == 10


def test_add_player_flags_age_group_mismatch(seeded):
    result = core.add_player('Zach Young', dob='2012-05-05', team_id=seeded['team_id'])
    assert result['age_group_match'] is False
    with pytest.raises(ValidationError):
        core.add_player('  ')
    with pytest.raises(ValidationError):
        core.add_player('Yusuf Ali', dob='soon')


def test_season_start_date():
    assert core.season_start_date('2025/26') == date(2025, 8, 1)
    assert core.season_start_date('2024-25') == date(2024, 8, 1)
    assert core.season_start_date('next year') is None
    assert core.season_start_date(None) is None


def test_session_attendance_report(seeded):
    p = seeded['player_ids']
    later = training(seeded, '2025-09-08')
    earlier = match(seeded, '2025-09-06')
    other = core.create_session(seeded['other_team_id'], '2025-09-07', 'training')
    core.upsert_attendance(earlier, p[0], 'present')
    core.upsert_attendance(earlier, p[1], 'present')
    core.upsert_attendance(earlier, p[2], 'absent')
    core.upsert_attendance(other, p[3], 'present')

    report = core.session_attendance_report({seeded['team_id']})
    assert [row['session_id'] for row in report] == [earlier, later]
    first = report[0]
    assert (first['present'], first['marked']) == (2, 3)
    assert first['team_name'] == 'Lions'
    assert first['age_group'] == 'U11'
    assert first['season'] == '2025/26'
    assert first['session_type'] == 'match'
    assert (report[1]['present'], report[1]['marked']) == (0, 0)
    assert report[1]['theme'] == 'Passing'

    both = core.session_attendance_report({seeded['team_id'], seeded['other_team_id']})
    assert [row['session_id'] for row in both] == [earlier, other, later]
    assert core.session_attendance_report(set()) == []
