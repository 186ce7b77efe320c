import logging
import re
from datetime import date
from functools import partial

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from thefuzz import process as fuzz_process

from pitchside.errors import (
    AuthorizationError, ConflictError, DependencyFailure, NotFoundError, ValidationError,
)
from pitchside.extensions import db
from pitchside.models import (
    Attendance, CoachFeedback, MatchDetails, MatchEventRecord, MatchLineup,
    MatchTimerState, Player, Team, TeamPlayer, TeamSession,
)
from pitchside.services.coordinator import SessionCoordinator
from pitchside.services.events import MatchEvent, MatchEventLog, derive_score
from pitchside.services.lineup import LineupEntry, LineupManager, required_squad_size
from pitchside.services.ratings import (
    CATEGORIES, RatingEntry, player_averages, session_aggregate, summarize,
    summarize_for_coach, validate_rating_values,
)
from pitchside.services.timer import MatchTimer, TimerState
from pitchside.services.trends import analyze, player_matches_team_age_group, raq_summary
from pitchside.utils import require_date

logger = logging.getLogger(__name__)

SESSION_TYPES = ('training', 'match')
VENUE_TYPES = ('home', 'away', 'neutral')
ATTENDANCE_STATUSES = ('present', 'absent')


def _commit(action):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Failed to %s: %s', action, e)
        raise DependencyFailure(f'Failed to {action}')


def get_team(team_id):
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFoundError('Team not found')
    return team


def get_session(session_id):
    session = db.session.get(TeamSession, session_id)
    if session is None:
        raise NotFoundError('Session not found')
    return session


def get_player(player_id):
    player = db.session.get(Player, player_id)
    if player is None:
        raise NotFoundError('Player not found')
    return player


def session_to_dict(session):
    data = {
        'id': session.id,
        'team_id': session.team_id,
        'team_name': session.team.name if session.team else None,
        'age_group': session.team.age_group if session.team else None,
        'session_date': session.session_date.isoformat(),
        'session_type': session.session_type,
        'theme': session.theme,
        'match_details': None,
    }
    md = session.match_details
    if md is not None:
        data['match_details'] = {
            'opposition': md.opposition,
            'venue_type': md.venue_type,
            'venue_name': md.venue_name,
            'competition': md.competition,
            'formation': md.formation,
            'goals_for': md.goals_for,
            'goals_against': md.goals_against,
        }
    return data


# --- Sessions ---

def create_session(team_id, session_date, session_type, theme=None, match_details=None):
    """Create a session; a match also gets its match details or nothing at all."""
    get_team(team_id)
    session_date = require_date(session_date, 'session_date')
    session_type = (session_type or '').strip().lower()
    if session_type not in SESSION_TYPES:
        raise ValidationError('Invalid session_type')
    theme = (theme or '').strip() or None

    details = None
    if session_type == 'match':
        md = match_details or {}
        if not isinstance(md, dict):
            raise ValidationError('match_details must be an object')
        opposition = str(md.get('opposition') or '').strip()
        if not opposition:
            raise ValidationError('Match opposition is required')
        venue_type = md.get('venue_type') or 'home'
        if venue_type not in VENUE_TYPES:
            raise ValidationError('Invalid venue_type')
        details = dict(
            opposition=opposition,
            venue_type=venue_type,
            venue_name=md.get('venue_name') or None,
            competition=md.get('competition') or None,
            formation=md.get('formation') or None,
        )

    new_session = TeamSession(
        team_id=team_id,
        session_date=session_date,
        session_type=session_type,
        theme=theme,
    )
    db.session.add(new_session)
    _commit('create session')
    session_id = new_session.id
    logger.info('Created %s session %s for team %s', session_type, session_id, team_id)

    if details is not None:
        try:
            db.session.add(MatchDetails(session_id=session_id, goals_for=0, goals_against=0, **details))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Match details insert failed for session %s, rolling back: %s', session_id, e)
            _delete_session(session_id)
            raise DependencyFailure('Failed to create match details')

    return session_id


def _delete_session(session_id):
    orphan = db.session.get(TeamSession, session_id)
    if orphan is None:
        return
    db.session.delete(orphan)
    _commit('roll back session')
    logger.info('Rolled back session %s', session_id)


def list_sessions(team_ids):
    if not team_ids:
        return []
    return TeamSession.query.filter(TeamSession.team_id.in_(sorted(team_ids)))\
        .order_by(TeamSession.session_date.desc(), TeamSession.id.desc()).all()


def list_themes(team_ids=None):
    if team_ids is not None and not team_ids:
        return []
    query = db.session.query(TeamSession.theme).filter(TeamSession.theme.isnot(None))
    if team_ids is not None:
        query = query.filter(TeamSession.team_id.in_(sorted(team_ids)))
    themes = {row[0].strip() for row in query.distinct().all() if row[0] and row[0].strip()}
    return sorted(themes)


# --- Attendance ---

def get_attendance(session_id):
    get_session(session_id)
    rows = Attendance.query.filter_by(session_id=session_id).order_by(Attendance.player_id).all()
    return [{'player_id': r.player_id, 'status': r.status} for r in rows]


def upsert_attendance(session_id, player_id, status):
    if status not in ATTENDANCE_STATUSES:
        raise ValidationError('status must be present or absent')
    get_session(session_id)
    get_player(player_id)

    row = Attendance.query.filter_by(session_id=session_id, player_id=player_id).first()
    if row is None:
        row = Attendance(session_id=session_id, player_id=player_id, status=status)
        db.session.add(row)
    else:
        row.status = status
    _commit('save attendance')
    return {'player_id': player_id, 'status': status}


def present_player_ids(session_ids):
    if not session_ids:
        return {}
    rows = Attendance.query.filter(Attendance.session_id.in_(session_ids), Attendance.status == 'present').all()
    present = {sid: set() for sid in session_ids}
    for r in rows:
        present[r.session_id].add(r.player_id)
    return present


# --- Ratings ---

def _rating_from_row(row):
    return RatingEntry(
        session_id=row.session_id,
        player_id=row.player_id,
        coach_id=row.coach_id,
        values={c: getattr(row, c) or 0 for c in CATEGORIES},
        comments=row.comments,
    )


def get_ratings(session_id):
    get_session(session_id)
    rows = CoachFeedback.query.filter_by(session_id=session_id).order_by(CoachFeedback.id).all()
    return [_rating_from_row(r) for r in rows]


def upsert_ratings(session_id, acting_coach_id, player_id, category_values, comments=None):
    """Save one coach's ratings for a player; only that coach's row is touched."""
    values = validate_rating_values(category_values)
    if comments is not None and not isinstance(comments, str):
        raise ValidationError('comments must be text')
    get_session(session_id)
    get_player(player_id)

    row = CoachFeedback.query.filter_by(
        session_id=session_id, player_id=player_id, coach_id=acting_coach_id).first()
    if row is None:
        row = CoachFeedback(session_id=session_id, player_id=player_id, coach_id=acting_coach_id)
        db.session.add(row)
    for category, value in values.items():
        setattr(row, category, value)
    row.comments = (comments or '').strip() or None
    _commit('save ratings')
    return _rating_from_row(row)


def session_rating_view(session_id, coach_id):
    """Ratings for one session as a given coach sees them, plus the pooled view."""
    entries = get_ratings(session_id)
    present = present_player_ids([session_id])[session_id]
    own = [e for e in entries if e.coach_id == coach_id]
    return {
        'session_id': session_id,
        'entries': [
            {'player_id': e.player_id, 'ratings': dict(e.values), 'comments': e.comments}
            for e in own
        ],
        'coach_summary': summarize_for_coach(entries, coach_id).to_dict(),
        'players': {pid: s.to_dict() for pid, s in player_averages(entries).items()},
        'session': session_aggregate(session_id, entries, present_player_ids=present).to_dict(),
    }


# --- Lineup ---

def _lineup_from_row(row):
    return LineupEntry(
        player_id=row.player_id,
        role=row.role,
        position=row.position,
        shirt_number=row.shirt_number,
        is_captain=bool(row.is_captain),
    )


def get_lineup(session_id):
    rows = MatchLineup.query.filter_by(session_id=session_id).order_by(MatchLineup.id).all()
    return [_lineup_from_row(r) for r in rows]


def replace_lineup(session_id, entries):
    """Swap the committed lineup for ``entries`` in a single transaction."""
    get_session(session_id)
    seen = set()
    for entry in entries:
        if entry.player_id in seen:
            raise ConflictError('The lineup contains duplicate players')
        seen.add(entry.player_id)

    try:
        MatchLineup.query.filter_by(session_id=session_id).delete()
        for entry in entries:
            db.session.add(MatchLineup(
                session_id=session_id,
                player_id=entry.player_id,
                role=entry.role,
                position=entry.position,
                shirt_number=entry.shirt_number,
                is_captain=entry.is_captain,
            ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Failed to replace lineup for session %s: %s', session_id, e)
        raise DependencyFailure('Failed to save lineup')
    logger.info('Saved lineup of %s players for session %s', len(entries), session_id)
    return entries


def get_previous_lineup(team_id, before_date):
    """Lineup of the team's most recent match before ``before_date``, or []."""
    previous = TeamSession.query.filter(
        TeamSession.team_id == team_id,
        TeamSession.session_type == 'match',
        TeamSession.session_date < before_date,
    ).order_by(TeamSession.session_date.desc(), TeamSession.id.desc()).first()
    if previous is None:
        return []
    return get_lineup(previous.id)


def lineup_manager_for(session, entries=None):
    if entries is None:
        entries = get_lineup(session.id)
    return LineupManager.for_age_group(session.team.age_group if session.team else None, entries)


def commit_lineup(session_id, raw_entries, formation=None):
    """Validate a submitted lineup through the manager, then replace the stored one."""
    session = get_session(session_id)
    if raw_entries is not None and not isinstance(raw_entries, list):
        raise ValidationError('lineup must be a list')
    manager = lineup_manager_for(session, entries=[])
    for data in raw_entries or []:
        entry = LineupEntry.from_dict(data)
        manager.add_player(entry.player_id, entry.role)
        manager.set_field(
            entry.player_id,
            position=entry.position,
            shirt_number=entry.shirt_number,
            is_captain=entry.is_captain,
        )
    if formation:
        manager.apply_formation(formation)
    if not manager.starters:
        raise ValidationError('Must have at least one starter')
    if not manager.is_complete():
        raise ValidationError(f'Must have {manager.required_size} starters')

    replace_lineup(session_id, manager.entries)
    if formation and session.match_details is not None:
        session.match_details.formation = formation
        _commit('save formation')
    return manager


# --- Match events ---

def _event_from_row(row):
    return MatchEvent(
        id=row.id,
        event_type=row.event_type,
        minute=row.minute,
        player_id=row.player_id,
        team_id=row.team_id,
        goal_type=row.goal_type,
        goal_context=row.goal_context,
        assisting_player_id=row.assisting_player_id,
        is_own_goal=bool(row.is_own_goal),
        player_off_id=row.player_off_id,
        sub_reason=row.sub_reason,
        notes=row.notes,
    )


def load_event_log(session_id):
    # insertion order, so that equal minutes keep the order they were logged in
    rows = MatchEventRecord.query.filter_by(session_id=session_id).order_by(MatchEventRecord.id).all()
    return MatchEventLog(_event_from_row(r) for r in rows)


def get_match_events(session_id, since=None):
    get_session(session_id)
    events = load_event_log(session_id).timeline()
    if since is not None:
        events = [e for e in events if e.id is not None and e.id > since]
    return events


def append_match_event(session_id, event, created_by=None):
    """Store an already validated event and refresh the cached scoreline."""
    session = get_session(session_id)
    row = MatchEventRecord(
        session_id=session_id,
        event_type=event.event_type,
        minute=event.minute,
        player_id=event.player_id,
        team_id=event.team_id if event.team_id is not None else session.team_id,
        goal_type=event.goal_type,
        goal_context=event.goal_context,
        assisting_player_id=event.assisting_player_id,
        is_own_goal=event.is_own_goal,
        player_off_id=event.player_off_id,
        sub_reason=event.sub_reason,
        notes=event.notes,
        created_by=created_by,
    )
    try:
        db.session.add(row)
        db.session.flush()
        _refresh_score_cache(session)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('Failed to save match event for session %s: %s', session_id, e)
        raise DependencyFailure('Failed to save event')
    return _event_from_row(row)


def _refresh_score_cache(session):
    md = session.match_details
    if md is None:
        return
    rows = MatchEventRecord.query.filter_by(session_id=session.id).all()
    score = derive_score(_event_from_row(r) for r in rows)
    md.goals_for = score.goals_for
    md.goals_against = score.goals_against


class SqlTimerStore:
    """TimerStore backed by the match_timer_state table."""

    def load(self, session_id):
        row = db.session.get(MatchTimerState, session_id)
        if row is None:
            return None
        return TimerState(
            minute=row.minute,
            second=row.second,
            is_running=row.is_running,
            has_started=row.has_started,
            period=row.period,
            is_half_time=row.is_half_time,
            is_full_time=row.is_full_time,
        )

    def save(self, session_id, state):
        row = db.session.get(MatchTimerState, session_id)
        if row is None:
            row = MatchTimerState(session_id=session_id)
            db.session.add(row)
        row.minute = state.minute
        row.second = state.second
        row.is_running = state.is_running
        row.has_started = state.has_started
        row.period = state.period
        row.is_half_time = state.is_half_time
        row.is_full_time = state.is_full_time
        _commit('save timer')


def match_timer(session_id):
    session = get_session(session_id)
    if session.session_type != 'match':
        raise ValidationError('Only match sessions have a clock')
    return MatchTimer(session_id, SqlTimerStore())


def build_coordinator(session_id, feed=None, created_by=None):
    session = get_session(session_id)
    if session.session_type != 'match':
        raise ValidationError('Match events can only be logged for matches')
    return SessionCoordinator(
        session_id,
        lineup=lineup_manager_for(session),
        event_log=load_event_log(session_id),
        timer=MatchTimer(session_id, SqlTimerStore()),
        feed=feed,
        persist=partial(append_match_event, created_by=created_by),
    )


# --- Reports ---

def _empty_summaries(team_id, theme, team_name=''):
    return {
        'meta': {
            'team_id': team_id,
            'team_name': team_name,
            'theme': theme,
            'session_count': 0,
            'first_session_date': None,
            'last_session_date': None,
        },
        'sessions': [],
        'trends': None,
    }


def get_session_summaries(team_id, theme, permitted_team_ids):
    """Per-session two-level rating aggregates for one team and theme, with trends."""
    if isinstance(team_id, bool) or not isinstance(team_id, int) or team_id <= 0:
        raise ValidationError('team_id is required')
    theme = (theme or '').strip()
    if not theme:
        raise ValidationError('theme is required')

    if not permitted_team_ids:
        return _empty_summaries(team_id, theme)
    if team_id not in permitted_team_ids:
        raise AuthorizationError(f'team {team_id} not in permitted set')

    team = get_team(team_id)
    sessions = TeamSession.query.filter_by(team_id=team_id, theme=theme)\
        .order_by(TeamSession.session_date.asc(), TeamSession.id.asc()).all()
    if not sessions:
        return _empty_summaries(team_id, theme, team.name)

    session_ids = [s.id for s in sessions]
    present = present_player_ids(session_ids)
    feedback = CoachFeedback.query.filter(CoachFeedback.session_id.in_(session_ids)).all()
    entries = [_rating_from_row(r) for r in feedback]

    aggregates = [
        session_aggregate(
            s.id, entries,
            present_player_ids=present.get(s.id, set()),
            session_date=s.session_date,
            theme=s.theme,
        )
        for s in sessions
    ]

    summaries = []
    for agg in aggregates:
        row = agg.to_dict()
        row['team_name'] = team.name
        summaries.append(row)

    return {
        'meta': {
            'team_id': team_id,
            'team_name': team.name,
            'theme': theme,
            'session_count': len(summaries),
            'first_session_date': summaries[0]['session_date'],
            'last_session_date': summaries[-1]['session_date'],
        },
        'sessions': summaries,
        'trends': analyze(aggregates).to_dict(),
    }


def roster(team_id):
    team = get_team(team_id)
    players = [tp.player for tp in team.roster if tp.player is not None]
    return sorted(players, key=lambda p: p.name)


def team_raq(team_id):
    summary = raq_summary(p.dob for p in roster(team_id))
    summary['team_id'] = team_id
    return summary


def team_attendance_summary(team_id):
    players = roster(team_id)
    total_sessions = TeamSession.query.filter_by(team_id=team_id).count()

    rows = db.session.query(Attendance.player_id, Attendance.status)\
        .join(TeamSession, TeamSession.id == Attendance.session_id)\
        .filter(TeamSession.team_id == team_id).all()
    stats = {}
    for player_id, status in rows:
        entry = stats.setdefault(player_id, {'present': 0, 'marked': 0})
        entry['marked'] += 1
        if status == 'present':
            entry['present'] += 1

    leaderboard = []
    for p in players:
        s = stats.get(p.id, {'present': 0, 'marked': 0})
        pct = round(s['present'] / s['marked'] * 100) if s['marked'] > 0 else 0
        leaderboard.append({
            'player_id': p.id,
            'player_name': p.name,
            'player_active': p.active,
            'present': s['present'],
            'marked': s['marked'],
            'present_pct': pct,
        })
    leaderboard.sort(key=lambda r: (-r['present'], r['player_name']))
    return {'team_id': team_id, 'total_sessions': total_sessions, 'players': leaderboard}


def session_attendance_report(team_ids):
    """Present and marked counts for every session of the given teams, oldest first."""
    if not team_ids:
        return []
    sessions = TeamSession.query.filter(TeamSession.team_id.in_(sorted(team_ids)))\
        .order_by(TeamSession.session_date.asc(), TeamSession.id.asc()).all()
    counts = {}
    if sessions:
        rows = db.session.query(Attendance.session_id, Attendance.status)\
            .filter(Attendance.session_id.in_([s.id for s in sessions])).all()
        for session_id, status in rows:
            entry = counts.setdefault(session_id, {'present': 0, 'marked': 0})
            entry['marked'] += 1
            if status == 'present':
                entry['present'] += 1

    report = []
    for s in sessions:
        c = counts.get(s.id, {'present': 0, 'marked': 0})
        report.append({
            'session_id': s.id,
            'session_date': s.session_date.isoformat(),
            'team_id': s.team_id,
            'team_name': s.team.name,
            'age_group': s.team.age_group,
            'season': s.team.season,
            'session_type': s.session_type,
            'theme': s.theme,
            'present': c['present'],
            'marked': c['marked'],
        })
    return report


def player_development(player_id):
    """Pooled category averages across every session and coach for a player."""
    player = get_player(player_id)
    rows = CoachFeedback.query.filter_by(player_id=player_id)\
        .order_by(CoachFeedback.created_at.desc(), CoachFeedback.id.desc()).all()
    summary = summarize(_rating_from_row(r) for r in rows)

    attendance = db.session.query(Attendance.status, TeamSession.session_type)\
        .join(TeamSession, TeamSession.id == Attendance.session_id)\
        .filter(Attendance.player_id == player_id).all()
    training_marked = sum(1 for _, kind in attendance if kind == 'training')
    training_attended = sum(1 for status, kind in attendance if kind == 'training' and status == 'present')

    return {
        'player_id': player.id,
        'name': player.name,
        'dob': player.dob.isoformat() if player.dob else None,
        'summary': summary.to_dict(),
        'training_sessions': training_marked,
        'training_attended': training_attended,
        'recent_comments': [
            {'session_id': r.session_id, 'comments': r.comments}
            for r in rows if r.comments
        ][:5],
    }


# --- Roster ---

def find_potential_duplicates(player_names_to_check, all_player_names, threshold=90):
    """Checks a list of names against a list of known names for potential duplicates."""
    errors = []
    known_names_set = set(all_player_names)

    for name in player_names_to_check:
        if name in known_names_set:
            errors.append(f"'{name}' already exists.")
        elif all_player_names:
            best_match, score = fuzz_process.extractOne(name, all_player_names)
            if score >= threshold:
                errors.append(f"'{name}' is not an existing player. Did you mean '{best_match}'?")
    return errors


def season_start_date(season_label):
    """Start of a season label like '2025/26' or '2025-26' (1 August)."""
    if not season_label:
        return None
    m = re.match(r'^\s*(\d{4})', season_label)
    if not m:
        return None
    return date(int(m.group(1)), 8, 1)


def add_player(name, dob=None, team_id=None, confirm=False, threshold=90):
    name = (name or '').strip()
    if not name:
        raise ValidationError('Player name is required')
    dob_value = None
    if dob:
        dob_value = require_date(dob, 'dob')
    team = get_team(team_id) if team_id is not None else None

    if not confirm:
        known = [p.name for p in Player.query.all()]
        errors = find_potential_duplicates([name], known, threshold=threshold)
        if errors:
            raise ConflictError(' '.join(errors))

    player = Player(name=name, dob=dob_value, active=True)
    db.session.add(player)
    if team is not None:
        db.session.add(TeamPlayer(team=team, player=player))
    _commit('add player')
    logger.info('Added player %s (%s)', player.id, name)

    result = {'id': player.id, 'name': player.name, 'dob': dob_value.isoformat() if dob_value else None}
    if team is not None:
        result['age_group_match'] = player_matches_team_age_group(
            dob_value, team.age_group, season_start_date(team.season))
    return result


def player_count_by_team(team_ids):
    if not team_ids:
        return {}
    rows = db.session.query(TeamPlayer.team_id, func.count(TeamPlayer.id))\
        .filter(TeamPlayer.team_id.in_(sorted(team_ids))).group_by(TeamPlayer.team_id).all()
    return {team_id: count for team_id, count in rows}


def required_size_for(session):
    return required_squad_size(session.team.age_group if session.team else None)
