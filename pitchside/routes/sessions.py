from flask import Blueprint, request, jsonify, current_app, g
from pitchside import services
from pitchside.errors import ValidationError
from pitchside.services.core import (
    lineup_manager_for, list_sessions, required_size_for, session_to_dict,
)
from pitchside.services.lineup import FORMATIONS, LineupEntry
from pitchside.services.timer import MatchTimer
from pitchside.utils import coach_required, parse_int, permitted_team_ids, require_team_access

bp = Blueprint('sessions', __name__, url_prefix='/api/sessions')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON body')
    return data


def _load_session(session_id):
    session = services.get_session(session_id)
    require_team_access(g.coach, session.team_id)
    return session


@bp.route('', methods=['GET'])
@coach_required
def index():
    team_ids = permitted_team_ids(g.coach)
    return jsonify([session_to_dict(s) for s in list_sessions(team_ids)])


@bp.route('', methods=['POST'])
@coach_required
def create():
    body = _json_body()
    team_id = parse_int(body.get('team_id'), 'team_id')
    require_team_access(g.coach, team_id)
    session_id = services.create_session(
        team_id,
        body.get('session_date'),
        body.get('session_type'),
        theme=body.get('theme'),
        match_details=body.get('match_details'),
    )
    return jsonify({'session_id': session_id}), 201


@bp.route('/themes', methods=['GET'])
@coach_required
def themes():
    return jsonify(services.list_themes(permitted_team_ids(g.coach)))


@bp.route('/<int:session_id>', methods=['GET'])
@coach_required
def detail(session_id):
    session = _load_session(session_id)
    data = session_to_dict(session)
    data['required_squad_size'] = required_size_for(session)
    return jsonify(data)


@bp.route('/<int:session_id>/attendance', methods=['GET'])
@coach_required
def attendance(session_id):
    _load_session(session_id)
    return jsonify(services.get_attendance(session_id))


@bp.route('/<int:session_id>/attendance', methods=['POST'])
@coach_required
def mark_attendance(session_id):
    _load_session(session_id)
    body = _json_body()
    player_id = parse_int(body.get('player_id'), 'player_id')
    return jsonify(services.upsert_attendance(session_id, player_id, body.get('status')))


@bp.route('/<int:session_id>/ratings', methods=['GET'])
@coach_required
def ratings(session_id):
    _load_session(session_id)
    return jsonify(services.session_rating_view(session_id, g.coach.id))


@bp.route('/<int:session_id>/ratings', methods=['POST'])
@coach_required
def save_ratings(session_id):
    _load_session(session_id)
    body = _json_body()
    player_id = parse_int(body.get('player_id'), 'player_id')
    entry = services.upsert_ratings(
        session_id,
        acting_coach_id=g.coach.id,
        player_id=player_id,
        category_values=body.get('ratings'),
        comments=body.get('comments'),
    )
    return jsonify({
        'player_id': entry.player_id,
        'coach_id': entry.coach_id,
        'ratings': dict(entry.values),
        'comments': entry.comments,
    })


@bp.route('/<int:session_id>/lineup', methods=['GET'])
@coach_required
def lineup(session_id):
    session = _load_session(session_id)
    manager = lineup_manager_for(session)
    return jsonify({
        'required_squad_size': manager.required_size,
        'complete': manager.is_complete(),
        'lineup': [e.to_dict() for e in manager.entries],
    })


@bp.route('/<int:session_id>/lineup', methods=['POST'])
@coach_required
def save_lineup(session_id):
    _load_session(session_id)
    body = _json_body()
    manager = services.commit_lineup(session_id, body.get('lineup') or [], formation=body.get('formation'))
    current_app.logger.info('Coach %s saved lineup for session %s', g.coach.id, session_id)
    return jsonify({
        'required_squad_size': manager.required_size,
        'complete': manager.is_complete(),
        'lineup': [e.to_dict() for e in manager.entries],
    })


@bp.route('/<int:session_id>/lineup/formation', methods=['POST'])
@coach_required
def apply_formation(session_id):
    """Apply a formation to a working (uncommitted) lineup and return it."""
    session = _load_session(session_id)
    body = _json_body()
    entries = [LineupEntry.from_dict(d) for d in body.get('lineup') or []]
    manager = lineup_manager_for(session, entries=entries)
    manager.apply_formation(body.get('formation'))
    return jsonify({
        'formation': manager.formation,
        'formations': sorted(FORMATIONS),
        'lineup': [e.to_dict() for e in manager.sorted_starters() + manager.subs],
    })


@bp.route('/<int:session_id>/previous-lineup', methods=['GET'])
@coach_required
def previous_lineup(session_id):
    session = _load_session(session_id)
    manager = lineup_manager_for(session, entries=[])
    manager.load_previous(services.get_previous_lineup(session.team_id, session.session_date))
    return jsonify([e.to_dict() for e in manager.entries])


@bp.route('/<int:session_id>/match-events', methods=['GET'])
@coach_required
def match_events(session_id):
    _load_session(session_id)
    since = request.args.get('since')
    since = parse_int(since, 'since') if since not in (None, '') else None
    events = services.get_match_events(session_id, since=since)
    return jsonify({
        'events': [e.to_dict() for e in events],
        'poll_interval': current_app.config.get('LIVE_POLL_INTERVAL', 5),
    })


@bp.route('/<int:session_id>/match-events', methods=['POST'])
@coach_required
def record_match_event(session_id):
    _load_session(session_id)
    body = _json_body()
    coordinator = services.build_coordinator(
        session_id,
        feed=current_app.extensions.get('pitchside_feed'),
        created_by=g.coach.id,
    )
    event = coordinator.record_event(body)
    return jsonify({'event': event.to_dict(), 'scoreboard': coordinator.snapshot()}), 201


@bp.route('/<int:session_id>/scoreboard', methods=['GET'])
@coach_required
def scoreboard(session_id):
    _load_session(session_id)
    coordinator = services.build_coordinator(session_id)
    data = coordinator.snapshot()
    data['discipline'] = {
        str(pid): record for pid, record in coordinator.event_log.discipline().items()
    }
    data['poll_interval'] = current_app.config.get('LIVE_POLL_INTERVAL', 5)
    return jsonify(data)


@bp.route('/<int:session_id>/timer', methods=['GET'])
@coach_required
def timer(session_id):
    _load_session(session_id)
    return jsonify(services.match_timer(session_id).state.to_dict())


@bp.route('/<int:session_id>/timer', methods=['POST'])
@coach_required
def timer_action(session_id):
    _load_session(session_id)
    body = _json_body()
    action = body.get('action')
    if action not in MatchTimer.ACTIONS:
        raise ValidationError(f'Unknown timer action: {action}')
    amount = body.get('amount')
    if amount is not None:
        amount = parse_int(amount, 'amount')
    clock = services.match_timer(session_id)
    state = clock.dispatch(action, amount)
    return jsonify(state.to_dict())
