from flask import Blueprint, request, jsonify, g
from pitchside import services
from pitchside.errors import AuthorizationError, ValidationError
from pitchside.services.core import get_player
from pitchside.utils import coach_required, permitted_team_ids, require_team_access

bp = Blueprint('reports', __name__, url_prefix='/api/reports')


def _team_id_param():
    raw = request.args.get('team_id', '').strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise ValidationError('team_id is required')
    return int(raw)


@bp.route('/player-trends', methods=['GET'])
@coach_required
def player_trends():
    team_id = _team_id_param()
    theme = request.args.get('theme', '')
    summaries = services.get_session_summaries(team_id, theme, permitted_team_ids(g.coach))
    return jsonify(summaries)


@bp.route('/raq', methods=['GET'])
@coach_required
def raq():
    team_id = _team_id_param()
    require_team_access(g.coach, team_id)
    return jsonify(services.team_raq(team_id))


@bp.route('/team-attendance', methods=['GET'])
@coach_required
def team_attendance():
    team_id = _team_id_param()
    require_team_access(g.coach, team_id)
    return jsonify(services.team_attendance_summary(team_id))


@bp.route('/players/<int:player_id>/development', methods=['GET'])
@coach_required
def player_development(player_id):
    player = get_player(player_id)
    player_teams = {tp.team_id for tp in player.teams}
    if not player_teams & permitted_team_ids(g.coach):
        raise AuthorizationError(f"player {player_id} is outside the coach's teams")
    return jsonify(services.player_development(player_id))


@bp.route('/attendance', methods=['GET'])
@coach_required
def session_attendance():
    return jsonify(services.session_attendance_report(permitted_team_ids(g.coach)))
