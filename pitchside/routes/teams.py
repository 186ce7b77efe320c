from flask import Blueprint, request, jsonify, current_app, g
from pitchside import services
from pitchside.errors import ValidationError
from pitchside.models import Team
from pitchside.services.core import player_count_by_team, roster
from pitchside.services.lineup import required_squad_size
from pitchside.services.trends import relative_age_quartile
from pitchside.utils import coach_required, parse_bool, permitted_team_ids, require_team_access

bp = Blueprint('teams', __name__, url_prefix='/api/teams')


@bp.route('', methods=['GET'])
@coach_required
def index():
    team_ids = permitted_team_ids(g.coach)
    if not team_ids:
        return jsonify([])
    teams = Team.query.filter(Team.id.in_(sorted(team_ids))).order_by(Team.name).all()
    counts = player_count_by_team(team_ids)
    return jsonify([
        {
            'id': t.id,
            'name': t.name,
            'age_group': t.age_group,
            'season': t.season,
            'active': t.active,
            'squad_size': required_squad_size(t.age_group),
            'player_count': counts.get(t.id, 0),
        }
        for t in teams
    ])


@bp.route('/<int:team_id>/players', methods=['GET'])
@coach_required
def players(team_id):
    require_team_access(g.coach, team_id)
    return jsonify([
        {
            'id': p.id,
            'name': p.name,
            'dob': p.dob.isoformat() if p.dob else None,
            'active': p.active,
            'raq': relative_age_quartile(p.dob),
        }
        for p in roster(team_id)
    ])


@bp.route('/<int:team_id>/players', methods=['POST'])
@coach_required
def add_player(team_id):
    require_team_access(g.coach, team_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON body')
    player = services.add_player(
        data.get('name'),
        dob=data.get('dob'),
        team_id=team_id,
        confirm=parse_bool(data.get('confirm'), 'confirm'),
        threshold=current_app.config.get('DUPLICATE_NAME_THRESHOLD', 90),
    )
    return jsonify(player), 201
