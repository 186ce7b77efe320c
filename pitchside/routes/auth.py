from flask import Blueprint, request, session, jsonify, current_app, g
from pitchside.errors import AuthorizationError, ValidationError
from pitchside.models import Coach
from pitchside.utils import coach_required, permitted_team_ids

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or request.form
    username = (data.get('username') or '').strip()
    pw = (data.get('password') or '').strip()
    if not username or not pw:
        raise ValidationError('Username and password are required')

    coach = Coach.query.filter_by(username=username).first()
    if coach is None or not coach.check_password(pw):
        raise AuthorizationError(f'bad credentials for {username}')

    session.clear()
    session['coach_id'] = coach.id
    current_app.logger.info('Coach %s logged in', coach.username)
    return jsonify({'coach_id': coach.id, 'username': coach.username, 'role': coach.role})


@bp.route('/logout', methods=['POST'])
def logout():
    session.pop('coach_id', None)
    return jsonify({'ok': True})


@bp.route('/me', methods=['GET'])
@coach_required
def me():
    return jsonify({
        'coach_id': g.coach.id,
        'username': g.coach.username,
        'role': g.coach.role,
        'team_ids': sorted(permitted_team_ids(g.coach)),
    })
