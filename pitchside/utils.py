from functools import wraps
from flask import session, g
from datetime import date, datetime

from pitchside.errors import AuthorizationError, ValidationError


def coach_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        from pitchside.extensions import db
        from pitchside.models import Coach

        coach_id = session.get('coach_id')
        coach = db.session.get(Coach, coach_id) if coach_id else None
        if coach is None:
            raise AuthorizationError('not logged in')
        g.coach = coach
        return f(*args, **kwargs)
    return wrapper


def permitted_team_ids(coach):
    """Teams the coach may see: all of them for directors and admins."""
    from pitchside.models import Team, CoachTeamAssignment

    if coach is None:
        return set()
    if coach.role in ('director', 'admin'):
        return {t.id for t in Team.query.all()}
    rows = CoachTeamAssignment.query.filter_by(coach_id=coach.id).all()
    return {r.team_id for r in rows}


def require_team_access(coach, team_id):
    if team_id not in permitted_team_ids(coach):
        raise AuthorizationError(f'coach {coach.id if coach else None} has no access to team {team_id}')


def parse_date_safe(s):
    if not s:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    if not isinstance(s, str):
        return None
    s = s.strip()
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d/%m/%y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def require_date(s, field='date'):
    parsed = parse_date_safe(s)
    if not parsed:
        raise ValidationError(f'Invalid {field}. Please use yyyy-mm-dd.')
    return parsed


def parse_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {field}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}')


def parse_bool(value, field, default=False):
    """Real booleans, or the strings 'true'/'false' as sent by HTML forms."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValidationError(f'{field} must be true or false')
