from datetime import datetime, timezone

from werkzeug.security import check_password_hash, generate_password_hash

from pitchside.extensions import db


def _now():
    return datetime.now(timezone.utc)


class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    age_group = db.Column(db.String(10))  # e.g. "U11"
    season = db.Column(db.String(20))
    active = db.Column(db.Boolean, nullable=False, default=True)
    roster = db.relationship('TeamPlayer', back_populates='team', cascade="all, delete-orphan", lazy='select')
    sessions = db.relationship('TeamSession', back_populates='team', lazy='dynamic')


class Player(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    dob = db.Column(db.Date)
    active = db.Column(db.Boolean, nullable=False, default=True)
    teams = db.relationship('TeamPlayer', back_populates='player', lazy='select')


class TeamPlayer(db.Model):
    __table_args__ = (db.UniqueConstraint('team_id', 'player_id', name='uix_team_player'),)

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    team = db.relationship('Team', back_populates='roster')
    player = db.relationship('Player', back_populates='teams')


class Coach(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='coach')  # coach, director, admin
    assignments = db.relationship('CoachTeamAssignment', back_populates='coach', cascade="all, delete-orphan")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class CoachTeamAssignment(db.Model):
    __table_args__ = (db.UniqueConstraint('coach_id', 'team_id', name='uix_coach_team'),)

    id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey('coach.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='coach')
    coach = db.relationship('Coach', back_populates='assignments')


class TeamSession(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    session_date = db.Column(db.Date, nullable=False)
    session_type = db.Column(db.String(20), nullable=False)  # training, match
    theme = db.Column(db.String(100))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    team = db.relationship('Team', back_populates='sessions')
    match_details = db.relationship('MatchDetails', back_populates='session', uselist=False)


class MatchDetails(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), unique=True, nullable=False)
    opposition = db.Column(db.String(100), nullable=False)
    venue_type = db.Column(db.String(10), nullable=False, default='home')  # home, away, neutral
    venue_name = db.Column(db.String(100))
    competition = db.Column(db.String(100))
    formation = db.Column(db.String(20))
    # display cache only, the event log is authoritative
    goals_for = db.Column(db.Integer, nullable=False, default=0)
    goals_against = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text)
    session = db.relationship('TeamSession', back_populates='match_details')


class Attendance(db.Model):
    __table_args__ = (db.UniqueConstraint('session_id', 'player_id', name='uix_attendance_session_player'),)

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    status = db.Column(db.String(10), nullable=False)  # present, absent
    player = db.relationship('Player')


class CoachFeedback(db.Model):
    __table_args__ = (db.UniqueConstraint('player_id', 'session_id', 'coach_id', name='uix_feedback_player_session_coach'),)

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    coach_id = db.Column(db.Integer, db.ForeignKey('coach.id'), nullable=False)
    ball_control = db.Column(db.Integer, nullable=False, default=0)
    passing = db.Column(db.Integer, nullable=False, default=0)
    shooting = db.Column(db.Integer, nullable=False, default=0)
    fitness = db.Column(db.Integer, nullable=False, default=0)
    attitude = db.Column(db.Integer, nullable=False, default=0)
    coachability = db.Column(db.Integer, nullable=False, default=0)
    positioning = db.Column(db.Integer, nullable=False, default=0)
    speed_agility = db.Column(db.Integer, nullable=False, default=0)
    comments = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)


class MatchLineup(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    role = db.Column(db.String(10), nullable=False)  # starter, sub
    position = db.Column(db.String(5))
    shirt_number = db.Column(db.Integer)
    is_captain = db.Column(db.Boolean, nullable=False, default=False)


class MatchEventRecord(db.Model):
    __tablename__ = 'match_event'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), nullable=False)
    event_type = db.Column(db.String(20), nullable=False)
    minute = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'))
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'))
    goal_type = db.Column(db.String(10))
    goal_context = db.Column(db.String(20))
    assisting_player_id = db.Column(db.Integer, db.ForeignKey('player.id'))
    is_own_goal = db.Column(db.Boolean, nullable=False, default=False)
    player_off_id = db.Column(db.Integer, db.ForeignKey('player.id'))
    sub_reason = db.Column(db.String(20))
    notes = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('coach.id'))
    created_at = db.Column(db.DateTime(timezone=True), default=_now)


class MatchTimerState(db.Model):
    session_id = db.Column(db.Integer, db.ForeignKey('team_session.id'), primary_key=True)
    minute = db.Column(db.Integer, nullable=False, default=0)
    second = db.Column(db.Integer, nullable=False, default=0)
    is_running = db.Column(db.Boolean, nullable=False, default=False)
    has_started = db.Column(db.Boolean, nullable=False, default=False)
    period = db.Column(db.String(10), nullable=False, default='first')
    is_half_time = db.Column(db.Boolean, nullable=False, default=False)
    is_full_time = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)
