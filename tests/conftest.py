"""Pytest configuration and fixtures for pitchside tests."""

from datetime import date

import pytest

from config import TestConfig
from pitchside import create_app
from pitchside.extensions import db
from pitchside.models import Coach, CoachTeamAssignment, Player, Team, TeamPlayer


PLAYERS = [
    ('Alfie Barnes', date(2015, 2, 10)),
    ('Ben Carter', date(2015, 3, 31)),
    ('Callum Dunn', date(2015, 4, 1)),
    ('Dylan Evans', date(2015, 6, 15)),
    ('Ethan Fox', date(2015, 9, 1)),
    ('Finley Grant', date(2015, 11, 20)),
    ('George Hall', date(2015, 12, 31)),
    ('Harry Irwin', date(2015, 1, 5)),
    ('Isaac Jones', None),
]


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _coach(username, role='coach', password='secret'):
    coach = Coach(username=username, role=role)
    coach.set_password(password)
    db.session.add(coach)
    return coach


@pytest.fixture
def seeded(app):
    """One U11 team with nine players, a second team, and three coaches."""
    team = Team(name='Lions', age_group='U11', season='2025/26')
    other = Team(name='Tigers', age_group='U14', season='2025/26')
    db.session.add_all([team, other])

    players = [Player(name=name, dob=dob) for name, dob in PLAYERS]
    db.session.add_all(players)
    for p in players:
        db.session.add(TeamPlayer(team=team, player=p))

    coach = _coach('coach')
    assistant = _coach('assistant')
    director = _coach('director', role='director')
    db.session.flush()

    db.session.add(CoachTeamAssignment(coach_id=coach.id, team_id=team.id, role='coach'))
    db.session.add(CoachTeamAssignment(coach_id=assistant.id, team_id=team.id, role='assistant'))
    db.session.commit()

    return {
        'team_id': team.id,
        'other_team_id': other.id,
        'player_ids': [p.id for p in players],
        'coach_id': coach.id,
        'assistant_id': assistant.id,
        'director_id': director.id,
    }


def login(client, username='coach', password='secret'):
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200
    return response


@pytest.fixture
def coach_client(client, seeded):
    login(client)
    return client


@pytest.fixture
def login_as(client):
    def _login(username='coach', password='secret'):
        return login(client, username, password)
    return _login
