import logging

import click
from flask import Flask
from config import Config
from pitchside.extensions import db
from pitchside.errors import register_error_handlers
from pitchside.services.coordinator import EventFeed

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Initialize Flask extensions
    db.init_app(app)

    # Live match events fan out through this feed; HTTP observers poll instead
    feed = EventFeed()
    feed.subscribe(lambda session_id, event: app.logger.debug(
        'Live event for session %s: %s', session_id, event.event_type))
    app.extensions['pitchside_feed'] = feed

    register_error_handlers(app)

    # Register Blueprints
    from pitchside.routes import sessions, reports, teams, auth
    app.register_blueprint(sessions.bp)
    app.register_blueprint(reports.bp)
    app.register_blueprint(teams.bp)
    app.register_blueprint(auth.bp)

    # Create tables if they don't exist
    with app.app_context():
        db.create_all()

    from pitchside.models import Coach

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo('Initialized the database.')

    @app.cli.command('create-coach')
    @click.argument('username')
    @click.argument('password')
    @click.option('--role', type=click.Choice(['coach', 'director', 'admin']), default='coach')
    def create_coach_command(username, password, role):
        """Create a coach login."""
        if Coach.query.filter_by(username=username).first():
            click.echo(f'Coach {username} already exists.')
            return
        coach = Coach(username=username, role=role)
        coach.set_password(password)
        db.session.add(coach)
        db.session.commit()
        click.echo(f'Created {role} {username}.')

    return app
