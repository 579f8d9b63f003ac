import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper()
    flask_app.logger.setLevel(level)
    logging.getLogger('raidscore').setLevel(level)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from raidscore.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api/matches')

    # Register Socket.IO event handlers
    from raidscore.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with two demo squads."""
        from raidscore.models import Match, Player, Team
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            teams = []
            for name in ('Red Raiders', 'Blue Bulls'):
                team = Team(name=name)
                db.session.add(team)
                db.session.flush()
                for number in range(1, 11):
                    db.session.add(Player(name=f'{name.split()[0]} {number}', jersey_number=number, team_id=team.id))
                teams.append(team)

            match = Match.from_config(flask_app.config, name='Demo Match', team_a_id=teams[0].id, team_b_id=teams[1].id)
            db.session.add(match)
            db.session.commit()
            print(f'Database has been reset and seeded! Demo match id={match.id}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
