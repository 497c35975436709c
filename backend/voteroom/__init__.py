from flask import Flask, current_app
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


def get_voting_service():
    """The VotingService bound to the current app."""
    return current_app.extensions['voting']


def create_app(config_class=Config, store=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from voteroom.services.voting.broadcast import SessionBroadcaster
    from voteroom.services.voting.service import VotingService
    from voteroom.services.voting.settings import VotingSettings
    from voteroom.services.voting.store import build_store
    from voteroom.services.voting.timer import RoundTimer

    settings = VotingSettings.from_config(flask_app.config)
    if store is None:
        store = build_store(flask_app.config, db)
    timer = RoundTimer(
        socketio, flask_app.logger, app=flask_app,
        tick_sec=settings.timer_tick_sec, heartbeat_sec=settings.timer_heartbeat_sec,
    )
    flask_app.extensions['voting'] = VotingService(
        store=store,
        broadcaster=SessionBroadcaster(socketio),
        timer=timer,
        settings=settings,
        logger=flask_app.logger,
    )

    from voteroom.main import main
    flask_app.register_blueprint(main)

    from voteroom.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from voteroom.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the session tables."""
        import voteroom.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-expired')
    def purge_expired_command():
        """Deletes sessions whose TTL has elapsed (SQL store only)."""
        service = flask_app.extensions['voting']
        if not hasattr(service.store, 'purge_expired'):
            print('Store backend expires sessions on its own.')
            return
        with flask_app.app_context():
            removed = service.store.purge_expired()
        print(f'Purged {removed} expired session(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_expired_command)

    return flask_app

