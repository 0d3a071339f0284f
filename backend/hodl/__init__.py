from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

CHAIN_EXTENSION = 'hodl.chain'


def create_app(config_class=Config, chain=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Settlement contract client; None keeps the app usable for reads/scoring only
    if chain is None and flask_app.config.get('CHAIN_RPC_URL'):
        from hodl.services.rounds.chain import ChainClient
        chain = ChainClient.from_config(flask_app.config)
    flask_app.extensions[CHAIN_EXTENSION] = chain
    if chain is None:
        flask_app.logger.warning("[chain] CHAIN_RPC_URL not set; payment checks fail closed and payouts are disabled")
    elif not chain.can_finalize:
        flask_app.logger.warning("[chain] BACKEND_WALLET_PRIVATE_KEY not set; finalizeRound (auto payout) disabled")

    from hodl.main import main
    flask_app.register_blueprint(main)

    from hodl.api.rounds import rounds
    flask_app.register_blueprint(rounds, url_prefix='/api')

    from hodl.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the score, session and closure tables."""
        import hodl.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('finalize-round')
    @click.argument('round_id', type=int)
    def finalize_round_command(round_id):
        """Runs one threshold check / payout attempt for ROUND_ID."""
        from hodl.services.rounds.finalizer import maybe_close
        with flask_app.app_context():
            closure = maybe_close(round_id)
            if closure is None:
                print(f'Round #{round_id} still open.')
            else:
                print(f'Round #{round_id} closed. Winner: {closure.winner} tx: {closure.tx_hash}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(finalize_round_command)

    return flask_app


def get_chain():
    """Return the app's settlement contract client, or None if unconfigured."""
    from flask import current_app
    return current_app.extensions.get(CHAIN_EXTENSION)
