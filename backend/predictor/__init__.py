import uuid

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
import click
from predictor.config import Config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=flask_app.config.get('CORS_ORIGINS', '*'))

    # Import and register blueprints here
    from predictor.main import main
    flask_app.register_blueprint(main)

    from predictor.api.players import players
    from predictor.api.guesses import guesses
    flask_app.register_blueprint(players, url_prefix='/api')
    flask_app.register_blueprint(guesses, url_prefix='/api')

    from predictor.errors import PredictorError

    @flask_app.errorhandler(PredictorError)
    def handle_predictor_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc):
        db.session.rollback()
        flask_app.logger.error(f"[db-error] {exc.__class__.__name__}", exc_info=exc)
        return jsonify({'error': 'Database error occurred', 'code': 'DATABASE_ERROR'}), 500

    from predictor.services import EXTENSION_KEY, build_services, get_services
    flask_app.extensions[EXTENSION_KEY] = build_services(flask_app)

    @click.command('db-reset')
    @click.option('--seed', is_flag=True, help='Create a couple of demo players.')
    def db_reset_command(seed):
        """Drops and recreates the database, optionally seeding players."""
        from predictor.models import Player
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            if seed:
                for name in ('Ada', 'Grace'):
                    db.session.add(Player(id=str(uuid.uuid4()), name=name, score=0))
                db.session.commit()
            click.echo('Database has been reset' + (' and seeded!' if seed else '!'))

    @click.command('resolve-guess')
    @click.argument('guess_id')
    @click.argument('player_id')
    def resolve_guess_command(guess_id, player_id):
        """Settles one guess now, whatever its timer is doing."""
        from predictor.services.guesses import DirectInvocation
        with flask_app.app_context():
            try:
                settlement = get_services(flask_app).lifecycle.resolve(
                    DirectInvocation(guess_id=guess_id, player_id=player_id)
                )
            except PredictorError as exc:
                raise click.ClickException(f'{exc.code}: {exc}')
            suffix = ' (already resolved)' if settlement.already_resolved else f' score={settlement.new_score}'
            click.echo(f'{settlement.guess_id}: {settlement.result} at {settlement.resolve_price}{suffix}')

    @click.command('settle-overdue')
    def settle_overdue_command():
        """Settles every ACTIVE guess whose resolve time has passed."""
        with flask_app.app_context():
            settlements = get_services(flask_app).lifecycle.settle_overdue()
            for s in settlements:
                click.echo(f'{s.guess_id}: {s.result} at {s.resolve_price}')
            click.echo(f'settled {len(settlements)} overdue guess(es)')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(resolve_guess_command)
    flask_app.cli.add_command(settle_overdue_command)

    return flask_app
