from flask import Flask
from flask_migrate import Migrate
from .extensions import db, login_manager, rq

migrate = Migrate()


def create_app(config_object='config.Config'):
    """App factory.

    ``config_object`` is anything ``app.config.from_object`` accepts; tests
    pass ``config.TestConfig``.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    # keep Korean stage/criteria names readable in JSON responses
    app.json.ensure_ascii = False

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    rq.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from .models.user import User
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    from .blueprints.evaluations import bp as evaluations_bp
    app.register_blueprint(evaluations_bp, url_prefix="/evaluations")

    @app.get('/health')
    def health():
        return {'status': 'ok'}

    return app
