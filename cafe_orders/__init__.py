from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from .config import Config

db = SQLAlchemy()


def create_app(test_config=None, notifier=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(str(app.config["LOG_LEVEL"]).upper())

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return "OK", 200

    db.init_app(app)

    # Ensure tables exist
    with app.app_context():
        from . import models  # noqa
        db.create_all()

    from .errors import register_error_handlers
    from .notifications import init_notifier
    register_error_handlers(app)
    init_notifier(app, notifier)

    # Blueprints
    from .api.routes import api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app
