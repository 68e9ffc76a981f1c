from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from securevote.cli import register_cli
from securevote.config import Config
from securevote.extensions import db, login_manager, migrate
from securevote.models import Voter
from securevote.routes import register_routes
from securevote.services.identity import init_identity_verifier


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def server_error(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        db.session.rollback()
        app.logger.exception("Server Error")
        return jsonify({"error": "Internal Server Error"}), 500


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_voter(voter_id):
        return db.session.get(Voter, voter_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Login required"}), 401

    init_identity_verifier(app)
    register_routes(app)
    register_error_handlers(app)
    register_cli(app)
    return app


__all__ = ["db", "migrate", "create_app"]
