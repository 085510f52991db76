from flask import Flask, jsonify
from database_init import db
from dotenv import load_dotenv
import os
from datetime import timedelta
from log import setup_logging
from extensions import csrf, login_manager, migrate
from util.errors import (
    ArkError,
    BackupError,
    CommandValidationError,
    CredentialError,
    DatabaseProvisionError,
    DeployError,
    NotFoundError,
    PortAllocationError,
)

from models.user import User
from models.plan import Plan
from models.server import Server
from models.project import Project
from models.deployment import Deployment
from models.database import ManagedDatabase
from models.backup import Backup

from flask_cors import CORS

load_dotenv()

# ArkError subclasses a caller can fix by changing the request
_CLIENT_ERRORS = (
    CommandValidationError,
    PortAllocationError,
    DeployError,
    DatabaseProvisionError,
    BackupError,
)


def _database_uri():
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return (
        f"mysql+pymysql://{os.getenv('USER_DB')}:{os.getenv('PASSWORD_DB')}"
        f"@{os.getenv('ADDRESS_DB')}/{os.getenv('NAME_DB')}"
    )


def _failed(message, code):
    return jsonify({"status": "failed", "message": message}), code


def register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return _failed(str(e), 404)

    @app.errorhandler(CredentialError)
    def handle_credential(e):
        app.logger.error(f"Credential error: {e}")
        return _failed(str(e), 500)

    @app.errorhandler(ArkError)
    def handle_ark_error(e):
        if isinstance(e, _CLIENT_ERRORS):
            return _failed(str(e), 400)
        app.logger.error(f"{type(e).__name__}: {e}")
        return _failed(str(e), 500)

    @app.errorhandler(403)
    def handle_403(e):
        return _failed("Forbidden", 403)

    @app.errorhandler(404)
    def handle_404(e):
        return _failed("Not found", 404)

    @app.errorhandler(405)
    def handle_405(e):
        return _failed("Method not allowed", 405)


def create_app(test_config=None):
    app = Flask(__name__, static_url_path="/static")
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY")
    app.config["ENCRYPTION_KEY"] = os.getenv("ENCRYPTION_KEY")
    app.config["REDIS_URL"] = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    app.config["SSH_CONNECT_TIMEOUT"] = int(os.getenv("SSH_CONNECT_TIMEOUT", "30"))
    app.config["LOG_DIR"] = os.getenv("LOG_DIR")
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(minutes=60)
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SQLALCHEMY_DATABASE_URI"] = _database_uri()
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    if test_config:
        app.config.update(test_config)

    # Shared by every web and worker process
    if not app.config["SECRET_KEY"]:
        raise RuntimeError("SECRET_KEY is not set")

    # Logging
    setup_logging(app.config["LOG_DIR"])

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return _failed("Authentication required", 401)

    from routes.auth import auth_bp
    from routes.server import server_bp
    from routes.project import project_bp
    from routes.database import database_bp
    from routes.backup import backup_bp
    from routes.plan import plan_bp
    from routes.admin import admin_bp

    for bp in (auth_bp, server_bp, project_bp, database_bp, backup_bp, plan_bp, admin_bp):
        csrf.exempt(bp)
        app.register_blueprint(bp)

    register_error_handlers(app)

    from commands.cli import ark_cli

    app.cli.add_command(ark_cli)

    return app


if __name__ == "__main__":
    from seeder.seed import seed_all

    app = create_app()
    with app.app_context():
        db.create_all()
        seed_all(app)
    app.run(host="0.0.0.0", port=4000, debug=True)
