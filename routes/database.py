from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from Form.database_form import DatabaseForm
from Form.json_form import form_errors, form_from_json
from models.database import ManagedDatabase
from models.server import Server
from routes.access import get_owned_or_404, scoped
from service import database_service
from util.helpers import isoformat

database_bp = Blueprint("database", __name__, url_prefix="/api/databases")


def _database_to_dict(record: ManagedDatabase, with_secret=False) -> dict:
    data = {
        "id": record.id,
        "name": record.name,
        "display_name": record.display_name,
        "type": record.type,
        "version": record.version,
        "host": record.host,
        "port": record.port,
        "username": record.username,
        "database_name": record.database_name,
        "container_id": record.container_id,
        "status": record.status,
        "volume_path": record.volume_path,
        "server_id": record.server_id,
        "user_id": record.user_id,
        "created_at": isoformat(record.created_at),
    }
    if with_secret:
        data["password"] = database_service.database_password(record)
        data["connection_string"] = record.connection_string
    return data


@database_bp.route("", methods=["GET"])
@login_required
def list_databases():
    records = scoped(ManagedDatabase).order_by(ManagedDatabase.created_at.desc()).all()
    return jsonify([_database_to_dict(r) for r in records])


@database_bp.route("", methods=["POST"])
@login_required
def create_database():
    form = form_from_json(DatabaseForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"status": "failed", "message": form_errors(form)}), 400
    server = get_owned_or_404(Server, form.server_id.data)
    record = database_service.create_database(
        server.id,
        form.name.data,
        form.type.data,
        version=form.version.data or "latest",
        user_id=current_user.id,
        display_name=form.display_name.data,
    )
    return jsonify(_database_to_dict(record, with_secret=True)), 201


@database_bp.route("/<int:database_id>", methods=["GET"])
@login_required
def get_database(database_id):
    record = get_owned_or_404(ManagedDatabase, database_id)
    return jsonify(_database_to_dict(record, with_secret=True))


@database_bp.route("/<int:database_id>", methods=["DELETE"])
@login_required
def delete_database(database_id):
    record = get_owned_or_404(ManagedDatabase, database_id)
    database_service.delete_database(record.id)
    return jsonify({"status": "success"})


@database_bp.route("/<int:database_id>/<action>", methods=["POST"])
@login_required
def database_action(database_id, action):
    actions = {
        "start": database_service.start_database,
        "stop": database_service.stop_database,
        "restart": database_service.restart_database,
    }
    if action not in actions:
        return jsonify({"status": "failed", "message": f"Unknown action {action}"}), 404
    record = get_owned_or_404(ManagedDatabase, database_id)
    actions[action](record.id)
    return jsonify({"status": "success", "database": _database_to_dict(record)})


@database_bp.route("/<int:database_id>/logs", methods=["GET"])
@login_required
def logs(database_id):
    record = get_owned_or_404(ManagedDatabase, database_id)
    lines = min(max(request.args.get("lines", default=100, type=int), 1), 5000)
    return jsonify({"logs": database_service.database_logs(record.id, lines)})
