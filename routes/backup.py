from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from models.backup import Backup
from models.database import ManagedDatabase
from models.project import Project
from routes.access import get_owned_or_404, scoped
from service import backup_service
from util.constant import BACKUP_STATUS
from util.helpers import isoformat

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backups")


def _backup_to_dict(backup: Backup) -> dict:
    return {
        "id": backup.id,
        "name": backup.name,
        "type": backup.type,
        "resource_id": backup.resource_id,
        "server_id": backup.server_id,
        "path": backup.path,
        "size": backup.size,
        "status": backup.status,
        "error": backup.error,
        "created_at": isoformat(backup.created_at),
    }


@backup_bp.route("", methods=["GET"])
@login_required
def list_backups():
    backups = scoped(Backup).order_by(Backup.created_at.desc()).all()
    return jsonify([_backup_to_dict(b) for b in backups])


@backup_bp.route("", methods=["POST"])
@login_required
def create_backup():
    data = request.get_json(silent=True) or {}
    kind = data.get("type")
    resource_id = data.get("resource_id")
    if kind not in ("database", "project") or not resource_id:
        return jsonify({
            "status": "failed",
            "message": "type (database or project) and resource_id are required",
        }), 400

    if kind == "database":
        record = get_owned_or_404(ManagedDatabase, int(resource_id))
        backup = backup_service.backup_database(record.id, user_id=current_user.id)
    else:
        project = get_owned_or_404(Project, int(resource_id))
        backup = backup_service.backup_project(project.id, user_id=current_user.id)
    code = 201 if backup.status == BACKUP_STATUS.completed.value else 500
    return jsonify(_backup_to_dict(backup)), code


@backup_bp.route("/<int:backup_id>", methods=["DELETE"])
@login_required
def delete_backup(backup_id):
    backup = get_owned_or_404(Backup, backup_id)
    backup_service.delete_backup(backup.id)
    return jsonify({"status": "success"})


@backup_bp.route("/<int:backup_id>/restore", methods=["POST"])
@login_required
def restore_backup(backup_id):
    backup = get_owned_or_404(Backup, backup_id)
    backup_service.restore_backup(backup.id)
    return jsonify({"status": "success", "backup": _backup_to_dict(backup)})
