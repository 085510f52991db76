from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from bash_script import ssh_session
from database_init import db
from Form.json_form import form_errors, form_from_json
from Form.server_form import ServerForm
from models.server import Server
from routes.access import get_owned_or_404, scoped
from service import traefik_service
from service.provisioning_service import check_server
from util.crypto import encrypt
from util.helpers import isoformat
from util.tasks import enqueue_provisioning

server_bp = Blueprint("server", __name__, url_prefix="/api/servers")


def _server_to_dict(server: Server) -> dict:
    """Server fields safe to return; credentials never leave the store."""
    return {
        "id": server.id,
        "name": server.name,
        "host": server.host,
        "port": server.port,
        "username": server.username,
        "auth_type": server.auth_type,
        "status": server.status,
        "provisioning_status": server.provisioning_status,
        "provisioning_progress": server.provisioning_progress,
        "os_type": server.os_type,
        "os_version": server.os_version,
        "docker_installed": server.docker_installed,
        "docker_compose_installed": server.docker_compose_installed,
        "git_installed": server.git_installed,
        "last_check": isoformat(server.last_check),
        "user_id": server.user_id,
        "created_at": isoformat(server.created_at),
    }


@server_bp.route("", methods=["GET"])
@login_required
def list_servers():
    servers = scoped(Server).order_by(Server.created_at.desc()).all()
    return jsonify([_server_to_dict(s) for s in servers])


@server_bp.route("", methods=["POST"])
@login_required
def create_server():
    form = form_from_json(ServerForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"status": "failed", "message": form_errors(form)}), 400
    if Server.query.filter_by(user_id=current_user.id, name=form.name.data).first():
        return jsonify({"status": "failed", "message": "Server name already in use"}), 400

    server = Server(
        name=form.name.data,
        host=form.host.data.strip(),
        port=form.port.data or 22,
        username=form.username.data or "root",
        auth_type=form.auth_type.data,
        password=encrypt(form.password.data),
        private_key=encrypt(form.private_key.data),
        user_id=current_user.id,
    )
    db.session.add(server)
    db.session.commit()
    return jsonify(_server_to_dict(server)), 201


@server_bp.route("/<int:server_id>", methods=["GET"])
@login_required
def get_server(server_id):
    server = get_owned_or_404(Server, server_id)
    data = _server_to_dict(server)
    data["provisioning_log"] = server.provisioning_log
    return jsonify(data)


@server_bp.route("/<int:server_id>", methods=["PUT"])
@login_required
def update_server(server_id):
    server = get_owned_or_404(Server, server_id)
    data = request.get_json(silent=True) or {}
    for field in ("name", "host", "username", "auth_type"):
        if data.get(field):
            setattr(server, field, data[field])
    if data.get("port"):
        server.port = int(data["port"])
    # Secrets are only replaced when a new value is sent
    if data.get("password"):
        server.password = encrypt(data["password"])
    if data.get("private_key"):
        server.private_key = encrypt(data["private_key"])
    db.session.commit()
    return jsonify(_server_to_dict(server))


@server_bp.route("/<int:server_id>", methods=["DELETE"])
@login_required
def delete_server(server_id):
    server = get_owned_or_404(Server, server_id)
    if server.projects or server.databases:
        return jsonify({
            "status": "failed",
            "message": "Server still has projects or databases",
        }), 400
    db.session.delete(server)
    db.session.commit()
    return jsonify({"status": "success"})


@server_bp.route("/<int:server_id>/test", methods=["POST"])
@login_required
def test_server(server_id):
    server = get_owned_or_404(Server, server_id)
    ok = check_server(server.id)
    return jsonify({"status": "success" if ok else "failed", "online": ok})


@server_bp.route("/<int:server_id>/provision", methods=["POST"])
@login_required
def provision(server_id):
    server = get_owned_or_404(Server, server_id)
    job = enqueue_provisioning(server)
    return jsonify({"status": "queued", "job_id": job.id}), 202


@server_bp.route("/<int:server_id>/info", methods=["GET"])
@login_required
def server_info(server_id):
    """Live Docker and proxy summary read over SSH."""
    server = get_owned_or_404(Server, server_id)
    with ssh_session.open_server_session(server) as ssh:
        info = traefik_service.traefik_info(ssh)
        info["proxy_mode"] = traefik_service.detect_proxy_mode(ssh)
    return jsonify(info)
