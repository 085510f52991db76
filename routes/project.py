from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from bash_script.templates import get_template, list_templates
from database_init import db
from Form.json_form import form_errors, form_from_json
from Form.project_form import ExecForm, ProjectForm, ProjectUpdateForm
from models.deployment import Deployment
from models.project import Project
from models.server import Server
from routes.access import get_owned_or_404, scoped
from service import deploy_service, port_manager
from util.crypto import encrypt
from util.helpers import isoformat
from util.tasks import enqueue_deploy, enqueue_rollback

project_bp = Blueprint("project", __name__, url_prefix="/api/projects")


def _project_to_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "display_name": project.display_name,
        "git_url": project.git_url,
        "branch": project.branch,
        "has_git_token": bool(project.git_token),
        "type": project.type,
        "port": project.port,
        "internal_port": project.internal_port,
        "domain": project.domain,
        "env_vars": project.env_vars or {},
        "dockerfile_template": project.dockerfile_template,
        "status": project.status,
        "current_version": project.current_version,
        "container_id": project.container_id,
        "previous_container_id": project.previous_container_id,
        "server_id": project.server_id,
        "user_id": project.user_id,
        "created_at": isoformat(project.created_at),
        "updated_at": isoformat(project.updated_at),
    }


def _deployment_to_dict(deployment: Deployment, with_logs=False) -> dict:
    data = {
        "id": deployment.id,
        "project_id": deployment.project_id,
        "version": deployment.version,
        "branch": deployment.branch,
        "commit": deployment.commit,
        "status": deployment.status,
        "deployed_by": deployment.deployed_by,
        "container_id": deployment.container_id,
        "deployed_at": isoformat(deployment.deployed_at),
    }
    if with_logs:
        data["logs"] = deployment.logs
    return data


def _failed(message, code=400):
    return jsonify({"status": "failed", "message": message}), code


def _check_port(port, project_id=None):
    """Error message for a requested port, or None when it can be used."""
    if port is None:
        return None
    if not port_manager.is_valid_port(port):
        return f"Port must be between {port_manager.MIN_PORT} and {port_manager.MAX_PORT}"
    if port in port_manager.used_ports(exclude_project_id=project_id):
        return f"Port {port} is already in use"
    return None


@project_bp.route("", methods=["GET"])
@login_required
def list_projects():
    query = scoped(Project)
    if request.args.get("server_id", type=int):
        query = query.filter(Project.server_id == request.args.get("server_id", type=int))
    projects = query.order_by(Project.created_at.desc()).all()
    return jsonify([_project_to_dict(p) for p in projects])


@project_bp.route("/templates", methods=["GET"])
@login_required
def templates():
    return jsonify(list_templates())


@project_bp.route("/ports/suggest", methods=["GET"])
@login_required
def suggest_ports():
    count = request.args.get("count", default=5, type=int)
    return jsonify({"ports": port_manager.suggest_ports(count=min(max(count, 1), 50))})


@project_bp.route("", methods=["POST"])
@login_required
def create_project():
    data = request.get_json(silent=True) or {}
    form = form_from_json(ProjectForm, data)
    if not form.validate():
        return _failed(form_errors(form))

    server = get_owned_or_404(Server, form.server_id.data)
    if Project.query.filter_by(server_id=server.id, name=form.name.data).first():
        return _failed(f"Project {form.name.data} already exists on this server")
    error = _check_port(form.port.data)
    if error:
        return _failed(error)
    if form.dockerfile_template.data and not get_template(form.dockerfile_template.data):
        return _failed(f"Unknown Dockerfile template: {form.dockerfile_template.data}")
    env_vars = data.get("env_vars") or {}
    if not isinstance(env_vars, dict):
        return _failed("env_vars must be an object")

    project = Project(
        name=form.name.data,
        display_name=form.display_name.data or form.name.data,
        git_url=form.git_url.data.strip(),
        branch=form.branch.data or "main",
        git_token=encrypt(form.git_token.data) or None,
        type=form.type.data,
        port=form.port.data,
        internal_port=form.internal_port.data or 3000,
        domain=(form.domain.data or "").strip().lower() or None,
        env_vars={str(k): str(v) for k, v in env_vars.items()},
        dockerfile_template=form.dockerfile_template.data or None,
        server_id=server.id,
        user_id=current_user.id,
    )
    db.session.add(project)
    db.session.commit()
    return jsonify(_project_to_dict(project)), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
@login_required
def get_project(project_id):
    project = get_owned_or_404(Project, project_id)
    return jsonify(_project_to_dict(project))


@project_bp.route("/<int:project_id>", methods=["PUT"])
@login_required
def update_project(project_id):
    project = get_owned_or_404(Project, project_id)
    data = request.get_json(silent=True) or {}
    form = form_from_json(ProjectUpdateForm, data)
    if not form.validate():
        return _failed(form_errors(form))

    if "port" in data:
        port = form.port.data
        error = _check_port(port, project.id)
        if error:
            return _failed(error)
        project.port = port
    if "env_vars" in data:
        if not isinstance(data["env_vars"], dict):
            return _failed("env_vars must be an object")
        project.env_vars = {str(k): str(v) for k, v in data["env_vars"].items()}
    if data.get("dockerfile_template"):
        if not get_template(data["dockerfile_template"]):
            return _failed(f"Unknown Dockerfile template: {data['dockerfile_template']}")
        project.dockerfile_template = data["dockerfile_template"]
    if "domain" in data:
        project.domain = (data["domain"] or "").strip().lower() or None
    if data.get("git_token"):
        project.git_token = encrypt(data["git_token"])
    for field in ("display_name", "git_url", "branch", "type"):
        if data.get(field):
            setattr(project, field, data[field])
    if form.internal_port.data:
        project.internal_port = form.internal_port.data

    db.session.commit()
    return jsonify(_project_to_dict(project))


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@login_required
def delete_project(project_id):
    project = get_owned_or_404(Project, project_id)
    deploy_service.delete_project(project.id)
    return jsonify({"status": "success"})


@project_bp.route("/<int:project_id>/deploy", methods=["POST"])
@login_required
def deploy(project_id):
    project = get_owned_or_404(Project, project_id)
    data = request.get_json(silent=True) or {}
    job = enqueue_deploy(project, version=data.get("version"), deployed_by=current_user.email)
    return jsonify({"status": "queued", "job_id": job.id}), 202


@project_bp.route("/<int:project_id>/rollback", methods=["POST"])
@login_required
def rollback(project_id):
    project = get_owned_or_404(Project, project_id)
    data = request.get_json(silent=True) or {}
    if data.get("deployment_id") is not None:
        target = deploy_service.rollback_target(project.id, data["deployment_id"])
        job = enqueue_rollback(project, target)
        return jsonify({
            "status": "queued",
            "job_id": job.id,
            "deployment": _deployment_to_dict(target),
        }), 202
    project = deploy_service.rollback(project.id)
    return jsonify({"status": "success", "project": _project_to_dict(project)})


@project_bp.route("/<int:project_id>/start", methods=["POST"])
@login_required
def start(project_id):
    project = get_owned_or_404(Project, project_id)
    deploy_service.start_project(project.id)
    return jsonify({"status": "success", "project": _project_to_dict(project)})


@project_bp.route("/<int:project_id>/stop", methods=["POST"])
@login_required
def stop(project_id):
    project = get_owned_or_404(Project, project_id)
    deploy_service.stop_project(project.id)
    return jsonify({"status": "success", "project": _project_to_dict(project)})


@project_bp.route("/<int:project_id>/logs", methods=["GET"])
@login_required
def logs(project_id):
    project = get_owned_or_404(Project, project_id)
    lines = min(max(request.args.get("lines", default=100, type=int), 1), 5000)
    return jsonify({"logs": deploy_service.project_logs(project.id, lines)})


@project_bp.route("/<int:project_id>/exec", methods=["POST"])
@login_required
def exec_command(project_id):
    project = get_owned_or_404(Project, project_id)
    form = form_from_json(ExecForm, request.get_json(silent=True))
    if not form.validate():
        return _failed(form_errors(form))
    result = deploy_service.exec_in_project(project.id, form.command.data)
    return jsonify({
        "status": "success" if result.ok else "failed",
        "stdout": result.stdout,
        "stderr": result.stderr,
        "exit_code": result.exit_code,
    })


@project_bp.route("/<int:project_id>/deployments", methods=["GET"])
@login_required
def deployments(project_id):
    project = get_owned_or_404(Project, project_id)
    return jsonify([_deployment_to_dict(d) for d in project.deployments])


@project_bp.route("/<int:project_id>/deployments/<int:deployment_id>", methods=["GET"])
@login_required
def deployment_detail(project_id, deployment_id):
    project = get_owned_or_404(Project, project_id)
    deployment = Deployment.query.filter_by(id=deployment_id, project_id=project.id).first_or_404()
    return jsonify(_deployment_to_dict(deployment, with_logs=True))
