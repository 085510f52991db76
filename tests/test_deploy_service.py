from contextlib import contextmanager

import pytest
from conftest import inspect_json

from bash_script import ssh_session
from database_init import db
from models.deployment import Deployment
from models.project import Project
from service import deploy_service
from util.crypto import encrypt
from util.errors import CommandValidationError, DeployError, SSHConnectionError

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def script_deploy(ssh, container_id="newcontainer123"):
    ssh.on("git rev-parse HEAD", stdout=f"{COMMIT}\n")
    ssh.on("/Dockerfile && echo", stdout="exists\n")
    ssh.on("docker build", stdout="Step 1/5 : FROM node:18-alpine\n")
    ssh.on("docker network ls", stdout="coolify\n")
    ssh.on("docker run -d", stdout=f"{container_id}\n")
    ssh.on(".State.Running", stdout="true")
    ssh.on("which nginx", stdout="/usr/sbin/nginx")
    ssh.on("docker inspect shop-", stdout=inspect_json(
        container_id=container_id, name="shop-1", networks={"coolify": "172.18.0.5"},
    ))
    return ssh


def test_deploy_success(fake_ssh, project):
    script_deploy(fake_ssh)
    deployment = deploy_service.deploy_project(project.id, deployed_by="dev@example.com")

    assert deployment.status == "success"
    assert deployment.commit == COMMIT
    assert deployment.version == COMMIT[:8]
    assert deployment.container_id == "newcontainer123"
    assert deployment.deployed_by == "dev@example.com"
    assert "Step 1/5" in deployment.logs

    project = db.session.get(Project, project.id)
    assert project.status == "active"
    assert project.container_id == "newcontainer123"
    assert project.current_version == COMMIT
    assert project.port == 3001

    env = fake_ssh.files["/opt/projects/shop/.env"]
    assert "NODE_ENV=production" in env
    assert "PORT=3001" in env
    assert fake_ssh.ran(f"docker build -t shop:{COMMIT[:8]} .")
    run = next(c for c in fake_ssh.commands if c.startswith("docker run -d"))
    assert "--network coolify" in run
    assert "Host(\\`shop.example.com\\`)" in run
    assert fake_ssh.ran("cat > /etc/nginx/sites-available/shop ")


def test_deploy_keeps_previous_container_for_rollback(fake_ssh, project):
    project.container_id = "oldcontainer"
    project.previous_container_id = "oldercontainer"
    db.session.commit()
    script_deploy(fake_ssh)

    deploy_service.deploy_project(project.id)

    assert fake_ssh.ran("docker stop oldcontainer")
    assert fake_ssh.ran("docker rm -f oldercontainer")
    assert not fake_ssh.ran("docker rm -f oldcontainer")
    project = db.session.get(Project, project.id)
    assert project.previous_container_id == "oldcontainer"


def test_deploy_leaves_other_projects_containers(fake_ssh, project):
    script_deploy(fake_ssh)
    fake_ssh.on("docker ps -a", stdout=(
        "stale1|shop-1500|Exited (0)|shop:1\n"
        "theirs1|myshop-1600|Up 1 hour|myshop:1\n"
    ))

    deploy_service.deploy_project(project.id)

    assert fake_ssh.ran("docker rm -f stale1")
    assert not fake_ssh.ran("docker rm -f theirs1")
    assert project.container_id == "newcontainer123"


def test_deploy_allocates_port_when_missing(fake_ssh, project):
    project.port = None
    db.session.commit()
    script_deploy(fake_ssh)
    deploy_service.deploy_project(project.id)
    assert db.session.get(Project, project.id).port == 3000


def test_deploy_creates_dockerfile_from_detected_template(fake_ssh, project):
    script_deploy(fake_ssh)
    fake_ssh.on("/Dockerfile && echo", stdout="missing\n")
    fake_ssh.on("requirements.txt", stdout="yes\n")
    deploy_service.deploy_project(project.id)
    assert "python" in fake_ssh.files["/opt/projects/shop/Dockerfile"].lower()


def test_deploy_uses_git_token(fake_ssh, project):
    project.git_token = encrypt("ghp_token")
    db.session.commit()
    script_deploy(fake_ssh)
    deploy_service.deploy_project(project.id)
    assert fake_ssh.ran("https://ghp_token@github.com/acme/shop.git")


def test_deploy_survives_nginx_failure(fake_ssh, project):
    script_deploy(fake_ssh)
    fake_ssh.on("docker inspect shop-", stderr="Error: No such object", exit_code=1)
    deployment = deploy_service.deploy_project(project.id)
    assert deployment.status == "success"
    assert "Nginx proxy not configured" in deployment.logs


def test_deploy_build_failure_records_failed_deployment(fake_ssh, project):
    script_deploy(fake_ssh)
    fake_ssh.on("docker build", stderr="npm ERR! missing script: build", exit_code=1)

    with pytest.raises(DeployError, match="Build failed"):
        deploy_service.deploy_project(project.id)

    project = db.session.get(Project, project.id)
    assert project.status == "error"
    failed = Deployment.query.filter_by(project_id=project.id).one()
    assert failed.status == "failed"
    assert failed.commit == COMMIT
    assert "npm ERR!" in failed.logs
    assert not fake_ssh.ran("docker run -d")


def test_deploy_container_not_starting(fake_ssh, project):
    script_deploy(fake_ssh)
    fake_ssh.on(".State.Running", stdout="false")
    fake_ssh.on("docker logs", stdout="Error: Cannot find module 'express'\n")
    with pytest.raises(DeployError, match="Cannot find module"):
        deploy_service.deploy_project(project.id)
    assert db.session.get(Project, project.id).status == "error"


def test_deploy_connection_failure(monkeypatch, project):
    @contextmanager
    def unreachable(server):
        raise SSHConnectionError("SSH connection to 203.0.113.10 failed")
        yield

    monkeypatch.setattr(ssh_session, "open_server_session", unreachable)
    with pytest.raises(SSHConnectionError):
        deploy_service.deploy_project(project.id)
    assert Deployment.query.one().status == "failed"


def test_rollback_to_previous_container(fake_ssh, project):
    project.container_id = "current"
    project.previous_container_id = "previous"
    db.session.commit()

    deploy_service.rollback(project.id)

    assert fake_ssh.ran("docker stop current")
    assert fake_ssh.ran("docker start previous")
    project = db.session.get(Project, project.id)
    assert project.container_id == "previous"
    assert project.previous_container_id == "current"
    assert project.status == "active"


def test_rollback_previous_container_gone(fake_ssh, project):
    project.container_id = "current"
    project.previous_container_id = "previous"
    db.session.commit()
    fake_ssh.on("docker start previous", stderr="Error: No such container: previous", exit_code=1)

    with pytest.raises(DeployError, match="no longer exists"):
        deploy_service.rollback(project.id)
    assert db.session.get(Project, project.id).container_id == "current"


def test_rollback_without_previous(fake_ssh, project):
    with pytest.raises(DeployError, match="No previous version"):
        deploy_service.rollback(project.id)


def test_rollback_to_deployment_redeploys_commit(fake_ssh, project):
    old = Deployment(project_id=project.id, version="v1", commit="feedface" * 5, status="success")
    db.session.add(old)
    db.session.commit()
    script_deploy(fake_ssh)

    deployment = deploy_service.rollback(project.id, old.id)

    assert fake_ssh.ran(f"git checkout {'feedface' * 5}")
    assert deployment.version == "rollback-v1"
    assert deployment.deployed_by == "rollback"


def test_start_and_stop(fake_ssh, project):
    project.container_id = "cid"
    db.session.commit()
    deploy_service.stop_project(project.id)
    assert db.session.get(Project, project.id).status == "inactive"
    deploy_service.start_project(project.id)
    assert db.session.get(Project, project.id).status == "active"
    assert fake_ssh.commands == ["docker stop cid", "docker start cid"]


def test_start_without_container(fake_ssh, project):
    with pytest.raises(DeployError):
        deploy_service.start_project(project.id)


def test_exec_runs_validated_command(fake_ssh, project):
    project.container_id = "cid"
    db.session.commit()
    fake_ssh.on("docker exec cid", stdout="app.js\n")
    result = deploy_service.exec_in_project(project.id, "  ls -la ")
    assert result.stdout == "app.js\n"
    assert fake_ssh.commands == ["docker exec cid sh -c 'ls -la'"]


def test_exec_rejects_blocked_command(fake_ssh, project):
    project.container_id = "cid"
    db.session.commit()
    with pytest.raises(CommandValidationError):
        deploy_service.exec_in_project(project.id, "rm -rf /")
    assert fake_ssh.commands == []


def test_delete_project_cleans_remote(fake_ssh, project):
    project.container_id = "cid"
    db.session.commit()
    deploy_service.delete_project(project.id)
    assert fake_ssh.ran("docker rm -f cid")
    assert fake_ssh.ran("rm -rf /opt/projects/shop")
    assert fake_ssh.ran("rm -f /etc/nginx/sites-enabled/shop")
    assert db.session.get(Project, project.id) is None


def test_delete_project_when_server_unreachable(monkeypatch, project):
    @contextmanager
    def unreachable(server):
        raise SSHConnectionError("down")
        yield

    monkeypatch.setattr(ssh_session, "open_server_session", unreachable)
    deploy_service.delete_project(project.id)
    assert Project.query.count() == 0
