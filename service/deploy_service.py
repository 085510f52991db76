# service/deploy_service.py
import logging
import shlex
import time

from bash_script import ssh_session
from bash_script.templates import DEFAULT_TEMPLATE, detect_template, get_template
from database_init import db
from models.deployment import Deployment
from models.project import Project
from service import docker_service, nginx_deploy_service, port_manager, traefik_service
from util.command_validator import validate_command
from util.constant import DEPLOYMENT_STATUS, PROJECT_STATUS, PROJECTS_ROOT
from util.crypto import decrypt
from util.errors import (
    ArkError,
    CommandValidationError,
    DeployError,
    NotFoundError,
)
from util.helpers import short_id, sslip_domain

logger = logging.getLogger("deploy_logger")


class DeployLog:
    """Collects deploy output for the Deployment row while logging it."""

    def __init__(self, project_name):
        self.project_name = project_name
        self.lines = []

    def __call__(self, message):
        logger.info(f"[{self.project_name}] {message}")
        self.lines.append(message)

    def raw(self, chunk):
        self.lines.append(chunk.rstrip("\n"))

    def text(self):
        return "\n".join(self.lines)


def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")
    return project


def container_port(project) -> int:
    return project.port or project.internal_port or 3000


def project_domain(project) -> str:
    return project.domain or sslip_domain(project.name, project.server.host)


def _git_url(project) -> str:
    token = decrypt(project.git_token) if project.git_token else ""
    if token and project.git_url.startswith("https://"):
        return project.git_url.replace("https://", f"https://{token}@", 1)
    return project.git_url


def _sync_repository(ssh, project, log, ref=None) -> str:
    """Clone or update the repository; returns the checked out commit."""
    path = project.project_dir
    branch = project.branch or "main"
    if _git_url(project) != project.git_url:
        log("Using token authentication for git")
    log(f"Syncing {project.git_url} ({branch})")
    ssh.run(f"mkdir -p {PROJECTS_ROOT}")
    result = ssh.run(
        f'if [ -d "{path}/.git" ]; then '
        f"cd {path} && git fetch origin && git checkout -B {branch} origin/{branch} "
        f"&& git pull origin {branch}; "
        f"else GIT_TERMINAL_PROMPT=0 git clone {shlex.quote(_git_url(project))} {path} "
        f"&& cd {path} && git checkout -B {branch} origin/{branch}; fi",
        timeout=600,
    )
    if not result.ok:
        raise DeployError(f"Could not clone repository: {result.stderr.strip()}")

    if ref:
        log(f"Checking out {ref}")
        checkout = ssh.run(f"cd {path} && git checkout {shlex.quote(ref)}")
        if not checkout.ok:
            raise DeployError(f"Could not check out {ref}: {checkout.stderr.strip()}")

    commit = ssh.run(f"cd {path} && git rev-parse HEAD").stdout.strip()
    if not commit:
        raise DeployError("Could not read the current commit")
    log(f"Commit {commit[:8]}")
    return commit


def _write_env_file(ssh, project, log):
    env = dict(project.env_vars or {})
    env["PORT"] = str(container_port(project))
    content = "\n".join(f"{key}={value}" for key, value in env.items()) + "\n"
    ssh.write_file(f"{project.project_dir}/.env", content)
    log(f"Wrote .env ({len(env)} variables)")


def _ensure_dockerfile(ssh, project, log):
    path = project.project_dir
    check = ssh.run(f'test -f {path}/Dockerfile && echo "exists" || echo "missing"')
    if check.stdout.strip() == "exists":
        log("Using the repository Dockerfile")
        return

    template_id = project.dockerfile_template or detect_template(ssh, path)
    if not template_id:
        log("Could not detect the project type, using the Node.js template")
        template_id = DEFAULT_TEMPLATE
    template = get_template(template_id)
    if not template:
        raise DeployError(f"Dockerfile template {template_id} not found")
    ssh.write_file(f"{path}/Dockerfile", template["content"])
    log(f"Dockerfile created from template {template['name']}")


def _retire_containers(ssh, project, log):
    """
    Stop the current container and keep it as the rollback target; remove
    every other ``<name>-*`` container, including the older previous one.
    """
    keep = project.container_id
    if keep:
        log(f"Stopping current container {short_id(keep)}")
        docker_service.stop_container(ssh, keep)
    if project.previous_container_id and project.previous_container_id != keep:
        docker_service.remove_container(ssh, project.previous_container_id)
    for container in docker_service.list_project_containers(ssh, project.name):
        if keep and (keep.startswith(container["id"]) or container["id"].startswith(keep)):
            continue
        docker_service.remove_container(ssh, container["id"])


def _run_new_container(ssh, project, image, log) -> tuple[str, str]:
    network = traefik_service.detect_network(ssh)
    traefik_service.ensure_network(ssh, network)
    domain = project_domain(project)
    container_name = f"{project.name}-{int(time.time() * 1000)}"
    log(f"Routing {domain} through Traefik on network {network}")

    args = traefik_service.generate_docker_run_command(
        container_name,
        image,
        domain,
        container_port(project),
        project.name,
        env_vars=project.env_vars or {},
        network=network,
    )
    container_id = docker_service.run_container(ssh, args)
    log(f"Started container {container_name} ({short_id(container_id)})")

    if not docker_service.wait_for_container(ssh, container_id, timeout=10):
        output = docker_service.container_logs(ssh, container_id)
        raise DeployError(f"Container did not start:\n{output}")
    return container_id, container_name


def deploy_project(project_id, version=None, deployed_by="system", ref=None) -> Deployment:
    """
    Build and run the project on its server.

    Always records a Deployment: ``success`` with the new container, or
    ``failed`` with the log collected so far, after which the error is re-raised.
    """
    project = get_project(project_id)
    server = project.server
    log = DeployLog(project.name)

    if project.port is None:
        project.port = port_manager.find_available_port(
            project.internal_port, exclude_project_id=project.id
        )
    project.status = PROJECT_STATUS.deploying.value
    db.session.commit()

    commit = None
    try:
        log(f"Connecting to {server.name} ({server.host})")
        with ssh_session.open_server_session(server) as ssh:
            commit = _sync_repository(ssh, project, log, ref=ref)
            _write_env_file(ssh, project, log)
            _ensure_dockerfile(ssh, project, log)

            image = f"{project.name}:{commit[:8]}"
            log(f"Building image {image}")
            build = ssh.run(
                f"cd {project.project_dir} && docker build -t {image} .",
                timeout=1800,
                on_output=log.raw,
            )
            if not build.ok:
                raise DeployError(f"Build failed: {build.stderr.strip()[-2000:]}")

            _retire_containers(ssh, project, log)
            container_id, container_name = _run_new_container(ssh, project, image, log)

            if project.domain:
                try:
                    nginx_deploy_service.configure_proxy(
                        ssh,
                        project.name,
                        project.domain,
                        container_name,
                        container_port(project),
                    )
                    log(f"Nginx proxy configured for http://{project.domain}")
                except ArkError as e:
                    log(f"Nginx proxy not configured: {e}")
                    logger.warning(f"[{project.name}] proxy setup failed: {e}")

        project.previous_container_id = project.container_id
        project.container_id = container_id
        project.current_version = commit
        project.status = PROJECT_STATUS.active.value
        deployment = Deployment(
            project_id=project.id,
            version=version or commit[:8],
            branch=project.branch,
            commit=commit,
            status=DEPLOYMENT_STATUS.success.value,
            logs=log.text(),
            deployed_by=deployed_by,
            container_id=container_id,
        )
        db.session.add(deployment)
        db.session.commit()
        log("Deploy finished")
        return deployment

    except Exception as e:
        logger.error(f"[{project.name}] deploy failed: {e}")
        db.session.rollback()
        project = get_project(project_id)
        project.status = PROJECT_STATUS.error.value
        db.session.add(
            Deployment(
                project_id=project.id,
                version=version or "unknown",
                branch=project.branch,
                commit=commit,
                status=DEPLOYMENT_STATUS.failed.value,
                logs=f"{log.text()}\nError: {e}",
                deployed_by=deployed_by,
            )
        )
        db.session.commit()
        raise


def rollback_target(project_id, deployment_id) -> Deployment:
    """The deployment of *project_id* whose commit a rollback would rebuild."""
    target = Deployment.query.filter_by(id=deployment_id, project_id=project_id).first()
    if not target:
        raise NotFoundError(f"Deployment {deployment_id} not found")
    if not target.commit:
        raise DeployError(f"Deployment {deployment_id} has no commit to redeploy")
    return target


def rollback(project_id, deployment_id=None):
    """
    With *deployment_id*, redeploy that deployment's commit. Otherwise swap
    back to the previous container.
    """
    project = get_project(project_id)

    if deployment_id is not None:
        target = rollback_target(project.id, deployment_id)
        return deploy_project(
            project.id,
            version=f"rollback-{target.version}",
            deployed_by="rollback",
            ref=target.commit,
        )

    previous = project.previous_container_id
    if not previous:
        raise DeployError("No previous version to roll back to")

    with ssh_session.open_server_session(project.server) as ssh:
        if project.container_id:
            docker_service.stop_container(ssh, project.container_id)
        result = ssh.run(f"docker start {previous}")
        if not result.ok:
            if result.failure == ssh_session.FAILURE_CONTAINER_MISSING:
                raise DeployError(
                    f"Previous container {short_id(previous)} no longer exists; "
                    "roll back to a deployment instead"
                )
            raise DeployError(f"Could not start previous container: {result.output}")

    project.previous_container_id, project.container_id = project.container_id, previous
    project.status = PROJECT_STATUS.active.value
    db.session.commit()
    logger.info(f"[{project.name}] rolled back to container {short_id(previous)}")
    return project


def start_project(project_id):
    project = get_project(project_id)
    if not project.container_id:
        raise DeployError("Project has no container; deploy it first")
    with ssh_session.open_server_session(project.server) as ssh:
        result = ssh.run(f"docker start {project.container_id}")
    if not result.ok:
        raise DeployError(f"Could not start container: {result.output}")
    project.status = PROJECT_STATUS.active.value
    db.session.commit()
    return project


def stop_project(project_id):
    project = get_project(project_id)
    if not project.container_id:
        raise DeployError("Project has no container")
    with ssh_session.open_server_session(project.server) as ssh:
        result = ssh.run(f"docker stop {project.container_id}")
    if not result.ok:
        raise DeployError(f"Could not stop container: {result.output}")
    project.status = PROJECT_STATUS.inactive.value
    db.session.commit()
    return project


def project_logs(project_id, lines=100) -> str:
    project = get_project(project_id)
    if not project.container_id:
        return ""
    with ssh_session.open_server_session(project.server) as ssh:
        return docker_service.container_logs(ssh, project.container_id, tail=lines)


def exec_in_project(project_id, command):
    """Run a validated user command inside the project container."""
    validation = validate_command(command)
    if not validation.valid:
        raise CommandValidationError(validation.error)
    project = get_project(project_id)
    if not project.container_id:
        raise DeployError("Project has no container")
    with ssh_session.open_server_session(project.server) as ssh:
        return ssh.run(
            f"docker exec {project.container_id} sh -c {shlex.quote(validation.sanitized)}",
            timeout=120,
        )


def delete_project(project_id):
    """Remove container, image, files and proxy config, then the row."""
    project = get_project(project_id)
    name = project.name
    try:
        with ssh_session.open_server_session(project.server) as ssh:
            for container in (project.container_id, project.previous_container_id):
                if container:
                    docker_service.remove_container(ssh, container)
            docker_service.remove_stale_containers(ssh, name)
            docker_service.remove_image(ssh, name)
            ssh.run(f"rm -rf {project.project_dir}")
            nginx_deploy_service.remove_proxy(ssh, name)
    except ArkError as e:
        logger.warning(f"[{name}] remote cleanup incomplete: {e}")

    db.session.delete(project)
    db.session.commit()
    logger.info(f"Project {name} deleted")
