# service/reconcile_service.py
"""
Maintenance operations that compare stored projects with what Docker,
Traefik and Nginx actually run on a server, and patch one side or the other.

Every function opens its own SSH session and returns a plain dict report;
nothing here is atomic across the store and the remote host.
"""
import logging
import time

import requests

from bash_script import ssh_session
from bash_script.templates import UPDATE_DOCKER_SCRIPT
from database_init import db
from models.project import Project
from models.server import Server
from service import docker_service, nginx_deploy_service, port_manager, traefik_service
from service.deploy_service import container_port, project_domain
from util.constant import PROJECT_STATUS, TRAEFIK_CONTAINER
from util.errors import ArkError, DeployError, NotFoundError
from util.helpers import router_name, short_id

logger = logging.getLogger("maintenance")


# ─────────────────────────────── Lookups ─────────────────────────────── #

def project_by_domain(domain) -> Project:
    project = Project.query.filter_by(domain=domain).first()
    if not project:
        raise NotFoundError(f"No project with domain {domain}")
    return project


def project_by_name(name) -> Project:
    project = Project.query.filter_by(name=name).first()
    if not project:
        raise NotFoundError(f"No project named {name}")
    return project


def server_by_host(host) -> Server:
    server = Server.query.filter_by(host=host).first()
    if not server:
        raise NotFoundError(f"No server with host {host}")
    return server


def _same_container(a, b) -> bool:
    return bool(a and b) and (a.startswith(b) or b.startswith(a))


def _require_container(project):
    if not project.container_id:
        raise DeployError(f"Project {project.name} has no container id")
    return project.container_id


def _http_from_host(ssh, ip, port) -> str:
    result = ssh.run(
        f'curl -s -o /dev/null -w "%{{http_code}}" http://{ip}:{port} --max-time 5 || echo "000"'
    )
    return result.stdout.strip()[-3:] or "000"


# ─────────────────────────────── Inspect ─────────────────────────────── #

def check_container(domain) -> dict:
    project = project_by_domain(domain)
    with ssh_session.open_server_session(project.server) as ssh:
        info = (
            docker_service.inspect_container(ssh, project.container_id)
            if project.container_id else None
        )
        running = [c for c in docker_service.list_containers(ssh) if c["running"]]
    return {
        "project": project.name,
        "container_id": project.container_id,
        "exists": info is not None,
        "status": info["status"] if info else "missing",
        "networks": info["networks"] if info else {},
        "running_containers": running,
    }


def diagnose_deployment(name) -> dict:
    """Container, upstream HTTP, nginx site and domain checks for a project."""
    project = project_by_name(name)
    port = container_port(project)
    report = {"project": project.name, "domain": project.domain, "port": port}
    with ssh_session.open_server_session(project.server) as ssh:
        info = (
            docker_service.inspect_container(ssh, project.container_id)
            if project.container_id else None
        )
        report["container"] = info
        if info and info["running"]:
            ip = docker_service.container_ip(ssh, project.container_id)
            report["container_http"] = _http_from_host(ssh, ip, port) if ip else None
        if info:
            report["container_logs"] = docker_service.container_logs(
                ssh, project.container_id, tail=20
            )
        report["nginx_active"] = ssh.run("systemctl is-active nginx").stdout.strip()
        report["nginx_site"] = nginx_deploy_service.verify_site(
            ssh, project.name, project.container_id
        )
        if project.domain:
            report["domain"] = traefik_service.test_domain(ssh, project.domain)
        report["firewall"] = ssh.run('ufw status 2>/dev/null || echo "ufw not installed"').stdout.strip()
    return report


def diagnose_traefik(domain) -> dict:
    project = project_by_domain(domain)
    container = _require_container(project)
    with ssh_session.open_server_session(project.server) as ssh:
        info = docker_service.inspect_container(ssh, container)
        proxy = traefik_service.find_proxy_container(ssh)
        ip = docker_service.container_ip(ssh, container)
        reachable = None
        if proxy and ip:
            probe = ssh.run(
                f"docker exec {proxy} wget -qO- --timeout=2 "
                f"http://{ip}:{container_port(project)} 2>&1 | head -c 200"
            )
            reachable = probe.ok and bool(probe.stdout.strip())
        return {
            "project": project.name,
            "labels": info["labels"] if info else {},
            "proxy_container": proxy,
            "routers": traefik_service.query_api(ssh, "routers"),
            "services": traefik_service.query_api(ssh, "services"),
            "overview": traefik_service.query_api(ssh, "overview"),
            "proxy_logs": docker_service.container_logs(ssh, proxy, tail=20) if proxy else "",
            "container_ip": ip,
            "reachable_from_proxy": reachable,
        }


# ─────────────────────────────── Repairs ─────────────────────────────── #

def _recreate_with_labels(ssh, project, log):
    """Replace the project container with one carrying fresh Traefik labels."""
    image = docker_service.latest_image(ssh, project.name)
    if not image:
        raise DeployError(f"No image found for {project.name}")
    if project.container_id:
        docker_service.stop_container(ssh, project.container_id)
        docker_service.remove_container(ssh, project.container_id)

    network = traefik_service.detect_network(ssh)
    traefik_service.ensure_network(ssh, network)
    container_name = f"{project.name}-{int(time.time() * 1000)}"
    args = traefik_service.generate_docker_run_command(
        container_name,
        image,
        project_domain(project),
        container_port(project),
        project.name,
        env_vars=project.env_vars or {},
        network=network,
    )
    new_id = docker_service.run_container(ssh, args)
    log.append(f"recreated container {short_id(new_id)} from {image}")
    project.container_id = new_id
    project.status = PROJECT_STATUS.active.value
    db.session.commit()
    ssh.run(f"docker restart {TRAEFIK_CONTAINER}")
    log.append("restarted traefik")
    return new_id


def fix_container_labels(domain) -> dict:
    project = project_by_domain(domain)
    actions = []
    with ssh_session.open_server_session(project.server) as ssh:
        new_id = _recreate_with_labels(ssh, project, actions)
        docker_service.wait_for_container(ssh, new_id, timeout=10)
        logs = docker_service.container_logs(ssh, new_id, tail=20)
    return {"project": project.name, "container_id": new_id, "actions": actions, "logs": logs}


def update_project_port(domain, port) -> dict:
    project = project_by_domain(domain)
    port = int(port)
    if not port_manager.is_valid_port(port):
        raise ArkError(
            f"Port {port} outside {port_manager.MIN_PORT}-{port_manager.MAX_PORT}"
        )
    if port in port_manager.used_ports(exclude_project_id=project.id):
        raise ArkError(f"Port {port} is already used by another project")
    old = project.port
    project.port = port
    db.session.commit()
    logger.info(f"{project.name}: port {old} -> {port}")
    return {"project": project.name, "old_port": old, "new_port": port}


def update_container_id(domain, container_id=None) -> dict:
    """Store *container_id*, or the running ``<name>-*`` container when omitted."""
    project = project_by_domain(domain)
    if not container_id:
        with ssh_session.open_server_session(project.server) as ssh:
            running = [
                c for c in docker_service.list_project_containers(ssh, project.name)
                if c["running"]
            ]
            if not running:
                raise NotFoundError(f"No running container for {project.name}")
            info = docker_service.inspect_container(ssh, running[0]["id"])
            container_id = info["id"] if info else running[0]["id"]
    old = project.container_id
    project.container_id = container_id
    db.session.commit()
    logger.info(f"{project.name}: container {short_id(old)} -> {short_id(container_id)}")
    return {"project": project.name, "old_container_id": old, "container_id": container_id}


def setup_nginx_proxy(domain) -> dict:
    project = project_by_domain(domain)
    container = _require_container(project)
    with ssh_session.open_server_session(project.server) as ssh:
        info = docker_service.inspect_container(ssh, container)
        if not info:
            raise NotFoundError(f"Container {short_id(container)} does not exist")
        upstream = nginx_deploy_service.configure_proxy(
            ssh, project.name, domain, info["name"], container_port(project)
        )
    return {"project": project.name, "upstream": f"{upstream}:{container_port(project)}"}


def verify_nginx_config(project_name=None) -> list[dict]:
    query = Project.query.filter(Project.domain.isnot(None))
    if project_name:
        query = query.filter(Project.name == project_name)
    reports = []
    for project in query.all():
        with ssh_session.open_server_session(project.server) as ssh:
            report = nginx_deploy_service.verify_site(ssh, project.name, project.container_id)
            report["domain"] = project.domain
            report["containers"] = docker_service.list_project_containers(ssh, project.name)
        reports.append(report)
    return reports


def cleanup_nginx(project_name=None) -> list[dict]:
    """
    Drop nginx sites and stale ``<name>-*`` containers, per server. The
    container a project currently points at is never removed.
    """
    if project_name:
        projects = [project_by_name(project_name)]
    else:
        projects = Project.query.all()

    by_server = {}
    for project in projects:
        by_server.setdefault(project.server_id, []).append(project)

    results = []
    for server_id, server_projects in by_server.items():
        server = db.session.get(Server, server_id)
        removed = []
        with ssh_session.open_server_session(server) as ssh:
            syntax_ok = nginx_deploy_service.cleanup_sites(
                ssh, [p.name for p in server_projects]
            )
            for project in server_projects:
                for container in docker_service.list_project_containers(ssh, project.name):
                    if _same_container(container["id"], project.container_id):
                        continue
                    docker_service.remove_container(ssh, container["id"])
                    removed.append(container["name"])
        results.append(
            {"server": server.host, "removed_containers": removed, "nginx_ok": syntax_ok}
        )
    return results


def reinstall_traefik(host) -> dict:
    server = server_by_host(host)
    with ssh_session.open_server_session(server) as ssh:
        container_id = traefik_service.install_traefik(ssh)
        running = docker_service.wait_for_container(ssh, TRAEFIK_CONTAINER, timeout=10)
        logs = docker_service.container_logs(ssh, TRAEFIK_CONTAINER, tail=10)
    return {"server": host, "container_id": container_id, "running": running, "logs": logs}


def stop_traefik_start_nginx(domain) -> dict:
    """Hand port 80 from Traefik to nginx and route *domain* through nginx."""
    project = project_by_domain(domain)
    container = _require_container(project)
    with ssh_session.open_server_session(project.server) as ssh:
        ssh.run(f"docker stop {TRAEFIK_CONTAINER} 2>/dev/null || true")
        nginx_deploy_service.ensure_nginx_installed(ssh)
        if ssh.run("systemctl is-active nginx").stdout.strip() != "active":
            ssh.check("systemctl start nginx")
        info = docker_service.inspect_container(ssh, container)
        if not info:
            raise NotFoundError(f"Container {short_id(container)} does not exist")
        nginx_deploy_service.configure_proxy(
            ssh, project.name, domain, info["name"], container_port(project)
        )
        probe = traefik_service.test_domain(ssh, domain)
    return {"project": project.name, "probe": probe}


def fix_502(project_name) -> dict:
    """
    Walk the usual causes of a 502: container stopped, container off the
    proxy network, upstream not answering, nginx pointing at a stale IP.
    """
    project = project_by_name(project_name)
    container = _require_container(project)
    port = container_port(project)
    actions = []
    with ssh_session.open_server_session(project.server) as ssh:
        info = docker_service.inspect_container(ssh, container)
        if not info:
            project.status = PROJECT_STATUS.error.value
            db.session.commit()
            raise DeployError(
                f"Container {short_id(container)} is missing; redeploy {project.name}"
            )
        if not info["running"]:
            docker_service.start_container(ssh, container)
            actions.append("started container")
            if not docker_service.wait_for_container(ssh, container, timeout=10):
                logs = docker_service.container_logs(ssh, container, tail=20)
                raise DeployError(f"Container keeps stopping:\n{logs}")

        network = traefik_service.detect_network(ssh)
        ip = docker_service.container_ip(ssh, container, network)
        if not ip or network not in (info["networks"] or {}):
            traefik_service.connect_to_network(ssh, container, network)
            actions.append(f"connected container to {network}")
            ip = docker_service.container_ip(ssh, container, network)

        upstream_code = _http_from_host(ssh, ip, port) if ip else "000"
        if upstream_code == "000":
            actions.append(f"container does not answer on port {port}")

        if project.domain:
            site = nginx_deploy_service.verify_site(ssh, project.name, container, network)
            if site["exists"] and not site["matches"]:
                nginx_deploy_service.configure_proxy(
                    ssh, project.name, project.domain, info["name"], port, network
                )
                actions.append("rewrote nginx upstream")
            probe = traefik_service.test_domain(ssh, project.domain)
        else:
            probe = None

    project.status = PROJECT_STATUS.active.value
    db.session.commit()
    return {
        "project": project.name,
        "actions": actions,
        "upstream_http": upstream_code,
        "probe": probe,
    }


def fix_traefik_domain(domain) -> dict:
    project = project_by_domain(domain)
    container = _require_container(project)
    actions = []
    with ssh_session.open_server_session(project.server) as ssh:
        info = docker_service.inspect_container(ssh, container)
        if info and not info["running"]:
            docker_service.start_container(ssh, container)
            actions.append("started container")

        rule = f"Host(`{domain}`)"
        router = router_name(project.name)
        labels = info["labels"] if info else {}
        if not info or labels.get(f"traefik.http.routers.{router}.rule") != rule:
            container = _recreate_with_labels(ssh, project, actions)
            info = docker_service.inspect_container(ssh, container)
        else:
            proxy = traefik_service.find_proxy_container(ssh) or TRAEFIK_CONTAINER
            proxy_info = docker_service.inspect_container(ssh, proxy)
            proxy_networks = list((proxy_info or {}).get("networks", {}))
            if proxy_networks and proxy_networks[0] not in info["networks"]:
                traefik_service.connect_to_network(ssh, container, proxy_networks[0])
                actions.append(f"connected container to {proxy_networks[0]}")
            ssh.run(f"docker restart {proxy}")
            actions.append(f"restarted {proxy}")

        probe = traefik_service.test_domain(ssh, domain)
    return {"project": project.name, "actions": actions, "probe": probe}


def update_docker(host) -> dict:
    server = server_by_host(host)
    version_cmd = 'docker version --format "{{.Server.Version}}"'
    with ssh_session.open_server_session(server) as ssh:
        before = ssh.run(version_cmd).stdout.strip()
        ssh.write_file("/tmp/update-docker.sh", UPDATE_DOCKER_SCRIPT, mode=0o755)
        ssh.check("bash /tmp/update-docker.sh 2>&1", timeout=1800)
        ssh.run("rm -f /tmp/update-docker.sh")
        after = ssh.run(version_cmd).stdout.strip()
    logger.info(f"Docker on {host}: {before} -> {after}")
    return {"server": host, "before": before, "after": after}


def sync_projects(host=None) -> list[dict]:
    """
    Align stored projects with the live containers of each server: container
    id, status and the port from the Traefik service label.
    """
    query = Server.query
    if host:
        query = query.filter(Server.host == host)
    changes = []
    for server in query.all():
        if not server.projects:
            continue
        with ssh_session.open_server_session(server) as ssh:
            for project in server.projects:
                change = _sync_project(ssh, project)
                if change:
                    changes.append(change)
    db.session.commit()
    return changes


def _sync_project(ssh, project):
    candidates = docker_service.list_project_containers(ssh, project.name)
    current = next(
        (c for c in candidates if _same_container(c["id"], project.container_id)), None
    )
    if current is None:
        current = next((c for c in candidates if c["running"]), None)

    before = (project.container_id, project.status, project.port)
    if current is None:
        if project.container_id or project.status == PROJECT_STATUS.active.value:
            project.status = PROJECT_STATUS.error.value
    else:
        info = docker_service.inspect_container(ssh, current["id"])
        if info:
            if not _same_container(info["id"], project.container_id):
                project.container_id = info["id"]
            label = f"traefik.http.services.{router_name(project.name)}.loadbalancer.server.port"
            if info["labels"].get(label, "").isdigit():
                project.port = int(info["labels"][label])
            project.status = (
                PROJECT_STATUS.active.value if info["running"] else PROJECT_STATUS.inactive.value
            )

    after = (project.container_id, project.status, project.port)
    if before == after:
        return None
    logger.info(f"sync {project.name}: {before} -> {after}")
    return {
        "project": project.name,
        "server": ssh.host,
        "before": dict(zip(("container_id", "status", "port"), before)),
        "after": dict(zip(("container_id", "status", "port"), after)),
    }


def test_domain(domain) -> dict:
    """Probe *domain* over HTTP and HTTPS from here, plus the server-side route."""
    report = {"domain": domain}
    for scheme in ("http", "https"):
        try:
            resp = requests.get(f"{scheme}://{domain}", timeout=10, allow_redirects=False)
            report[scheme] = {
                "status_code": resp.status_code,
                "server": resp.headers.get("Server"),
                "body": resp.text[:500],
            }
        except requests.RequestException as e:
            report[scheme] = {"error": str(e)}

    project = Project.query.filter_by(domain=domain).first()
    if project:
        with ssh_session.open_server_session(project.server) as ssh:
            report["route"] = traefik_service.test_domain(ssh, domain)
    return report
