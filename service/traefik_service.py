# service/traefik_service.py
import json
import logging

from util.constant import (
    DEFAULT_NETWORK,
    FALLBACK_NETWORK,
    TRAEFIK_CONTAINER,
    TRAEFIK_IMAGE,
)
from util.helpers import router_name

logger = logging.getLogger("proxy_logger")

OK_CODES = ("200", "301", "302")
STARTING_CODES = ("502", "503", "504")

TRAEFIK_API_PATHS = {
    "routers": "/api/http/routers",
    "services": "/api/http/services",
    "overview": "/api/overview",
}


# ─────────────────────────────── Labels ──────────────────────────────── #

def generate_labels(domain, port, project_name, network=DEFAULT_NETWORK, enable_ssl=False):
    """Traefik labels routing ``Host(domain)`` to the container *port*."""
    router = router_name(project_name)
    labels = {
        "traefik.enable": "true",
        f"traefik.http.routers.{router}.rule": f"Host(`{domain}`)",
        f"traefik.http.routers.{router}.entrypoints": "web",
        f"traefik.http.services.{router}.loadbalancer.server.port": str(port),
        "traefik.docker.network": network,
    }
    if enable_ssl:
        labels[f"traefik.http.routers.{router}.entrypoints"] = "websecure"
        labels[f"traefik.http.routers.{router}.tls"] = "true"
        labels[f"traefik.http.routers.{router}.tls.certresolver"] = "letsencrypt"
        labels[f"traefik.http.routers.{router}-http.rule"] = f"Host(`{domain}`)"
        labels[f"traefik.http.routers.{router}-http.entrypoints"] = "web"
        labels[f"traefik.http.routers.{router}-http.middlewares"] = f"{router}-redirect"
        labels[f"traefik.http.middlewares.{router}-redirect.redirectscheme.scheme"] = "https"
        labels[f"traefik.http.middlewares.{router}-redirect.redirectscheme.permanent"] = "true"
    return labels


def _escape_backticks(value):
    return str(value).replace("`", "\\`")


def labels_to_docker_args(labels) -> list[str]:
    """``--label "k=v"`` args; backticks escaped for a double-quoted shell word."""
    return [f'--label "{key}={_escape_backticks(value)}"' for key, value in labels.items()]


def generate_docker_run_command(
    container_name, image, domain, port, project_name,
    env_vars=None, network=DEFAULT_NETWORK, enable_ssl=False,
) -> str:
    labels = generate_labels(domain, port, project_name, network, enable_ssl)
    parts = [
        f"--name {container_name}",
        f"--network {network}",
        f"-e PORT={port}",
    ]
    parts += [f'-e {key}="{value}"' for key, value in (env_vars or {}).items()]
    parts += labels_to_docker_args(labels)
    parts += ["--restart unless-stopped", image]
    return " ".join(parts)


# ─────────────────────────── Proxy detection ─────────────────────────── #

def find_proxy_container(ssh):
    """Name of the running Traefik container (Coolify's first), or None."""
    for name_filter in ("coolify-proxy", "traefik"):
        result = ssh.run(f'docker ps --filter "name={name_filter}" --format "{{{{.Names}}}}"')
        names = [n.strip() for n in result.stdout.splitlines() if n.strip()]
        if names:
            return names[0]
    return None


def is_traefik_running(ssh) -> bool:
    return find_proxy_container(ssh) is not None


def detect_proxy_mode(ssh) -> str:
    if is_traefik_running(ssh):
        return "traefik"
    if ssh.run("which nginx").ok:
        return "nginx"
    return "none"


def network_exists(ssh, network) -> bool:
    result = ssh.run(f'docker network ls --filter "name={network}" --format "{{{{.Name}}}}"')
    return network in result.stdout.split()


def detect_network(ssh) -> str:
    if network_exists(ssh, DEFAULT_NETWORK):
        return DEFAULT_NETWORK
    return FALLBACK_NETWORK


def ensure_network(ssh, network) -> None:
    if network_exists(ssh, network):
        return
    result = ssh.run(f"docker network create {network}")
    if result.ok:
        logger.info(f"Created docker network {network}")
    elif "already exists" not in result.output:
        logger.warning(f"Could not create network {network}: {result.output}")


def connect_to_network(ssh, container, network=DEFAULT_NETWORK) -> bool:
    result = ssh.run(f"docker network connect {network} {container} 2>&1")
    if result.ok or "already exists" in result.output:
        return True
    logger.warning(f"Could not connect {container} to {network}: {result.output}")
    return False


def disconnect_from_network(ssh, container, network=DEFAULT_NETWORK) -> None:
    ssh.run(f"docker network disconnect {network} {container} 2>&1 || true")


def list_traefik_containers(ssh) -> list[str]:
    result = ssh.run('docker ps --filter "label=traefik.enable=true" --format "{{.Names}}"')
    return [n.strip() for n in result.stdout.splitlines() if n.strip()]


# ─────────────────────────────── Probing ─────────────────────────────── #

def probe_domain(ssh, domain) -> str:
    result = ssh.run(
        f'curl -s -o /dev/null -w "%{{http_code}}" -H "Host: {domain}" '
        f'http://localhost/ || echo "000"'
    )
    return result.stdout.strip()[-3:] or "000"


def test_domain(ssh, domain) -> dict:
    """
    Hit the local proxy with ``Host: domain``.

    200/301/302 is a working route; 502/503/504 means Traefik routes the
    host but the container is still starting. Both count as ok.
    """
    code = probe_domain(ssh, domain)
    if code in OK_CODES:
        state = "ok"
    elif code in STARTING_CODES:
        state = "starting"
    else:
        state = "failed"
    logger.info(f"Domain {domain} answered HTTP {code} ({state})")
    return {"domain": domain, "status_code": code, "state": state, "ok": state != "failed"}


def traefik_info(ssh) -> dict:
    container = find_proxy_container(ssh)
    networks = ssh.run('docker network ls --format "{{.Name}}"')
    return {
        "running": container is not None,
        "container_name": container,
        "networks": [
            n.strip() for n in networks.stdout.splitlines()
            if n.strip() in (DEFAULT_NETWORK, FALLBACK_NETWORK)
        ],
        "services": list_traefik_containers(ssh),
    }


def query_api(ssh, what="routers", api_port=8080):
    """Parsed JSON from the Traefik API, fetched inside the proxy container."""
    path = TRAEFIK_API_PATHS[what]
    container = find_proxy_container(ssh) or TRAEFIK_CONTAINER
    result = ssh.run(
        f"docker exec {container} wget -qO- http://localhost:{api_port}{path} 2>/dev/null"
    )
    if not result.ok or not result.stdout.strip():
        return None
    try:
        return json.loads(result.stdout)
    except ValueError:
        logger.warning(f"Traefik API {path} returned non-JSON output")
        return None


def install_traefik(ssh, network=DEFAULT_NETWORK):
    """Replace ``traefik-proxy`` with a fresh Traefik on *network*."""
    ssh.run(f"docker stop {TRAEFIK_CONTAINER} 2>/dev/null || true")
    ssh.run(f"docker rm {TRAEFIK_CONTAINER} 2>/dev/null || true")
    ensure_network(ssh, network)
    command = (
        f"docker run -d --name {TRAEFIK_CONTAINER} --restart unless-stopped "
        f"--network {network} -p 80:80 -p 443:443 -p 8080:8080 "
        f"-v /var/run/docker.sock:/var/run/docker.sock:ro "
        f"{TRAEFIK_IMAGE} "
        f"--api.insecure=true --providers.docker=true "
        f"--providers.docker.exposedbydefault=false "
        f"--providers.docker.network={network} "
        f"--entrypoints.web.address=:80 --entrypoints.websecure.address=:443 "
        f"--log.level=INFO"
    )
    result = ssh.check(command)
    logger.info(f"Traefik reinstalled on {ssh.host}")
    return result.stdout.strip()
