# service/docker_service.py
import json
import logging
import re
import time

from bash_script.ssh_session import FAILURE_CONTAINER_MISSING
from util.errors import RemoteCommandError

logger = logging.getLogger("deploy_logger")


def inspect_container(ssh, container):
    """
    Parsed ``docker inspect`` output, or None when the container is missing:
    {id, name, status, running, networks: {net: ip}, labels}
    """
    result = ssh.run(f"docker inspect {container}")
    if not result.ok:
        if result.failure == FAILURE_CONTAINER_MISSING or not result.stdout.strip():
            return None
        raise RemoteCommandError(f"docker inspect {container} failed: {result.output}", result)
    try:
        data = json.loads(result.stdout)
    except ValueError:
        return None
    if not data:
        return None
    info = data[0]
    state = info.get("State", {})
    networks = info.get("NetworkSettings", {}).get("Networks") or {}
    return {
        "id": info.get("Id", ""),
        "name": info.get("Name", "").lstrip("/"),
        "status": state.get("Status", "unknown"),
        "running": bool(state.get("Running")),
        "networks": {name: net.get("IPAddress", "") for name, net in networks.items()},
        "labels": info.get("Config", {}).get("Labels") or {},
        "image": info.get("Config", {}).get("Image", ""),
    }


def container_exists(ssh, container) -> bool:
    return inspect_container(ssh, container) is not None


def container_status(ssh, container) -> str:
    info = inspect_container(ssh, container)
    return info["status"] if info else "missing"


def is_running(ssh, container) -> bool:
    result = ssh.run(f"docker inspect --format='{{{{.State.Running}}}}' {container}")
    return result.ok and result.stdout.strip() == "true"


def container_ip(ssh, container, network=None):
    """IP on *network* when attached there, else the first IP found."""
    info = inspect_container(ssh, container)
    if not info:
        return None
    networks = info["networks"]
    if network and networks.get(network):
        return networks[network]
    for ip in networks.values():
        if ip:
            return ip
    return None


def container_logs(ssh, container, tail=100) -> str:
    result = ssh.run(f"docker logs --tail {int(tail)} {container} 2>&1")
    return result.stdout


def stop_container(ssh, container) -> bool:
    return ssh.run(f"docker stop {container} || true").ok


def remove_container(ssh, container) -> bool:
    return ssh.run(f"docker rm -f {container} || true").ok


def start_container(ssh, container):
    return ssh.check(f"docker start {container}")


def remove_stale_containers(ssh, prefix) -> list[str]:
    """Force-remove every ``<prefix>-<n>`` container; returns the removed names."""
    removed = []
    for container in list_project_containers(ssh, prefix):
        remove_container(ssh, container["id"])
        removed.append(container["name"])
    return removed


def list_containers(ssh, name_filter=None) -> list[dict]:
    cmd = 'docker ps -a --format "{{.ID}}|{{.Names}}|{{.Status}}|{{.Image}}"'
    if name_filter:
        cmd = (
            f'docker ps -a --filter "name={name_filter}" '
            '--format "{{.ID}}|{{.Names}}|{{.Status}}|{{.Image}}"'
        )
    result = ssh.run(cmd)
    containers = []
    for line in result.stdout.splitlines():
        parts = line.strip().split("|")
        if len(parts) < 4:
            continue
        containers.append(
            {
                "id": parts[0],
                "name": parts[1],
                "status": parts[2],
                "image": parts[3],
                "running": parts[2].startswith("Up"),
            }
        )
    return containers


def list_project_containers(ssh, project_name) -> list[dict]:
    """
    Containers named ``<project_name>-<n>``. Docker's name filter is a
    substring match, so ``myshop-1`` also comes back for ``shop-``.
    """
    pattern = re.compile(rf"{re.escape(project_name)}-\d+")
    return [
        c for c in list_containers(ssh, f"{project_name}-")
        if pattern.fullmatch(c["name"])
    ]


def run_container(ssh, args: str) -> str:
    """``docker run -d <args>``; returns the new container id."""
    result = ssh.check(f"docker run -d {args}")
    return result.stdout.strip().splitlines()[-1]


def latest_image(ssh, repository):
    result = ssh.run(
        f'docker images {repository} --format "{{{{.Repository}}}}:{{{{.Tag}}}}" | head -1'
    )
    image = result.stdout.strip()
    return image or None


def remove_image(ssh, repository):
    ssh.run(f"docker images -q {repository} | xargs -r docker rmi -f || true")


def wait_for_container(ssh, container, timeout=30, interval=2) -> bool:
    """Poll ``.State.Running`` every *interval* seconds, up to *timeout*."""
    attempts = max(1, int(timeout // interval))
    for attempt in range(attempts):
        if is_running(ssh, container):
            return True
        if attempt < attempts - 1:
            time.sleep(interval)
    logger.warning(f"Container {container} not running after {timeout}s")
    return False
