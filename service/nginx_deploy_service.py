import logging
import re

from service import docker_service
from util.constant import DEFAULT_NETWORK, NGINX_SITES_AVAILABLE, NGINX_SITES_ENABLED
from util.errors import DeployError
from util.helpers import safe_domain

logger = logging.getLogger("proxy_logger")

# =============== Render config ===============


def render_site_config(domain: str, upstream_ip: str, port: int) -> str:
    """Server block proxying ``domain`` to ``upstream_ip:port`` (websocket-aware)."""
    return (
        "server {\n"
        "    listen 80;\n"
        f"    server_name {domain};\n"
        "\n"
        "    location / {\n"
        f"        proxy_pass http://{upstream_ip}:{port};\n"
        "        proxy_http_version 1.1;\n"
        "        proxy_set_header Upgrade $http_upgrade;\n"
        "        proxy_set_header Connection 'upgrade';\n"
        "        proxy_set_header Host $host;\n"
        "        proxy_cache_bypass $http_upgrade;\n"
        "        proxy_set_header X-Real-IP $remote_addr;\n"
        "        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;\n"
        "        proxy_set_header X-Forwarded-Proto $scheme;\n"
        "    }\n"
        "}"
    )


def parse_proxy_pass(config: str):
    """``(ip, port)`` from the first ``proxy_pass http://ip:port`` line, or None."""
    match = re.search(r"proxy_pass\s+http://([^:;/\s]+):(\d+)", config or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


# =============== Nginx on the host ===============


def ensure_nginx_installed(ssh) -> None:
    if ssh.run("which nginx").ok:
        return
    logger.info(f"Installing nginx on {ssh.host}")
    ssh.check("apt-get update && apt-get install -y nginx", timeout=600)


def test_config(ssh):
    """``nginx -t``; returns the CommandResult (nginx prints to stderr)."""
    return ssh.run("nginx -t 2>&1")


def reload_nginx(ssh) -> None:
    ssh.run("systemctl reload nginx || systemctl restart nginx")


def _remove_site_files(ssh, pattern: str) -> None:
    ssh.run(f"rm -f {NGINX_SITES_ENABLED}/{pattern}*")
    ssh.run(f"rm -f {NGINX_SITES_AVAILABLE}/{pattern}*")


def write_site(ssh, project_name: str, config: str) -> None:
    ssh.check(
        f"cat > {NGINX_SITES_AVAILABLE}/{project_name} << 'EOF'\n{config}\nEOF"
    )
    ssh.check(
        f"ln -sf {NGINX_SITES_AVAILABLE}/{project_name} "
        f"{NGINX_SITES_ENABLED}/{project_name}"
    )


# =============== Proxy lifecycle ===============


def configure_proxy(
    ssh,
    project_name: str,
    domain: str,
    container: str,
    port: int,
    network: str = DEFAULT_NETWORK,
) -> str:
    """
    Point ``domain`` at the container through a site named after the project.

    Old configs with the project name or the sanitized domain as prefix are
    removed first. Returns the upstream IP written to the config.
    """
    ensure_nginx_installed(ssh)

    info = docker_service.inspect_container(ssh, container)
    if not info or not info["running"]:
        raise DeployError(f"Container {container} is not running")

    upstream_ip = docker_service.container_ip(ssh, container, network)
    if not upstream_ip:
        raise DeployError(f"Container {container} has no IP address")

    _remove_site_files(ssh, project_name)
    _remove_site_files(ssh, safe_domain(domain))

    write_site(ssh, project_name, render_site_config(domain, upstream_ip, port))

    result = test_config(ssh)
    if not result.ok:
        raise DeployError(f"Nginx config test failed: {result.output}")
    reload_nginx(ssh)
    logger.info(f"Nginx proxy ready: {domain} -> {upstream_ip}:{port}")
    return upstream_ip


def remove_proxy(ssh, project_name: str) -> None:
    ssh.run(f"rm -f {NGINX_SITES_ENABLED}/{project_name}")
    ssh.run(f"rm -f {NGINX_SITES_AVAILABLE}/{project_name}")
    ssh.run("systemctl reload nginx || true")
    logger.info(f"Removed nginx site {project_name} on {ssh.host}")


def update_proxy(ssh, project_name, domain, container, port, network=DEFAULT_NETWORK):
    remove_proxy(ssh, project_name)
    return configure_proxy(ssh, project_name, domain, container, port, network)


def list_sites(ssh) -> list[str]:
    result = ssh.run(f"ls -1 {NGINX_SITES_ENABLED} 2>/dev/null")
    return [s.strip() for s in result.stdout.splitlines() if s.strip()]


def read_site(ssh, project_name: str):
    result = ssh.run(f"cat {NGINX_SITES_AVAILABLE}/{project_name} 2>/dev/null")
    return result.stdout if result.ok and result.stdout.strip() else None


def verify_site(ssh, project_name: str, container=None, network=DEFAULT_NETWORK) -> dict:
    """
    Compare a site's upstream with the live container IP.

    Returns {site, exists, enabled, upstream, container_ip, matches, syntax_ok}.
    """
    config = read_site(ssh, project_name)
    enabled = project_name in list_sites(ssh)
    upstream = parse_proxy_pass(config) if config else None
    live_ip = docker_service.container_ip(ssh, container, network) if container else None
    syntax = test_config(ssh)
    return {
        "site": project_name,
        "exists": config is not None,
        "enabled": enabled,
        "upstream": f"{upstream[0]}:{upstream[1]}" if upstream else None,
        "container_ip": live_ip,
        "matches": bool(upstream and live_ip and upstream[0] == live_ip),
        "syntax_ok": syntax.ok,
    }


def cleanup_sites(ssh, project_names) -> bool:
    """
    Remove every site file prefixed by one of *project_names*, then reload
    nginx if the remaining config still tests fine. Returns that test result.
    """
    for name in project_names:
        _remove_site_files(ssh, name)
    syntax_ok = test_config(ssh).ok
    if syntax_ok:
        reload_nginx(ssh)
    else:
        logger.warning(f"nginx -t fails on {ssh.host} after cleanup, not reloading")
    logger.info(f"Cleaned nginx sites on {ssh.host}: {list(project_names)}")
    return syntax_ok
