# service/provisioning_service.py
import logging
import re
from datetime import datetime

from bash_script import ssh_session
from bash_script.templates import PROVISIONING_SCRIPTS
from database_init import db
from models.server import Server
from util.constant import PROVISIONING_STATUS, SERVER_STATUS
from util.errors import ArkError, NotFoundError

logger = logging.getLogger("ssh_logger")

SCRIPT_PATH = "/tmp/provision.sh"
_PROGRESS_RE = re.compile(r"PROGRESS:(\d+):(.*)")
_VERSION_RE = re.compile(r'^VERSION_ID="?([^"\n]+)"?', re.MULTILINE)


def parse_os_release(text: str) -> tuple[str, str]:
    """``(type, version)`` from /etc/os-release; type is ``unknown`` when unrecognised."""
    match = _VERSION_RE.search(text or "")
    version = match.group(1) if match else ""
    if "Ubuntu" in text:
        return "ubuntu", version
    if "Debian" in text:
        return "debian", version
    if "CentOS" in text:
        return "centos", version
    if "Red Hat" in text or "Rocky" in text or "AlmaLinux" in text:
        return "rhel", version
    return "unknown", version


class ProvisioningRun:
    """Writes progress and log lines onto the Server row as they arrive."""

    def __init__(self, server):
        self.server = server
        self._buffer = ""

    def status(self, progress, message, status=PROVISIONING_STATUS.provisioning.value):
        self.server.provisioning_status = status
        self.server.provisioning_progress = progress
        self.server.append_provisioning_log(message)
        db.session.commit()
        logger.info(f"[{self.server.host}] {progress}% {message}")

    def feed(self, chunk):
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            self._line(line.strip())

    def flush(self):
        if self._buffer.strip():
            self._line(self._buffer.strip())
        self._buffer = ""
        db.session.commit()

    def _line(self, line):
        if not line:
            return
        match = _PROGRESS_RE.search(line)
        if match:
            self.status(int(match.group(1)), match.group(2).strip())
        else:
            self.server.append_provisioning_log(line)


def validate_installation(ssh) -> dict:
    return {
        "docker": ssh.run("docker --version").ok,
        "docker_compose": ssh.run("docker compose version").ok,
        "git": ssh.run("git --version").ok,
    }


def provision_server(server_id):
    """
    Detect the OS, run the install script and record what got installed.

    Leaves the server ``ready``/``online`` or ``error``; errors are re-raised.
    """
    server = db.session.get(Server, server_id)
    if not server:
        raise NotFoundError(f"Server {server_id} not found")
    run = ProvisioningRun(server)
    server.provisioning_log = ""
    run.status(0, "Connecting to server")

    try:
        with ssh_session.open_server_session(server) as ssh:
            run.status(10, "Connected, detecting operating system")
            os_type, os_version = parse_os_release(ssh.run("cat /etc/os-release").stdout)
            server.os_type = os_type
            server.os_version = os_version
            script = PROVISIONING_SCRIPTS.get(os_type)
            if not script:
                raise ArkError(f"Unsupported operating system: {os_type}")
            run.status(20, f"Detected {os_type} {os_version}")

            ssh.write_file(SCRIPT_PATH, script, mode=0o755)
            result = ssh.run(f"bash {SCRIPT_PATH} 2>&1", timeout=1800, on_output=run.feed)
            run.flush()
            if not result.ok:
                raise ArkError(f"Provisioning script failed with exit {result.exit_code}")
            ssh.run(f"rm -f {SCRIPT_PATH}")

            run.status(90, "Validating installation")
            installed = validate_installation(ssh)

        server.docker_installed = installed["docker"]
        server.docker_compose_installed = installed["docker_compose"]
        server.git_installed = installed["git"]
        server.last_check = datetime.utcnow()
        missing = [name for name in ("docker", "git") if not installed[name]]
        if missing:
            raise ArkError(f"Validation failed, missing: {', '.join(missing)}")

        server.status = SERVER_STATUS.online.value
        run.status(100, "Server ready", status=PROVISIONING_STATUS.ready.value)
        return server

    except Exception as e:
        logger.error(f"Provisioning {server.host} failed: {e}")
        server.status = SERVER_STATUS.error.value
        run.status(server.provisioning_progress or 0, f"Error: {e}",
                   status=PROVISIONING_STATUS.error.value)
        raise


def check_server(server_id):
    """Connection test that updates status and last_check."""
    server = db.session.get(Server, server_id)
    if not server:
        raise NotFoundError(f"Server {server_id} not found")
    ok = ssh_session.test_connection(server)
    server.status = SERVER_STATUS.online.value if ok else SERVER_STATUS.offline.value
    server.last_check = datetime.utcnow()
    db.session.commit()
    return ok
