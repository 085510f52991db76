# service/port_manager.py
import logging

from models.project import Project
from util.constant import PROJECT_STATUS
from util.errors import PortAllocationError

logger = logging.getLogger("deploy_logger")

MIN_PORT = 3000
MAX_PORT = 9000

_HOLDING_STATUSES = (PROJECT_STATUS.active.value, PROJECT_STATUS.deploying.value)


def is_valid_port(port) -> bool:
    return isinstance(port, int) and MIN_PORT <= port <= MAX_PORT


def used_ports(server_id=None, exclude_project_id=None) -> list[int]:
    """Ports held by active or deploying projects, ascending."""
    query = Project.query.with_entities(Project.port).filter(
        Project.port.isnot(None),
        Project.status.in_(_HOLDING_STATUSES),
    )
    if server_id is not None:
        query = query.filter(Project.server_id == server_id)
    if exclude_project_id is not None:
        query = query.filter(Project.id != exclude_project_id)
    return sorted({row[0] for row in query.all()})


def find_available_port(preferred=None, server_id=None, exclude_project_id=None) -> int:
    """Preferred port if free, else the lowest free port in range."""
    taken = set(used_ports(server_id, exclude_project_id))
    if preferred is not None and is_valid_port(preferred) and preferred not in taken:
        return preferred

    for port in range(MIN_PORT, MAX_PORT + 1):
        if port not in taken:
            if preferred is not None:
                logger.info(f"Port {preferred} unavailable, using {port}")
            return port
    raise PortAllocationError(f"No free port between {MIN_PORT} and {MAX_PORT}")


def suggest_ports(count=5, server_id=None) -> list[int]:
    taken = set(used_ports(server_id))
    free = []
    for port in range(MIN_PORT, MAX_PORT + 1):
        if port not in taken:
            free.append(port)
            if len(free) == count:
                break
    return free
