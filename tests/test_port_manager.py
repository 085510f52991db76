import pytest

from database_init import db
from models.project import Project
from service import port_manager
from util.errors import PortAllocationError


def _project(server, name, port, status):
    project = Project(name=name, git_url="https://example.com/r.git", port=port,
                      status=status, server_id=server.id)
    db.session.add(project)
    db.session.commit()
    return project


def test_is_valid_port():
    assert port_manager.is_valid_port(3000)
    assert port_manager.is_valid_port(9000)
    assert not port_manager.is_valid_port(2999)
    assert not port_manager.is_valid_port(9001)
    assert not port_manager.is_valid_port("3000")


def test_used_ports_only_counts_active_and_deploying(server):
    _project(server, "a", 3000, "active")
    _project(server, "b", 3001, "deploying")
    _project(server, "c", 3002, "inactive")
    _project(server, "d", 3003, "error")
    assert port_manager.used_ports() == [3000, 3001]


def test_find_available_port_skips_used(server):
    _project(server, "a", 3000, "active")
    _project(server, "b", 3001, "active")
    assert port_manager.find_available_port() == 3002
    assert port_manager.find_available_port(preferred=3000) == 3002
    assert port_manager.find_available_port(preferred=4500) == 4500


def test_find_available_port_excludes_own_project(server):
    own = _project(server, "a", 3000, "active")
    assert port_manager.find_available_port(preferred=3000, exclude_project_id=own.id) == 3000


def test_find_available_port_exhausted(server, monkeypatch):
    monkeypatch.setattr(port_manager, "used_ports", lambda *a, **k: list(range(3000, 9001)))
    with pytest.raises(PortAllocationError):
        port_manager.find_available_port()


def test_suggest_ports(server):
    _project(server, "a", 3001, "active")
    assert port_manager.suggest_ports(3) == [3000, 3002, 3003]
