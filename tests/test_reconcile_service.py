import pytest
import requests
from conftest import inspect_json

from database_init import db
from models.project import Project
from service import reconcile_service
from util.errors import ArkError, DeployError, NotFoundError

SHOP_RULE = "traefik.http.routers.shop.rule"
SHOP_PORT_LABEL = "traefik.http.services.shop.loadbalancer.server.port"


@pytest.fixture
def deployed(project):
    project.container_id = "cid"
    project.status = "active"
    db.session.commit()
    return project


def test_lookups_raise_not_found(app):
    with pytest.raises(NotFoundError):
        reconcile_service.project_by_domain("nope.example.com")
    with pytest.raises(NotFoundError):
        reconcile_service.project_by_name("nope")
    with pytest.raises(NotFoundError):
        reconcile_service.server_by_host("198.51.100.1")


def test_check_container(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(container_id="cid", name="shop-1"))
    fake_ssh.on("docker ps -a", stdout="cid|shop-1|Up 2 minutes|shop:1\nxyz|old-1|Exited (0)|old:1\n")

    report = reconcile_service.check_container("shop.example.com")

    assert report["exists"] is True
    assert report["status"] == "running"
    assert report["networks"] == {"coolify": "172.18.0.5"}
    assert [c["name"] for c in report["running_containers"]] == ["shop-1"]


def test_update_project_port(deployed, server):
    other = Project(name="blog", git_url="x", port=3005, status="active", server_id=server.id)
    db.session.add(other)
    db.session.commit()

    report = reconcile_service.update_project_port("shop.example.com", "3010")
    assert report == {"project": "shop", "old_port": 3001, "new_port": 3010}
    with pytest.raises(ArkError, match="already used"):
        reconcile_service.update_project_port("shop.example.com", 3005)
    with pytest.raises(ArkError, match="outside"):
        reconcile_service.update_project_port("shop.example.com", 80)


def test_update_container_id_explicit(fake_ssh, deployed):
    report = reconcile_service.update_container_id("shop.example.com", "fullid")
    assert report["old_container_id"] == "cid"
    assert db.session.get(Project, deployed.id).container_id == "fullid"
    assert fake_ssh.commands == []


def test_update_container_id_from_running_container(fake_ssh, deployed):
    fake_ssh.on("docker ps -a", stdout="abc|shop-2|Exited (1)|shop:1\ndef|shop-3|Up 1 minute|shop:2\n")
    fake_ssh.on("docker inspect def", stdout=inspect_json(container_id="def999full"))
    reconcile_service.update_container_id("shop.example.com")
    assert db.session.get(Project, deployed.id).container_id == "def999full"


def test_update_container_id_nothing_running(fake_ssh, deployed):
    with pytest.raises(NotFoundError):
        reconcile_service.update_container_id("shop.example.com")


def test_cleanup_nginx_keeps_current_container(fake_ssh, deployed):
    fake_ssh.on("docker ps -a", stdout="cid|shop-2|Up 1 minute|shop:2\nold|shop-1|Exited (0)|shop:1\n")

    results = reconcile_service.cleanup_nginx("shop")

    assert results == [{"server": "203.0.113.10", "removed_containers": ["shop-1"], "nginx_ok": True}]
    assert fake_ssh.ran("docker rm -f old")
    assert not fake_ssh.ran("docker rm -f cid")
    assert fake_ssh.ran("rm -f /etc/nginx/sites-enabled/shop*")


def test_fix_502_starts_stopped_container(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(container_id="cid", name="shop-1", running=False))
    fake_ssh.on(".State.Running", stdout="true")
    fake_ssh.on("docker network ls", stdout="coolify\n")
    fake_ssh.on("curl -s", stdout="200")
    fake_ssh.on("cat /etc/nginx/sites-available/shop", stdout="proxy_pass http://172.18.0.5:3001;\n")

    report = reconcile_service.fix_502("shop")

    assert report["actions"] == ["started container"]
    assert report["upstream_http"] == "200"
    assert report["probe"]["state"] == "ok"
    assert fake_ssh.ran("docker start cid")
    assert not fake_ssh.ran("cat > /etc/nginx")
    assert db.session.get(Project, deployed.id).status == "active"


def test_fix_502_rewrites_stale_upstream(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(container_id="cid", name="shop-1"))
    fake_ssh.on("docker inspect shop-1", stdout=inspect_json(container_id="cid", name="shop-1"))
    fake_ssh.on("docker network ls", stdout="coolify\n")
    fake_ssh.on("which nginx", stdout="/usr/sbin/nginx")
    fake_ssh.on("cat /etc/nginx/sites-available/shop", stdout="proxy_pass http://172.18.0.9:3001;\n")

    report = reconcile_service.fix_502("shop")

    assert "rewrote nginx upstream" in report["actions"]
    assert "container does not answer on port 3001" in report["actions"]
    assert fake_ssh.ran("cat > /etc/nginx/sites-available/shop ")


def test_fix_502_missing_container(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stderr="Error: No such object: cid", exit_code=1)
    with pytest.raises(DeployError, match="redeploy shop"):
        reconcile_service.fix_502("shop")
    assert db.session.get(Project, deployed.id).status == "error"


def test_fix_traefik_domain_with_correct_labels(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(
        container_id="cid", labels={SHOP_RULE: "Host(`shop.example.com`)"},
    ))
    fake_ssh.on("docker inspect traefik-proxy", stdout=inspect_json(name="traefik-proxy"))
    fake_ssh.on("curl -s", stdout="200")

    report = reconcile_service.fix_traefik_domain("shop.example.com")

    assert report["actions"] == ["restarted traefik-proxy"]
    assert not fake_ssh.ran("docker network connect")
    assert not fake_ssh.ran("docker run -d")


def test_fix_traefik_domain_restarts_detected_proxy(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(
        container_id="cid", labels={SHOP_RULE: "Host(`shop.example.com`)"},
        networks={"bridge": "172.17.0.4"},
    ))
    fake_ssh.on('--filter "name=coolify-proxy"', stdout="coolify-proxy\n")
    fake_ssh.on("docker inspect coolify-proxy", stdout=inspect_json(
        name="coolify-proxy", networks={"coolify": "172.18.0.2"},
    ))
    fake_ssh.on("curl -s", stdout="200")

    report = reconcile_service.fix_traefik_domain("shop.example.com")

    assert report["actions"] == ["connected container to coolify", "restarted coolify-proxy"]
    assert fake_ssh.ran("docker restart coolify-proxy")
    assert not fake_ssh.ran("docker restart traefik-proxy")
    assert not fake_ssh.ran("docker inspect traefik-proxy")


def test_fix_traefik_domain_recreates_on_wrong_rule(fake_ssh, deployed):
    fake_ssh.on("docker inspect cid", stdout=inspect_json(
        container_id="cid", labels={SHOP_RULE: "Host(`old.example.com`)"},
    ))
    fake_ssh.on("docker images shop", stdout="shop:01234567\n")
    fake_ssh.on("docker run -d", stdout="newcid\n")

    report = reconcile_service.fix_traefik_domain("shop.example.com")

    assert report["actions"][0] == "recreated container newcid from shop:01234567"
    assert fake_ssh.ran("docker rm -f cid")
    assert db.session.get(Project, deployed.id).container_id == "newcid"


def test_fix_container_labels_without_image(fake_ssh, deployed):
    with pytest.raises(DeployError, match="No image"):
        reconcile_service.fix_container_labels("shop.example.com")


def test_update_docker(fake_ssh, server):
    fake_ssh.on("docker version", stdout="24.0.7\n")
    report = reconcile_service.update_docker("203.0.113.10")
    assert report == {"server": "203.0.113.10", "before": "24.0.7", "after": "24.0.7"}
    assert fake_ssh.modes["/tmp/update-docker.sh"] == 0o755
    assert fake_ssh.ran("bash /tmp/update-docker.sh")


def test_sync_projects(fake_ssh, deployed):
    fake_ssh.on("docker ps -a", stdout="new123|shop-2|Up 5 minutes|shop:2\n")
    fake_ssh.on("docker inspect new123", stdout=inspect_json(
        container_id="new123full", labels={SHOP_PORT_LABEL: "3005"},
    ))

    changes = reconcile_service.sync_projects()

    assert len(changes) == 1
    assert changes[0]["before"] == {"container_id": "cid", "status": "active", "port": 3001}
    assert changes[0]["after"] == {"container_id": "new123full", "status": "active", "port": 3005}


def test_sync_projects_marks_missing_container(fake_ssh, deployed):
    changes = reconcile_service.sync_projects("203.0.113.10")
    assert changes[0]["after"]["status"] == "error"
    assert reconcile_service.sync_projects("198.51.100.1") == []


def test_test_domain(monkeypatch, fake_ssh, deployed):
    class Response:
        status_code = 301
        headers = {"Server": "nginx"}
        text = "Moved"

    def fake_get(url, **kwargs):
        assert kwargs == {"timeout": 10, "allow_redirects": False}
        if url.startswith("https://"):
            raise requests.ConnectionError("connection refused")
        return Response()

    monkeypatch.setattr(requests, "get", fake_get)
    fake_ssh.on("curl -s", stdout="502")

    report = reconcile_service.test_domain("shop.example.com")

    assert report["http"] == {"status_code": 301, "server": "nginx", "body": "Moved"}
    assert "connection refused" in report["https"]["error"]
    assert report["route"]["state"] == "starting"


@pytest.fixture
def neighbour(deployed, server):
    other = Project(
        name="myshop", git_url="x", port=3002, status="active",
        container_id="other999", server_id=server.id,
    )
    db.session.add(other)
    db.session.commit()
    return other


def test_sync_projects_ignores_overlapping_project_names(fake_ssh, deployed, neighbour):
    fake_ssh.on("docker ps -a", stdout=(
        "other999|myshop-1700|Up 5 minutes|myshop:1\n"
        "cid|shop-1600|Up 5 minutes|shop:1\n"
    ))
    fake_ssh.on("docker inspect cid", stdout=inspect_json(container_id="cid"))
    fake_ssh.on("docker inspect other999", stdout=inspect_json(container_id="other999"))

    reconcile_service.sync_projects()

    assert db.session.get(Project, deployed.id).container_id == "cid"
    assert db.session.get(Project, neighbour.id).container_id == "other999"


def test_cleanup_nginx_leaves_overlapping_project_alone(fake_ssh, deployed, neighbour):
    fake_ssh.on("docker ps -a", stdout=(
        "cid|shop-1600|Up 1 minute|shop:2\n"
        "other999|myshop-1700|Up 1 minute|myshop:1\n"
    ))

    results = reconcile_service.cleanup_nginx("shop")

    assert results[0]["removed_containers"] == []
    assert not fake_ssh.ran("docker rm -f other999")
