from conftest import login, make_user

from database_init import db
from models.server import Server
from util.crypto import decrypt


def test_create_server_encrypts_credentials(client, user):
    login(client)
    resp = client.post("/api/servers", json={
        "name": "vps-2", "host": " 198.51.100.7 ", "port": 2222, "password": "hunter22",
    })
    assert resp.status_code == 201
    body = resp.json
    assert body["host"] == "198.51.100.7"
    assert body["port"] == 2222
    assert "password" not in body and "private_key" not in body

    server = db.session.get(Server, body["id"])
    assert server.password != "hunter22"
    assert decrypt(server.password) == "hunter22"
    assert server.user_id == user.id


def test_key_auth_requires_private_key(client, user):
    login(client)
    resp = client.post("/api/servers", json={"name": "vps-2", "host": "198.51.100.7", "auth_type": "key"})
    assert resp.status_code == 400
    assert "private key is required" in resp.json["message"]


def test_duplicate_server_name(client, server):
    login(client)
    resp = client.post("/api/servers", json={"name": "vps-1", "host": "198.51.100.7", "password": "x"})
    assert resp.status_code == 400


def test_servers_scoped_to_owner(client, server):
    make_user(email="other@example.com")
    login(client, email="other@example.com")
    assert client.get("/api/servers").json == []
    assert client.get(f"/api/servers/{server.id}").status_code == 404


def test_admin_sees_every_server(client, server, admin):
    login(client, email="admin@example.com")
    assert [s["id"] for s in client.get("/api/servers").json] == [server.id]


def test_update_server_keeps_secret_unless_sent(client, server):
    login(client)
    before = server.password
    resp = client.put(f"/api/servers/{server.id}", json={"name": "renamed", "password": ""})
    assert resp.json["name"] == "renamed"
    assert db.session.get(Server, server.id).password == before

    client.put(f"/api/servers/{server.id}", json={"password": "new-pass"})
    assert decrypt(db.session.get(Server, server.id).password) == "new-pass"


def test_delete_server_with_projects_refused(client, project, server):
    login(client)
    resp = client.delete(f"/api/servers/{server.id}")
    assert resp.status_code == 400
    assert db.session.get(Server, server.id) is not None


def test_delete_server(client, server):
    login(client)
    assert client.delete(f"/api/servers/{server.id}").status_code == 200
    assert Server.query.count() == 0


def test_test_connection_endpoint(client, fake_ssh, server):
    login(client)
    resp = client.post(f"/api/servers/{server.id}/test")
    assert resp.json == {"status": "success", "online": True}
    assert db.session.get(Server, server.id).status == "online"


def test_provision_is_queued(client, fake_queue, server):
    login(client)
    resp = client.post(f"/api/servers/{server.id}/provision")
    assert resp.status_code == 202
    assert resp.json == {"status": "queued", "job_id": "job-1"}
    func, args, kwargs = fake_queue.jobs[0]
    assert func.__name__ == "provision_server_job"
    assert args == (server.id,)


def test_server_info(client, fake_ssh, server):
    fake_ssh.on('--filter "name=coolify-proxy"', stdout="coolify-proxy\n")
    fake_ssh.on('docker network ls --format', stdout="bridge\ncoolify\n")
    login(client)
    resp = client.get(f"/api/servers/{server.id}/info")
    assert resp.json["running"] is True
    assert resp.json["container_name"] == "coolify-proxy"
    assert resp.json["networks"] == ["coolify"]
    assert resp.json["proxy_mode"] == "traefik"
