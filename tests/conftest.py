import json
import time
from contextlib import contextmanager

import pytest

from app import create_app
from bash_script import ssh_session
from bash_script.ssh_session import CommandResult
from database_init import db
from models.project import Project
from models.server import Server
from models.user import User
from util.crypto import encrypt
from util.errors import RemoteCommandError


class FakeSSH:
    """
    Scripted stand-in for SSHSession.

    ``on(fragment, ...)`` registers a canned result for every command that
    contains *fragment*; the most recent matching rule wins. Unmatched
    commands succeed with empty output.
    """

    def __init__(self, host="203.0.113.10"):
        self.host = host
        self.commands = []
        self.files = {}
        self.modes = {}
        self._rules = []

    def on(self, fragment, stdout="", stderr="", exit_code=0, times=None):
        self._rules.append(
            {"fragment": fragment, "stdout": stdout, "stderr": stderr,
             "exit_code": exit_code, "times": times}
        )
        return self

    def _match(self, command):
        for rule in reversed(self._rules):
            if rule["fragment"] not in command:
                continue
            if rule["times"] is not None:
                if rule["times"] <= 0:
                    continue
                rule["times"] -= 1
            return CommandResult(command, rule["stdout"], rule["stderr"], rule["exit_code"])
        return CommandResult(command)

    def run(self, command, *, timeout=None, on_output=None):
        self.commands.append(command)
        result = self._match(command)
        if on_output and result.stdout:
            on_output(result.stdout)
        return result

    def check(self, command, **kwargs):
        result = self.run(command, **kwargs)
        if not result.ok:
            raise RemoteCommandError(f"Command failed with exit {result.exit_code}", result)
        return result

    def write_file(self, path, content, mode=None):
        self.files[path] = content
        self.modes[path] = mode

    def ran(self, fragment):
        return any(fragment in c for c in self.commands)

    def count(self, fragment):
        return sum(1 for c in self.commands if fragment in c)


def inspect_json(container_id="abc123def456", name="app-1", running=True,
                 networks=None, labels=None, image="app:1234abcd"):
    """``docker inspect`` output for one container."""
    if networks is None:
        networks = {"coolify": "172.18.0.5"}
    return json.dumps([{
        "Id": container_id,
        "Name": f"/{name}",
        "State": {"Status": "running" if running else "exited", "Running": running},
        "NetworkSettings": {
            "Networks": {net: {"IPAddress": ip} for net, ip in networks.items()}
        },
        "Config": {"Labels": labels or {}, "Image": image},
    }])


@pytest.fixture(scope="session")
def log_dir(tmp_path_factory):
    return str(tmp_path_factory.mktemp("logs"))


@pytest.fixture
def app(log_dir):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret",
        "ENCRYPTION_KEY": "test-encryption-key",
        "WTF_CSRF_ENABLED": False,
        "SESSION_COOKIE_SECURE": False,
        "LOG_DIR": log_dir,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_: None)


@pytest.fixture
def fake_ssh(monkeypatch):
    fake = FakeSSH()
    fake.sessions = []

    @contextmanager
    def open_server_session(server):
        fake.sessions.append(server)
        yield fake

    monkeypatch.setattr(ssh_session, "open_server_session", open_server_session)
    return fake


@pytest.fixture
def fake_queue(monkeypatch):
    class Job:
        def __init__(self, job_id):
            self.id = job_id

    class FakeQueue:
        def __init__(self):
            self.jobs = []

        def enqueue(self, func, *args, **kwargs):
            self.jobs.append((func, args, kwargs))
            return Job(f"job-{len(self.jobs)}")

    queue = FakeQueue()
    monkeypatch.setattr("util.tasks.queue", queue)
    return queue


def make_user(email="dev@example.com", password="secret123", role="user", name="Dev"):
    user = User(name=name, email=email, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def user(app):
    return make_user()


@pytest.fixture
def admin(app):
    return make_user(email="admin@example.com", role="admin", name="Admin")


@pytest.fixture
def server(app, user):
    server = Server(
        name="vps-1",
        host="203.0.113.10",
        username="root",
        auth_type="password",
        password=encrypt("root-pass"),
        user_id=user.id,
    )
    db.session.add(server)
    db.session.commit()
    return server


@pytest.fixture
def project(app, server, user):
    project = Project(
        name="shop",
        display_name="Shop",
        git_url="https://github.com/acme/shop.git",
        branch="main",
        port=3001,
        internal_port=3000,
        domain="shop.example.com",
        env_vars={"NODE_ENV": "production"},
        server_id=server.id,
        user_id=user.id,
    )
    db.session.add(project)
    db.session.commit()
    return project


def login(client, email="dev@example.com", password="secret123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})
