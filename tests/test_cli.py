import json

from database_init import db
from models.database import ManagedDatabase
from models.plan import Plan
from models.project import Project
from models.server import Server
from models.user import User
from util.crypto import encrypt


def invoke(runner, *args, **kwargs):
    return runner.invoke(args=["ark", *args], **kwargs)


def _database(server, name, user_id=None):
    record = ManagedDatabase(
        name=name, type="redis", host=server.host, port=6379, username="u",
        password=encrypt("p"), container_id=f"{name}-cid", status="running",
        volume_path=f"/opt/databases/{name}", server_id=server.id, user_id=user_id,
    )
    db.session.add(record)
    db.session.commit()
    return record


# ─────────────────────────────── users ─────────────────────────────── #

def test_make_admin(runner, user):
    result = invoke(runner, "make-admin", "DEV@example.com")
    assert result.exit_code == 0
    assert "is now admin" in result.output
    assert db.session.get(User, user.id).role == "admin"

    again = invoke(runner, "make-admin", "dev@example.com")
    assert "already admin" in again.output


def test_make_super_admin_unknown_user(runner, app):
    result = invoke(runner, "make-super-admin", "ghost@example.com")
    assert result.exit_code == 1
    assert "User ghost@example.com not found" in result.output


def test_check_user_role(runner, admin):
    result = invoke(runner, "check-user-role", "admin@example.com")
    assert result.exit_code == 0
    assert "Role:   admin" in result.output


def test_create_admin_from_env(runner, app, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "topsecret")
    result = invoke(runner, "create-admin")
    assert result.exit_code == 0
    created = User.query.filter_by(email="root@example.com").one()
    assert created.role == "admin"
    assert created.check_password("topsecret")


def test_create_super_admin_promotes_existing(runner, user, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "dev@example.com")
    result = invoke(runner, "create-super-admin")
    assert "promoted to super_admin" in result.output
    assert db.session.get(User, user.id).role == "super_admin"


def test_create_admin_without_env(runner, app, monkeypatch):
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    result = invoke(runner, "create-admin")
    assert result.exit_code == 1
    assert User.query.count() == 0


def test_reset_password(runner, user):
    result = invoke(runner, "reset-password", "dev@example.com", input="newpass1\nnewpass1\n")
    assert result.exit_code == 0
    assert db.session.get(User, user.id).check_password("newpass1")

    short = invoke(runner, "reset-password", "dev@example.com", "--password", "abc")
    assert short.exit_code == 1
    assert "at least 6" in short.output


def test_update_user_cpf(runner, user):
    result = invoke(runner, "update-user-cpf", "dev@example.com", "123.456.789-01")
    assert result.exit_code == 0
    assert db.session.get(User, user.id).cpf == "12345678901"

    bad = invoke(runner, "update-user-cpf", "dev@example.com", "1234")
    assert bad.exit_code == 1


# ─────────────────────────────── plans ─────────────────────────────── #

def test_seed_plans_then_discount_tiers(runner, app):
    result = invoke(runner, "seed-plans")
    assert result.exit_code == 0
    assert "Added 3 plans" in result.output
    assert all(not p.discount_tiers for p in Plan.query.all())

    result = invoke(runner, "add-discount-tiers")
    assert "Starter" in result.output
    db.session.expire_all()
    starter = Plan.query.filter_by(name="Starter").one()
    assert starter.discount_tiers[0] == {"min_servers": 5, "discount_percent": 5}

    again = invoke(runner, "seed-plans", "--with-discounts")
    assert "No new plans" in again.output
    assert Plan.query.count() == 3


def test_update_plans_keeps_tiers(runner, app):
    db.session.add(Plan(name="Starter", price_per_server=1.0, discount_tiers=[{"min_servers": 2, "discount_percent": 50}]))
    db.session.commit()
    result = invoke(runner, "update-plans")
    assert "Updated 1 plans" in result.output
    db.session.expire_all()
    plan = Plan.query.filter_by(name="Starter").one()
    assert plan.price_per_server == 19.90
    assert plan.discount_tiers == [{"min_servers": 2, "discount_percent": 50}]


# ─────────────────────────────── data ──────────────────────────────── #

def test_list_projects(runner, project):
    result = invoke(runner, "list-projects")
    assert "1 project(s)" in result.output
    assert "Domain: shop.example.com" in result.output


def test_list_projects_empty(runner, app):
    assert "No projects found" in invoke(runner, "list-projects").output


def test_delete_project_records_only(runner, fake_ssh, project):
    project.container_id = "cid"
    db.session.commit()
    result = invoke(runner, "delete-project", "shop")
    assert result.exit_code == 0
    assert "docker rm cid" in result.output
    assert Project.query.count() == 0
    assert fake_ssh.commands == []


def test_delete_project_remote(runner, fake_ssh, project):
    result = invoke(runner, "delete-project", "shop", "--remote")
    assert result.exit_code == 0
    assert fake_ssh.ran("rm -rf /opt/projects/shop")


def test_delete_project_missing(runner, app):
    result = invoke(runner, "delete-project", "nope")
    assert result.exit_code == 1
    assert 'Project "nope" not found' in result.output


def test_clear_servers(runner, project, server):
    _database(server, "cache", project.user_id)
    result = invoke(runner, "clear-servers", "--yes")
    assert result.exit_code == 0
    assert "Deleted 1 servers, 1 projects, 1 databases" in result.output
    assert Server.query.count() == 0
    assert Project.query.count() == 0


def test_clear_servers_needs_confirmation(runner, server):
    result = invoke(runner, "clear-servers", input="n\n")
    assert result.exit_code == 1
    assert Server.query.count() == 1


def test_check_user_databases_lists_orphans(runner, server, user):
    _database(server, "mine", user.id)
    _database(server, "lost")
    result = invoke(runner, "check-user-databases", "dev@example.com")
    assert "Databases: 1" in result.output
    assert "Orphaned databases (no owner): 1" in result.output


def test_delete_user_databases(runner, fake_ssh, server, user):
    _database(server, "mine", user.id)
    result = invoke(runner, "delete-user-databases", "dev@example.com", "--remote")
    assert result.exit_code == 0
    assert fake_ssh.ran("docker rm -f mine-cid")
    assert ManagedDatabase.query.count() == 0


def test_clean_orphan_databases(runner, fake_ssh, server, user):
    _database(server, "mine", user.id)
    _database(server, "lost")
    result = invoke(runner, "clean-orphan-databases")
    assert "Deleted 1 orphaned" in result.output
    assert [d.name for d in ManagedDatabase.query.all()] == ["mine"]
    assert fake_ssh.commands == []


# ──────────────────────────── maintenance ──────────────────────────── #

def test_update_project_port_prints_report(runner, project):
    result = invoke(runner, "update-project-port", "shop.example.com", "3010")
    assert result.exit_code == 0
    assert json.loads(result.output) == {"project": "shop", "old_port": 3001, "new_port": 3010}


def test_maintenance_error_exits_non_zero(runner, app):
    result = invoke(runner, "fix-502", "nope")
    assert result.exit_code == 1
    assert "No project named nope" in result.output


def test_update_container_id_optional_argument(runner, project):
    result = invoke(runner, "update-container-id", "shop.example.com", "abc123")
    assert json.loads(result.output)["container_id"] == "abc123"


def test_sync_projects_command(runner, fake_ssh, project):
    result = invoke(runner, "sync-projects")
    assert result.exit_code == 0
    assert json.loads(result.output) == []


def test_every_command_registered(app):
    names = set(app.cli.commands["ark"].commands)
    assert {
        "create-admin", "reset-password", "seed-plans", "clear-servers",
        "clean-orphan-databases", "diagnose-traefik", "fix-502", "test-domain",
    } <= names
    assert len(names) == 32
