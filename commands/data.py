import click
from flask.cli import with_appcontext

from commands.common import surface_errors
from database_init import db
from models.backup import Backup
from models.database import ManagedDatabase
from models.project import Project
from models.server import Server
from models.user import User
from service import database_service, deploy_service
from util.helpers import short_id


def _user_or_fail(email) -> User:
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User {email} not found")
    return user


@click.command("list-projects")
@with_appcontext
def list_projects():
    projects = Project.query.order_by(Project.id).all()
    if not projects:
        click.echo("📭 No projects found")
        return
    click.echo(f"📦 {len(projects)} project(s):\n")
    for index, project in enumerate(projects, 1):
        click.echo(f"{index}. {project.name}")
        click.echo(f"   Git: {project.git_url or 'N/A'}")
        click.echo(f"   Branch: {project.branch or 'N/A'}")
        click.echo(f"   Status: {project.status or 'N/A'}")
        click.echo(f"   Port: {project.port or 'N/A'}")
        click.echo(f"   Domain: {project.domain or 'N/A'}")
        click.echo(f"   Server: {project.server.host if project.server else 'N/A'}")
        click.echo(f"   Container: {short_id(project.container_id) or 'N/A'}")


@click.command("delete-project")
@click.argument("name")
@click.option("--remote", is_flag=True, help="Also remove containers, image and files on the server.")
@with_appcontext
@surface_errors
def delete_project(name, remote):
    project = Project.query.filter_by(name=name).first()
    if not project:
        raise click.ClickException(f'Project "{name}" not found')
    container = project.container_id
    if remote:
        deploy_service.delete_project(project.id)
    else:
        db.session.delete(project)
        db.session.commit()
    click.echo(f'✅ Project "{name}" deleted')
    if container and not remote:
        click.echo("The container was left running; remove it with:")
        click.echo(f"   docker stop {container}")
        click.echo(f"   docker rm {container}")


@click.command("clear-servers")
@click.confirmation_option(prompt="This deletes every server and the records on them. Continue?")
@with_appcontext
def clear_servers():
    """Delete all servers with their projects, databases and backups (records only)."""
    servers = Server.query.all()
    if not servers:
        click.echo("✅ No servers to clear")
        return
    counts = {
        "backups": Backup.query.delete(),
        "databases": ManagedDatabase.query.delete(),
    }
    projects = Project.query.all()
    for project in projects:
        db.session.delete(project)
    counts["projects"] = len(projects)
    counts["servers"] = Server.query.delete()
    db.session.commit()
    click.echo(
        f"✅ Deleted {counts['servers']} servers, {counts['projects']} projects, "
        f"{counts['databases']} databases and {counts['backups']} backups"
    )


def _echo_databases(records):
    for index, record in enumerate(records, 1):
        click.echo(f"  {index}. {record.name} ({record.type}) id={record.id} "
                   f"server={record.server_id} status={record.status}")


@click.command("check-user-databases")
@click.argument("email")
@with_appcontext
def check_user_databases(email):
    user = _user_or_fail(email)
    click.echo(f"👤 {user.name} ({user.email}) id={user.id}")
    records = ManagedDatabase.query.filter_by(user_id=user.id).all()
    click.echo(f"💾 Databases: {len(records)}")
    _echo_databases(records)
    orphans = ManagedDatabase.query.filter(ManagedDatabase.user_id.is_(None)).all()
    if orphans:
        click.echo(f"⚠️ Orphaned databases (no owner): {len(orphans)}")
        _echo_databases(orphans)


def _delete_records(records, remote):
    for record in records:
        if remote:
            database_service.delete_database(record.id)
        else:
            db.session.delete(record)
    db.session.commit()


@click.command("delete-user-databases")
@click.argument("email")
@click.option("--remote", is_flag=True, help="Also remove containers and volumes on the server.")
@with_appcontext
@surface_errors
def delete_user_databases(email, remote):
    user = _user_or_fail(email)
    records = ManagedDatabase.query.filter_by(user_id=user.id).all()
    if not records:
        click.echo("✅ No databases to delete")
        return
    _echo_databases(records)
    _delete_records(records, remote)
    click.echo(f"✅ Deleted {len(records)} database(s) of {user.email}")


@click.command("clean-orphan-databases")
@click.option("--remote", is_flag=True, help="Also remove containers and volumes on the server.")
@with_appcontext
@surface_errors
def clean_orphan_databases(remote):
    records = ManagedDatabase.query.filter(ManagedDatabase.user_id.is_(None)).all()
    if not records:
        click.echo("✅ No orphaned databases found")
        return
    click.echo(f"⚠️ Found {len(records)} orphaned database(s):")
    _echo_databases(records)
    _delete_records(records, remote)
    click.echo(f"✅ Deleted {len(records)} orphaned database(s)")


commands = [
    list_projects,
    delete_project,
    clear_servers,
    check_user_databases,
    delete_user_databases,
    clean_orphan_databases,
]
