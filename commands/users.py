import os
import re

import click
from flask import current_app
from flask.cli import with_appcontext

from database_init import db
from models.user import User
from seeder.seed_user import seed_admin_user
from util.constant import USER_ROLE


def _user_or_fail(email) -> User:
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User {email} not found")
    return user


def _set_role(email, role):
    user = _user_or_fail(email)
    if user.role == role:
        click.echo(f"⚠️ {user.name} ({user.email}) is already {role}")
        return user
    user.role = role
    db.session.commit()
    click.echo(f"✅ {user.name} ({user.email}) is now {role}")
    return user


def _create_with_role(role):
    email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
    existing = User.query.filter_by(email=email).first() if email else None
    if existing:
        if existing.role != role:
            existing.role = role
            db.session.commit()
            click.echo(f"✅ Existing user {email} promoted to {role}")
        else:
            click.echo(f"⚠️ {email} already exists as {role}")
        return
    if not seed_admin_user(current_app, role=role):
        raise click.ClickException("Set ADMIN_EMAIL and ADMIN_PASSWORD to create the user")


@click.command("create-admin")
@with_appcontext
def create_admin():
    """Create the admin user from ADMIN_NAME/ADMIN_EMAIL/ADMIN_PASSWORD."""
    _create_with_role(USER_ROLE.admin.value)


@click.command("create-super-admin")
@with_appcontext
def create_super_admin():
    """Same as create-admin with the super_admin role."""
    _create_with_role(USER_ROLE.super_admin.value)


@click.command("make-admin")
@click.argument("email")
@with_appcontext
def make_admin(email):
    _set_role(email, USER_ROLE.admin.value)


@click.command("make-super-admin")
@click.argument("email")
@with_appcontext
def make_super_admin(email):
    _set_role(email, USER_ROLE.super_admin.value)


@click.command("check-user-role")
@click.argument("email")
@with_appcontext
def check_user_role(email):
    user = _user_or_fail(email)
    click.echo(f"Name:   {user.name}")
    click.echo(f"Email:  {user.email}")
    click.echo(f"Role:   {user.role}")
    click.echo(f"Active: {user.is_active}")


@click.command("reset-password")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def reset_password(email, password):
    if len(password) < 6:
        raise click.ClickException("Password must have at least 6 characters")
    user = _user_or_fail(email)
    user.set_password(password)
    db.session.commit()
    click.echo(f"✅ Password updated for {user.email}")


@click.command("update-user-cpf")
@click.argument("email")
@click.argument("cpf")
@with_appcontext
def update_user_cpf(email, cpf):
    """Store a CPF (11 digits) or CNPJ (14 digits); punctuation is dropped."""
    digits = re.sub(r"\D", "", cpf)
    if len(digits) not in (11, 14):
        raise click.ClickException("CPF/CNPJ must have 11 or 14 digits")
    user = _user_or_fail(email)
    user.cpf = digits
    db.session.commit()
    kind = "CPF" if len(digits) == 11 else "CNPJ"
    click.echo(f"✅ {kind} updated for {user.email}: {digits}")


commands = [
    create_admin,
    create_super_admin,
    make_admin,
    make_super_admin,
    check_user_role,
    reset_password,
    update_user_cpf,
]
