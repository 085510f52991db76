import click
from flask import current_app
from flask.cli import with_appcontext

from seeder.seed_plans import add_discount_tiers, seed_plans, update_plans


@click.command("seed-plans")
@click.option("--with-discounts", is_flag=True, help="Also write the seed discount tiers.")
@with_appcontext
def seed_plans_command(with_discounts):
    seed_plans(current_app, with_discounts=with_discounts)


@click.command("add-discount-tiers")
@with_appcontext
def add_discount_tiers_command():
    add_discount_tiers(current_app)


@click.command("update-plans")
@with_appcontext
def update_plans_command():
    update_plans(current_app)


commands = [seed_plans_command, add_discount_tiers_command, update_plans_command]
