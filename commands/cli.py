from flask.cli import AppGroup

from commands import data, maintenance, plans, users

ark_cli = AppGroup("ark", help="Maintenance commands for Ark Deploy.")

for module in (users, plans, data, maintenance):
    for command in module.commands:
        ark_cli.add_command(command)
