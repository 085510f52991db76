import functools
import json

import click

from util.errors import ArkError


def surface_errors(f):
    """Turn service errors into a non-zero exit with the message on stderr."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ArkError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def echo_report(report):
    click.echo(json.dumps(report, indent=2, default=str, ensure_ascii=False))
