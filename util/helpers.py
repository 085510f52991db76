import re
import secrets
import string
from datetime import datetime


def isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else None


def generate_hex(length=6):
    return secrets.token_hex(length)[:length]


def generate_secure_password(length=24):
    """Alphanumeric only, so it can go into a shell command unquoted."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def router_name(project_name):
    """Traefik router/service name: lowercase letters, digits and dashes."""
    return re.sub(r"[^a-z0-9-]", "", project_name.lower())


def safe_domain(domain):
    return re.sub(r"[^a-zA-Z0-9.-]", "_", domain)


def sslip_domain(name, host):
    return f"{name}.{host}.sslip.io"


def short_id(container_id, length=12):
    return (container_id or "")[:length]
