"""templates.py
Shell and Dockerfile text that gets shipped to remote servers.

Dockerfile templates are picked by id (or detected from the files in the
cloned repository). Provisioning scripts print ``PROGRESS:<pct>:<message>``
lines that the provisioning service turns into status updates.
"""
from __future__ import annotations

import textwrap

# ────────────────────────────────────────────────────────────────────────────────
# Dockerfile templates
# ────────────────────────────────────────────────────────────────────────────────

DOCKERFILE_TEMPLATES: dict[str, dict] = {
    "node": {
        "name": "Node.js",
        "description": "Generic Node.js app (Express, Fastify, Next.js standalone)",
        "content": textwrap.dedent(
            """\
            FROM node:18-alpine
            WORKDIR /app
            COPY package*.json ./
            RUN npm ci || npm install
            COPY . .
            RUN npm run build --if-present
            ENV NODE_ENV=production
            EXPOSE 3000
            CMD ["npm", "start"]
            """
        ),
    },
    "python": {
        "name": "Python",
        "description": "Python WSGI app served by gunicorn",
        "content": textwrap.dedent(
            """\
            FROM python:3.11-slim
            WORKDIR /app
            ENV PYTHONDONTWRITEBYTECODE=1 PYTHONUNBUFFERED=1
            COPY requirements.txt ./
            RUN pip install --no-cache-dir -r requirements.txt gunicorn
            COPY . .
            EXPOSE 3000
            CMD ["sh", "-c", "gunicorn --bind 0.0.0.0:${PORT:-3000} ${WSGI_APP:-app:app}"]
            """
        ),
    },
    "static": {
        "name": "Static site",
        "description": "Static files served by nginx",
        "content": textwrap.dedent(
            """\
            FROM nginx:alpine
            COPY . /usr/share/nginx/html
            EXPOSE 80
            CMD ["nginx", "-g", "daemon off;"]
            """
        ),
    },
    "go": {
        "name": "Go",
        "description": "Go module built into a small alpine image",
        "content": textwrap.dedent(
            """\
            FROM golang:1.21-alpine AS build
            WORKDIR /src
            COPY go.* ./
            RUN go mod download
            COPY . .
            RUN CGO_ENABLED=0 go build -o /out/app .

            FROM alpine:3.19
            WORKDIR /app
            COPY --from=build /out/app /app/app
            EXPOSE 3000
            CMD ["/app/app"]
            """
        ),
    },
}

DEFAULT_TEMPLATE = "node"

# (marker file, template id), first match wins
_DETECTION_ORDER = (
    ("package.json", "node"),
    ("requirements.txt", "python"),
    ("go.mod", "go"),
    ("index.html", "static"),
)


def list_templates() -> list[dict]:
    return [
        {"id": key, "name": t["name"], "description": t["description"]}
        for key, t in DOCKERFILE_TEMPLATES.items()
    ]


def get_template(template_id: str) -> dict | None:
    return DOCKERFILE_TEMPLATES.get(template_id)


def detect_template(ssh, project_dir: str) -> str | None:
    """Template id for the files present in *project_dir*, or None."""
    for marker, template_id in _DETECTION_ORDER:
        check = ssh.run(f'test -f {project_dir}/{marker} && echo "yes" || echo "no"')
        if check.stdout.strip() == "yes":
            return template_id
    return None


# ────────────────────────────────────────────────────────────────────────────────
# Provisioning scripts
# ────────────────────────────────────────────────────────────────────────────────

_COMMON_TAIL = textwrap.dedent(
    """\
    echo "PROGRESS:60:Creating docker network coolify"
    docker network create coolify 2>/dev/null || echo "network coolify already exists"

    echo "PROGRESS:70:Creating directories"
    mkdir -p /opt/projects /opt/databases /opt/backups
    chmod 755 /opt/projects /opt/databases /opt/backups

    echo "PROGRESS:80:Checking installed software"
    docker --version
    docker compose version || true
    git --version
    echo "DONE"
    """
)

APT_SCRIPT = textwrap.dedent(
    """\
    #!/bin/bash
    set -e
    export DEBIAN_FRONTEND=noninteractive

    echo "PROGRESS:30:Updating package index"
    apt-get update -y

    echo "PROGRESS:40:Installing base packages"
    apt-get install -y apt-transport-https ca-certificates curl gnupg lsb-release git wget unzip

    echo "PROGRESS:50:Installing Docker"
    if ! command -v docker > /dev/null 2>&1; then
        curl -fsSL https://get.docker.com -o /tmp/get-docker.sh
        sh /tmp/get-docker.sh
        rm -f /tmp/get-docker.sh
        systemctl enable --now docker
    else
        echo "docker already installed"
    fi
    """
) + _COMMON_TAIL

YUM_SCRIPT = textwrap.dedent(
    """\
    #!/bin/bash
    set -e

    echo "PROGRESS:30:Updating packages"
    yum update -y

    echo "PROGRESS:40:Installing base packages"
    yum install -y yum-utils device-mapper-persistent-data lvm2 git wget curl

    echo "PROGRESS:50:Installing Docker"
    if ! command -v docker > /dev/null 2>&1; then
        yum-config-manager --add-repo https://download.docker.com/linux/centos/docker-ce.repo
        yum install -y docker-ce docker-ce-cli containerd.io docker-compose-plugin
        systemctl enable --now docker
    else
        echo "docker already installed"
    fi
    """
) + _COMMON_TAIL

PROVISIONING_SCRIPTS = {
    "ubuntu": APT_SCRIPT,
    "debian": APT_SCRIPT,
    "centos": YUM_SCRIPT,
    "rhel": YUM_SCRIPT,
}

UPDATE_DOCKER_SCRIPT = textwrap.dedent(
    """\
    #!/bin/bash
    set -e
    if command -v apt-get > /dev/null 2>&1; then
        export DEBIAN_FRONTEND=noninteractive
        apt-get update -y
        apt-get install -y --only-upgrade docker-ce docker-ce-cli containerd.io docker-compose-plugin
    else
        yum update -y docker-ce docker-ce-cli containerd.io docker-compose-plugin
    fi
    systemctl restart docker
    docker --version
    """
)
