from enum import Enum


class _OrderedStatus(Enum):
    """Status with a display order and label; ``value`` is the stored name."""

    def __init__(self, order, label):
        self.order = order
        self.label = label

    @property
    def value(self):
        return self.name

    @classmethod
    def values(cls):
        return [member.name for member in cls]


class PROJECT_STATUS(_OrderedStatus):
    active = (0, "Running")
    deploying = (1, "Deploying")
    inactive = (2, "Stopped")
    error = (99, "Error")


class DEPLOYMENT_STATUS(_OrderedStatus):
    deploying = (0, "Deploying")
    success = (1, "Success")
    failed = (99, "Failed")


class SERVER_STATUS(_OrderedStatus):
    online = (0, "Online")
    offline = (1, "Offline")
    error = (99, "Error")


class PROVISIONING_STATUS(_OrderedStatus):
    ready = (0, "Ready")
    provisioning = (1, "Provisioning")
    pending = (2, "Pending")
    error = (99, "Error")


class DATABASE_STATUS(_OrderedStatus):
    running = (0, "Running")
    creating = (1, "Creating")
    stopped = (2, "Stopped")
    error = (99, "Error")


class BACKUP_STATUS(_OrderedStatus):
    completed = (0, "Completed")
    pending = (1, "Pending")
    failed = (99, "Failed")


class USER_ROLE(_OrderedStatus):
    super_admin = (0, "Super admin")
    admin = (1, "Admin")
    user = (2, "User")


class SUBSCRIPTION_STATUS(_OrderedStatus):
    active = (0, "Active")
    trial = (1, "Trial")
    inactive = (2, "Inactive")
    cancelled = (3, "Cancelled")


DATABASE_TYPES = ("mongodb", "mysql", "mariadb", "postgresql", "redis", "minio")
PROJECT_TYPES = ("frontend", "backend", "fullstack")
PLAN_INTERVALS = ("monthly", "yearly")

DATABASE_DEFAULT_PORTS = {
    "mongodb": 27017,
    "mysql": 3306,
    "mariadb": 3306,
    "postgresql": 5432,
    "redis": 6379,
    "minio": 9000,
}

PROJECTS_ROOT = "/opt/projects"
DATABASES_ROOT = "/opt/databases"
BACKUPS_ROOT = "/opt/backups"

TRAEFIK_CONTAINER = "traefik-proxy"
TRAEFIK_IMAGE = "traefik:v2.5"
DEFAULT_NETWORK = "coolify"
FALLBACK_NETWORK = "deploy-manager"

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
