# service/database_service.py
import logging

from bash_script import ssh_session
from database_init import db
from models.database import ManagedDatabase
from models.server import Server
from service import docker_service
from util.constant import (
    DATABASE_DEFAULT_PORTS,
    DATABASE_STATUS,
    DATABASE_TYPES,
    DATABASES_ROOT,
)
from util.crypto import decrypt, encrypt
from util.errors import DatabaseProvisionError, NotFoundError, RemoteCommandError
from util.helpers import generate_hex, generate_secure_password, short_id

logger = logging.getLogger("database_logger")

MINIO_CONSOLE_PORT = 9001

# Image name and the data directory inside the container
_IMAGES = {
    "mongodb": ("mongo", "/data/db"),
    "mysql": ("mysql", "/var/lib/mysql"),
    "mariadb": ("mariadb", "/var/lib/mysql"),
    "postgresql": ("postgres", "/var/lib/postgresql/data"),
    "redis": ("redis", "/data"),
    "minio": ("minio/minio", "/data"),
}


def get_database(database_id) -> ManagedDatabase:
    database = db.session.get(ManagedDatabase, database_id)
    if not database:
        raise NotFoundError(f"Database {database_id} not found")
    return database


def database_name_for(name: str) -> str:
    return name.replace("-", "_")


def allocate_host_port(server_id, db_type) -> int:
    """
    Default port for the type, shifted up past ports other databases hold.
    A MinIO row holds its port and the console port right after it.
    """
    taken = set()
    rows = (
        ManagedDatabase.query.with_entities(ManagedDatabase.port, ManagedDatabase.type)
        .filter(ManagedDatabase.server_id == server_id)
        .all()
    )
    for held, held_type in rows:
        if not held:
            continue
        taken.add(held)
        if held_type == "minio":
            taken.add(held + 1)
    port = DATABASE_DEFAULT_PORTS[db_type]
    while port in taken or (db_type == "minio" and port + 1 in taken):
        port += 1
    return port


def build_run_args(db_type, container, version, port, username, password, database, volume):
    image, data_dir = _IMAGES[db_type]
    args = [
        f"--name {container}",
        "--restart unless-stopped",
        f"-v {volume}:{data_dir}",
    ]
    if db_type == "mongodb":
        args += [
            f"-p {port}:27017",
            f"-e MONGO_INITDB_ROOT_USERNAME={username}",
            f"-e MONGO_INITDB_ROOT_PASSWORD={password}",
            f"-e MONGO_INITDB_DATABASE={database}",
            f"{image}:{version}",
        ]
    elif db_type == "mysql":
        args += [
            f"-p {port}:3306",
            f"-e MYSQL_ROOT_PASSWORD={password}",
            f"-e MYSQL_DATABASE={database}",
            f"-e MYSQL_USER={username}",
            f"-e MYSQL_PASSWORD={password}",
            f"{image}:{version}",
        ]
    elif db_type == "mariadb":
        args += [
            f"-p {port}:3306",
            f"-e MARIADB_ROOT_PASSWORD={password}",
            f"-e MARIADB_DATABASE={database}",
            f"-e MARIADB_USER={username}",
            f"-e MARIADB_PASSWORD={password}",
            f"{image}:{version}",
        ]
    elif db_type == "postgresql":
        args += [
            f"-p {port}:5432",
            f"-e POSTGRES_USER={username}",
            f"-e POSTGRES_PASSWORD={password}",
            f"-e POSTGRES_DB={database}",
            f"{image}:{version}",
        ]
    elif db_type == "redis":
        tag = f"{version}-alpine" if version != "latest" else "alpine"
        args += [
            f"-p {port}:6379",
            f"{image}:{tag} redis-server --requirepass {password}",
        ]
    elif db_type == "minio":
        args += [
            f"-p {port}:9000",
            f"-p {port + 1}:{MINIO_CONSOLE_PORT}",
            f"-e MINIO_ROOT_USER={username}",
            f"-e MINIO_ROOT_PASSWORD={password}",
            f'{image}:{version} server /data --console-address ":{MINIO_CONSOLE_PORT}"',
        ]
    else:
        raise DatabaseProvisionError(f"Unsupported database type: {db_type}")
    return " ".join(args)


def connection_string(db_type, host, port, username, password, database) -> str:
    if db_type == "mongodb":
        return f"mongodb://{username}:{password}@{host}:{port}/{database}?authSource=admin"
    if db_type in ("mysql", "mariadb"):
        return f"mysql://{username}:{password}@{host}:{port}/{database}"
    if db_type == "postgresql":
        return f"postgresql://{username}:{password}@{host}:{port}/{database}"
    if db_type == "redis":
        return f"redis://:{password}@{host}:{port}"
    if db_type == "minio":
        return f"http://{host}:{port}"
    return ""


def create_database(server_id, name, db_type, version="latest", user_id=None, display_name=None):
    """Run the database container on the server and persist the record."""
    if db_type not in DATABASE_TYPES:
        raise DatabaseProvisionError(f"Unsupported database type: {db_type}")
    server = db.session.get(Server, server_id)
    if not server:
        raise NotFoundError(f"Server {server_id} not found")
    if ManagedDatabase.query.filter_by(user_id=user_id, name=name).first():
        raise DatabaseProvisionError(f"Database {name} already exists")

    username = f"admin_{generate_hex(6)}"
    password = generate_secure_password()
    database_name = database_name_for(name)
    volume = f"{DATABASES_ROOT}/{name}"
    port = allocate_host_port(server.id, db_type)

    record = ManagedDatabase(
        name=name,
        display_name=display_name or name,
        type=db_type,
        version=version or "latest",
        host=server.host,
        port=port,
        username=username,
        password=encrypt(password),
        database_name=database_name,
        status=DATABASE_STATUS.creating.value,
        volume_path=volume,
        server_id=server.id,
        user_id=user_id,
    )
    container = record.container_name
    logger.info(f"Creating {db_type} database {name} on {server.host}:{port}")

    with ssh_session.open_server_session(server) as ssh:
        ssh.check(f"mkdir -p {volume}")
        args = build_run_args(
            db_type, container, record.version, port,
            username, password, database_name, volume,
        )
        try:
            container_id = docker_service.run_container(ssh, args)
        except RemoteCommandError as e:
            raise DatabaseProvisionError(f"Could not create container: {e}") from e
        if not docker_service.wait_for_container(ssh, container_id, timeout=60):
            output = docker_service.container_logs(ssh, container_id, tail=50)
            docker_service.remove_container(ssh, container_id)
            raise DatabaseProvisionError(f"Database container did not start:\n{output}")

    record.container_id = container_id
    record.status = DATABASE_STATUS.running.value
    record.connection_string = connection_string(
        db_type, server.host, port, username, password, database_name
    )
    db.session.add(record)
    db.session.commit()
    logger.info(f"Database {name} running in container {short_id(container_id)}")
    return record


def _docker_action(database_id, action, status):
    record = get_database(database_id)
    target = record.container_id or record.container_name
    with ssh_session.open_server_session(record.server) as ssh:
        result = ssh.run(f"docker {action} {target}")
    if not result.ok:
        record.status = DATABASE_STATUS.error.value
        db.session.commit()
        raise DatabaseProvisionError(f"docker {action} failed: {result.output}")
    record.status = status
    db.session.commit()
    logger.info(f"Database {record.name}: {action} -> {status}")
    return record


def start_database(database_id):
    return _docker_action(database_id, "start", DATABASE_STATUS.running.value)


def stop_database(database_id):
    return _docker_action(database_id, "stop", DATABASE_STATUS.stopped.value)


def restart_database(database_id):
    return _docker_action(database_id, "restart", DATABASE_STATUS.running.value)


def remove_remote(ssh, record):
    """Container and volume of *record*; tolerant of either being gone."""
    docker_service.remove_container(ssh, record.container_id or record.container_name)
    if record.volume_path and record.volume_path.startswith(f"{DATABASES_ROOT}/"):
        ssh.run(f"rm -rf {record.volume_path}")


def delete_database(database_id):
    record = get_database(database_id)
    with ssh_session.open_server_session(record.server) as ssh:
        remove_remote(ssh, record)
    name = record.name
    db.session.delete(record)
    db.session.commit()
    logger.info(f"Database {name} deleted")


def database_logs(database_id, lines=100) -> str:
    record = get_database(database_id)
    with ssh_session.open_server_session(record.server) as ssh:
        return docker_service.container_logs(
            ssh, record.container_id or record.container_name, tail=lines
        )


def database_password(record) -> str:
    return decrypt(record.password)
