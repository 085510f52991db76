import click
from flask.cli import with_appcontext

from commands.common import echo_report, surface_errors
from service import reconcile_service


def _report_command(name, func, *params, help_text=None):
    """Click command that calls *func* with its arguments and prints the report."""

    @click.command(name, help=help_text)
    @with_appcontext
    @surface_errors
    def command(**kwargs):
        echo_report(func(**kwargs))

    for param in params:
        command = param(command)
    return command


check_container = _report_command(
    "check-container",
    reconcile_service.check_container,
    click.argument("domain"),
    help_text="Show the stored container of a project and what Docker runs.",
)
diagnose_deployment = _report_command(
    "diagnose-deployment",
    reconcile_service.diagnose_deployment,
    click.argument("name"),
    help_text="Container, upstream HTTP, nginx and firewall checks for a project.",
)
diagnose_traefik = _report_command(
    "diagnose-traefik",
    reconcile_service.diagnose_traefik,
    click.argument("domain"),
    help_text="Labels, Traefik routers and reachability from the proxy.",
)
fix_container_labels = _report_command(
    "fix-container-labels",
    reconcile_service.fix_container_labels,
    click.argument("domain"),
    help_text="Recreate the project container with fresh Traefik labels.",
)
update_project_port = _report_command(
    "update-project-port",
    reconcile_service.update_project_port,
    click.argument("domain"),
    click.argument("port", type=int),
)
update_container_id = _report_command(
    "update-container-id",
    reconcile_service.update_container_id,
    click.argument("domain"),
    click.argument("container_id", required=False),
    help_text="Store a container id, or the running <name>-* container when omitted.",
)
setup_nginx_proxy = _report_command(
    "setup-nginx-proxy",
    reconcile_service.setup_nginx_proxy,
    click.argument("domain"),
)
verify_nginx_config = _report_command(
    "verify-nginx-config",
    reconcile_service.verify_nginx_config,
    click.argument("project_name", metavar="[PROJECT]", required=False),
)
cleanup_nginx = _report_command(
    "cleanup-nginx",
    reconcile_service.cleanup_nginx,
    click.argument("project_name", metavar="[PROJECT]", required=False),
    help_text="Remove nginx sites and stale containers; current containers stay.",
)
reinstall_traefik = _report_command(
    "reinstall-traefik",
    reconcile_service.reinstall_traefik,
    click.argument("host"),
)
stop_traefik_start_nginx = _report_command(
    "stop-traefik-start-nginx",
    reconcile_service.stop_traefik_start_nginx,
    click.argument("domain"),
)
fix_502 = _report_command(
    "fix-502",
    reconcile_service.fix_502,
    click.argument("project_name", metavar="PROJECT"),
)
fix_traefik_domain = _report_command(
    "fix-traefik-domain",
    reconcile_service.fix_traefik_domain,
    click.argument("domain"),
)
update_docker = _report_command(
    "update-docker",
    reconcile_service.update_docker,
    click.argument("host"),
)
sync_projects = _report_command(
    "sync-projects",
    reconcile_service.sync_projects,
    click.argument("host", required=False),
    help_text="Align stored container id, port and status with live containers.",
)
test_domain = _report_command(
    "test-domain",
    reconcile_service.test_domain,
    click.argument("domain"),
)

commands = [
    check_container,
    diagnose_deployment,
    diagnose_traefik,
    fix_container_labels,
    update_project_port,
    update_container_id,
    setup_nginx_proxy,
    verify_nginx_config,
    cleanup_nginx,
    reinstall_traefik,
    stop_traefik_start_nginx,
    fix_502,
    fix_traefik_domain,
    update_docker,
    sync_projects,
    test_domain,
]
