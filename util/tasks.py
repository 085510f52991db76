import logging

from queue_config import queue

logger = logging.getLogger("deploy_logger")


def _app():
    from app import create_app

    return create_app()


def deploy_project_job(project_id, version=None, deployed_by="system", ref=None):
    """Job: run a full deploy for one project inside an app context."""
    from service.deploy_service import deploy_project

    with _app().app_context():
        try:
            deployment = deploy_project(
                project_id, version=version, deployed_by=deployed_by, ref=ref
            )
        except Exception as e:
            logger.error(f"Deploy job for project #{project_id} failed: {e}")
            raise
        return deployment.id


def provision_server_job(server_id):
    """Job: install Docker and Git on a freshly registered server."""
    from service.provisioning_service import provision_server

    with _app().app_context():
        provision_server(server_id)
        return server_id


def enqueue_deploy(project, version=None, deployed_by="system"):
    """Queue a deploy of *project*; the route returns before it runs."""
    job = queue.enqueue(
        deploy_project_job,
        project.id,
        version,
        deployed_by,
        job_timeout=3600,
    )
    logger.info(f"Enqueued deploy of {project.name} as job {job.id}")
    return job


def enqueue_rollback(project, deployment):
    """Queue a redeploy of the commit *deployment* was built from."""
    job = queue.enqueue(
        deploy_project_job,
        project.id,
        f"rollback-{deployment.version}",
        "rollback",
        deployment.commit,
        job_timeout=3600,
    )
    logger.info(
        f"Enqueued rollback of {project.name} to {deployment.version} as job {job.id}"
    )
    return job


def enqueue_provisioning(server):
    job = queue.enqueue(provision_server_job, server.id, job_timeout=3600)
    logger.info(f"Enqueued provisioning of {server.host} as job {job.id}")
    return job
