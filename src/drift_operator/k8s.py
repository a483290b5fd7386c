"""Kubernetes client helpers and the cluster gateway used by the reconciler."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

logger = logging.getLogger(__name__)

# Errors a gateway call can raise for an unreachable or failing API server
GATEWAY_ERRORS = (ApiException, HTTPError)

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


def load_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded kubeconfig")


def describe_error(error):
    """Short one-line description of a gateway error."""
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}".strip()
    return str(error) or type(error).__name__


@dataclass(frozen=True)
class JobStatus:
    name: str
    succeeded: int = 0
    failed: int = 0

    @property
    def done(self):
        return self.succeeded >= 1

    @property
    def crashed(self):
        # backoffLimit is 0, so one failed pod ends the job
        return self.failed >= 1 and not self.done

    @property
    def active(self):
        return not self.done and not self.crashed


class ClusterGateway:
    """Namespaced access to the deployments and jobs of one pipeline.

    Every call carries a bounded request timeout. Errors are raised to the
    caller; callers decide whether a failure means "unknown" or "retry later".
    """

    def __init__(
        self, namespace, apps_api=None, batch_api=None, request_timeout=10.0, log=None
    ):
        self.namespace = namespace
        self.logger = log or logger
        self.apps = apps_api if apps_api is not None else client.AppsV1Api()
        self.batch = batch_api if batch_api is not None else client.BatchV1Api()
        self.request_timeout = request_timeout

    def list_deployments(self):
        """Names of the deployments in the namespace."""
        response = self.apps.list_namespaced_deployment(
            namespace=self.namespace, _request_timeout=self.request_timeout
        )
        return {item.metadata.name for item in response.items}

    def create_deployment(self, body):
        self.apps.create_namespaced_deployment(
            namespace=self.namespace, body=body, _request_timeout=self.request_timeout
        )
        self.logger.info(f"Deployment {body.metadata.name} created in {self.namespace}")

    def restart_deployment(self, name):
        """Roll the deployment's pods, like `kubectl rollout restart`."""
        now = datetime.now(timezone.utc).isoformat()
        patch = {
            "spec": {
                "template": {
                    "metadata": {"annotations": {RESTARTED_AT_ANNOTATION: now}}
                }
            }
        }
        self.apps.patch_namespaced_deployment(
            name=name,
            namespace=self.namespace,
            body=patch,
            _request_timeout=self.request_timeout,
        )
        self.logger.info(f"Deployment {name} restarted in {self.namespace}")

    def delete_deployment(self, name):
        self.apps.delete_namespaced_deployment(
            name=name, namespace=self.namespace, _request_timeout=self.request_timeout
        )
        self.logger.info(f"Deployment {name} deleted from {self.namespace}")

    def list_jobs(self):
        response = self.batch.list_namespaced_job(
            namespace=self.namespace, _request_timeout=self.request_timeout
        )
        return tuple(
            JobStatus(
                name=item.metadata.name,
                succeeded=(item.status.succeeded or 0) if item.status else 0,
                failed=(item.status.failed or 0) if item.status else 0,
            )
            for item in response.items
        )

    def create_job(self, body):
        self.batch.create_namespaced_job(
            namespace=self.namespace, body=body, _request_timeout=self.request_timeout
        )
        self.logger.info(f"Job {body.metadata.name} created in {self.namespace}")

    def delete_job(self, name, propagation="Background"):
        """Delete a job; Background propagation also reclaims its pods."""
        self.batch.delete_namespaced_job(
            name=name,
            namespace=self.namespace,
            propagation_policy=propagation,
            _request_timeout=self.request_timeout,
        )
        self.logger.info(f"Job {name} deleted from {self.namespace} ({propagation})")
