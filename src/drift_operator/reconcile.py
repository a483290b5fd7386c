"""Core reconciliation logic."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from kubernetes.client.rest import ApiException

from . import crd
from .drift import DriftSignal, read_drift_signal
from .evaluator import CREATE, DELETE, ObservedPipelineState, Plan, evaluate
from .k8s import GATEWAY_ERRORS, ClusterGateway, describe_error
from .templates import (
    conversion_job,
    drift_monitor_deployment,
    inference_deployment,
    training_job,
)

logger = logging.getLogger(__name__)

JOB_TEMPLATES = {
    crd.TRAINING_JOB: training_job,
    crd.CONVERSION_JOB: conversion_job,
}


@dataclass
class Observation:
    exists: Optional[bool]
    up_to_date: bool
    plan: Plan
    drift: DriftSignal
    connection_details: dict = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class Creation:
    connection_details: dict = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class Update:
    connection_details: dict = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


def _now():
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class PipelineReconciler:
    """Observe/Create/Update/Delete for one CtrlDrift instance.

    A reconciler lives for a single pass. Failures of individual cluster
    calls are logged and collected in the returned `errors`, never raised.
    """

    def __init__(self, params, gateway, log=None):
        self.params = params
        self.gateway = gateway
        self.logger = log or logger

    @classmethod
    def for_resource(cls, spec, name, settings, log=None):
        params = crd.PipelineSpec.from_spec(
            spec, name=name, default_namespace=settings.default_namespace
        )
        gateway = ClusterGateway(
            params.namespace, request_timeout=settings.request_timeout, log=log
        )
        return cls(params, gateway, log=log)

    def _deployments(self):
        return [
            (self.params.deploy_name, drift_monitor_deployment),
            (crd.INFERENCE_DEPLOYMENT, inference_deployment),
        ]

    def _list(self, what, call, errors):
        try:
            return call()
        except GATEWAY_ERRORS as e:
            message = f"cannot list {what}: {describe_error(e)}"
            self.logger.error(message)
            errors.append(message)
            return None

    def observe(self):
        errors = []
        deployments = self._list("deployments", self.gateway.list_deployments, errors)
        drift = read_drift_signal(
            self.params.data_folder, self.params.drift_file, log=self.logger
        )
        if drift.error:
            errors.append(drift.error)
        jobs = self._list("jobs", self.gateway.list_jobs, errors)

        observed = ObservedPipelineState(
            deployments=frozenset(deployments) if deployments is not None else None,
            jobs=jobs,
            drift=drift,
        )
        plan = evaluate(observed, self.params)
        for note in plan.notes:
            self.logger.info(note)
        for error in plan.errors:
            self.logger.warning(error)
            errors.append(error)

        for action in plan.actions:
            error = self._apply(action)
            if error:
                errors.append(error)

        return Observation(
            exists=plan.resource_exists,
            up_to_date=plan.resource_up_to_date,
            plan=plan,
            drift=drift,
            errors=errors,
        )

    def _apply(self, action):
        """Run one job action. Returns an error message or None."""
        try:
            if action.verb == CREATE:
                self.gateway.create_job(JOB_TEMPLATES[action.name](self.params))
            elif action.verb == DELETE:
                self.gateway.delete_job(action.name, propagation="Background")
            else:
                raise ValueError(f"Unknown action: {action}")
        except ApiException as e:
            if action.verb == CREATE and e.status == 409:
                self.logger.info(f"Job {action.name} already exists")
                return None
            if action.verb == DELETE and e.status == 404:
                self.logger.info(f"Job {action.name} already gone")
                return None
            return self._failed(action, e)
        except GATEWAY_ERRORS as e:
            return self._failed(action, e)
        return None

    def _failed(self, what, error):
        message = f"{what} failed: {describe_error(error)}"
        self.logger.error(message)
        return message

    def create(self):
        """Create the monitor and inference deployments."""
        result = Creation()
        for name, template in self._deployments():
            try:
                self.gateway.create_deployment(template(self.params))
            except ApiException as e:
                if e.status == 409:
                    self.logger.info(f"Deployment {name} already exists")
                    continue
                result.errors.append(self._failed(f"create deployment/{name}", e))
            except GATEWAY_ERRORS as e:
                result.errors.append(self._failed(f"create deployment/{name}", e))
        return result

    def update(self):
        """Restart both deployments so they pick up the new model and reference data."""
        result = Update()
        for name, template in self._deployments():
            try:
                self.gateway.restart_deployment(name)
                continue
            except ApiException as e:
                if e.status != 404:
                    result.errors.append(self._failed(f"restart deployment/{name}", e))
                    continue
            except GATEWAY_ERRORS as e:
                result.errors.append(self._failed(f"restart deployment/{name}", e))
                continue

            self.logger.info(f"Deployment {name} missing, recreating")
            try:
                self.gateway.create_deployment(template(self.params))
            except GATEWAY_ERRORS as e:
                result.errors.append(self._failed(f"create deployment/{name}", e))
        return result

    def delete(self):
        """Delete both deployments. Returns the list of errors."""
        errors = []
        for name, _ in self._deployments():
            try:
                self.gateway.delete_deployment(name)
            except ApiException as e:
                if e.status == 404:
                    self.logger.info(f"Deployment {name} already gone")
                    continue
                errors.append(self._failed(f"delete deployment/{name}", e))
            except GATEWAY_ERRORS as e:
                errors.append(self._failed(f"delete deployment/{name}", e))
        return errors

    def finish(self, plan):
        """Run the actions held back until the deployments were refreshed."""
        errors = []
        for action in plan.after_refresh:
            error = self._apply(action)
            if error:
                errors.append(error)
        return errors


HANDLER_STATUS_KEYS = ("pipeline_handler", "pipeline_timer")


def latest_status(resource_status):
    """The most recent pass result stored by the handlers, or {}."""
    latest = {}
    for key in HANDLER_STATUS_KEYS:
        entry = (resource_status or {}).get(key)
        if isinstance(entry, dict) and entry.get("observedAt", "") >= latest.get(
            "observedAt", ""
        ):
            latest = entry
    return latest


def _condition(kind, status, reason, message="", previous=None):
    """Build a condition, keeping lastTransitionTime while status and reason hold."""
    since = _now()
    for old in (previous or {}).get("conditions", []) or []:
        if (
            old.get("type") == kind
            and old.get("status") == status
            and old.get("reason") == reason
            and old.get("lastTransitionTime")
        ):
            since = old["lastTransitionTime"]
    return {
        "type": kind,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": since,
    }


def reconcile_pipeline(reconciler, previous=None):
    """One reconciliation pass: Observe, then Create or Update as needed.

    `previous` is the status of the last pass. Returns the status patch for
    the CtrlDrift resource.
    """
    observation = reconciler.observe()
    errors = list(observation.errors)
    phase = observation.plan.phase

    if observation.exists is False:
        reconciler.logger.info("Monitor deployment missing, creating pipeline deployments")
        errors.extend(reconciler.create().errors)
        ready = ("False", "Creating")
    elif observation.exists is None:
        ready = ("Unknown", "Unavailable")
    else:
        if not observation.up_to_date:
            reconciler.logger.info("New model available, refreshing deployments")
            update_errors = reconciler.update().errors
            errors.extend(update_errors)
            if update_errors:
                reconciler.logger.warning(
                    "Refresh incomplete, keeping completed jobs for the next pass"
                )
            else:
                errors.extend(reconciler.finish(observation.plan))
        ready = ("True", "Available")

    conditions = [_condition(crd.CONDITION_READY, *ready, previous=previous)]
    if errors:
        conditions.append(
            _condition(
                crd.CONDITION_SYNCED, "False", "ReconcileError", errors[-1], previous=previous
            )
        )
    else:
        conditions.append(
            _condition(crd.CONDITION_SYNCED, "True", "ReconcileSuccess", previous=previous)
        )

    status = {
        "phase": phase,
        "exists": observation.exists,
        "upToDate": observation.up_to_date,
        "driftSamples": observation.drift.sample_count,
        "conditions": conditions,
        "observedAt": _now(),
        "message": "; ".join(observation.plan.notes) or f"Pipeline is {phase}",
    }
    if errors:
        status["lastError"] = errors[-1]
    return status
