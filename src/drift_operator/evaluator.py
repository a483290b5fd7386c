"""Pipeline state evaluation.

The pipeline has no stored state. Every pass rebuilds an
ObservedPipelineState from fresh listings and the drift artifact, and
`evaluate` maps it to the actions that move the cluster one step towards
the desired state:

    no monitor deployment         -> exists=False (driver creates deployments)
    drift > threshold, no training -> create training job
    training job succeeded        -> delete it, create conversion job
    conversion job succeeded      -> up_to_date=False; deleted only after the
                                     driver refreshed the deployments
    training/conversion failed    -> delete it, report the failure

Running jobs are left alone. Completions wait while the monitor deployment
is missing or unknown. A listing that failed is "unknown" (None) and never
leads to a create or delete.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from . import crd
from .drift import DriftSignal
from .k8s import JobStatus

CREATE = "create"
DELETE = "delete"
JOB = "job"


@dataclass(frozen=True)
class Action:
    verb: str
    kind: str
    name: str

    def __str__(self):
        return f"{self.verb} {self.kind}/{self.name}"


@dataclass(frozen=True)
class ObservedPipelineState:
    deployments: Optional[FrozenSet[str]] = None
    jobs: Optional[Tuple[JobStatus, ...]] = None
    drift: DriftSignal = field(default_factory=DriftSignal)

    def monitor_exists(self, deploy_name=crd.MONITOR_DEPLOYMENT):
        if self.deployments is None:
            return None
        return deploy_name in self.deployments

    def job(self, name):
        for job in self.jobs or ():
            if job.name == name:
                return job
        return None


@dataclass
class Plan:
    """What one pass should do.

    `actions` run during Observe. `after_refresh` runs only once the
    deployments were refreshed successfully: a completed conversion job is
    the only record that a refresh is owed, so it is kept until then.
    """

    actions: List[Action] = field(default_factory=list)
    after_refresh: List[Action] = field(default_factory=list)
    resource_exists: Optional[bool] = None
    resource_up_to_date: bool = True
    phase: str = crd.PHASE_UNKNOWN
    notes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def evaluate(observed, params):
    """Compute the plan for one pass. Pure: no I/O, no clock."""
    plan = Plan()

    # (1) monitor deployment
    plan.resource_exists = observed.monitor_exists(params.deploy_name)
    if plan.resource_exists is None:
        plan.notes.append("deployments unknown, listing failed")

    # (2) drift signal
    drifting = observed.drift.exceeds(params.threshold)
    if not observed.drift.known:
        plan.notes.append("drift unknown, data not readable")
    elif drifting:
        plan.notes.append(
            f"drift detected: {observed.drift.sample_count} samples > {params.threshold}"
        )

    if observed.jobs is None:
        plan.notes.append("jobs unknown, listing failed")
        plan.phase = _phase(observed, params, drifting)
        return plan

    training = observed.job(crd.TRAINING_JOB)
    conversion = observed.job(crd.CONVERSION_JOB)

    # (3) launch training iff none exists
    if drifting and training is None:
        plan.actions.append(Action(CREATE, JOB, crd.TRAINING_JOB))

    # failed jobs are removed so the next pass can start over
    for job in (training, conversion):
        if job is not None and job.crashed:
            plan.errors.append(f"job {job.name} failed")
            plan.actions.append(Action(DELETE, JOB, job.name))

    # (4) completions, only against a running pipeline so the refresh they
    # owe can actually happen
    completed = [job for job in (training, conversion) if job is not None and job.done]
    if completed and plan.resource_exists is not True:
        plan.notes.append("completed jobs kept until the monitor deployment is available")
    elif completed:
        if training is not None and training.done:
            plan.notes.append("training job completed")
            plan.actions.append(Action(DELETE, JOB, crd.TRAINING_JOB))
            if conversion is None:
                plan.actions.append(Action(CREATE, JOB, crd.CONVERSION_JOB))
        if conversion is not None and conversion.done:
            plan.notes.append("conversion job completed")
            plan.after_refresh.append(Action(DELETE, JOB, crd.CONVERSION_JOB))
        plan.resource_up_to_date = False

    plan.phase = _phase(observed, params, drifting)
    return plan


def _phase(observed, params, drifting):
    exists = observed.monitor_exists(params.deploy_name)
    if exists is None:
        return crd.PHASE_UNKNOWN
    if not exists:
        return crd.PHASE_NO_MONITOR
    if observed.jobs is None:
        return crd.PHASE_UNKNOWN

    training = observed.job(crd.TRAINING_JOB)
    conversion = observed.job(crd.CONVERSION_JOB)
    if training is not None and training.done:
        # conversion is created (or already running) in this pass
        return crd.PHASE_CONVERTING
    if conversion is not None and conversion.active:
        return crd.PHASE_CONVERTING
    if training is not None and training.active:
        return crd.PHASE_TRAINING
    if drifting:
        return crd.PHASE_DRIFT_DETECTED
    return crd.PHASE_MONITORING
