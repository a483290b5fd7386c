"""Main operator entrypoint using Kopf."""

import logging
import kopf

from . import crd
from .config import OperatorSettings
from .k8s import load_config
from .reconcile import PipelineReconciler, latest_status, reconcile_pipeline

SETTINGS = OperatorSettings.from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    """Load cluster credentials once, before any handler runs."""
    load_config()
    logger.info(
        f"Drift operator starting: timer every {SETTINGS.timer_interval}s, "
        f"request timeout {SETTINGS.request_timeout}s"
    )
    settings.posting.level = logging.WARNING


def _reconcile(spec, name, status, log):
    reconciler = PipelineReconciler.for_resource(spec, name, SETTINGS, log=log)
    return reconcile_pipeline(reconciler, previous=latest_status(status))


@kopf.on.create(crd.GROUP, crd.VERSION, crd.PLURAL)
@kopf.on.update(crd.GROUP, crd.VERSION, crd.PLURAL)
def pipeline_handler(spec, name, namespace, status, logger, **kwargs):
    """Handle CtrlDrift create/update events."""
    logger.info(f"Handling CtrlDrift {name} in namespace {namespace}")

    try:
        return _reconcile(spec, name, status, logger)
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise kopf.PermanentError(str(e))
    except Exception as e:
        logger.error(f"Reconciliation error: {e}", exc_info=True)
        raise kopf.TemporaryError(f"Reconciliation failed: {e}", delay=30)


@kopf.timer(crd.GROUP, crd.VERSION, crd.PLURAL, interval=SETTINGS.timer_interval)
def pipeline_timer(spec, name, status, logger, **kwargs):
    """Periodic reconciliation: the polling pass that watches drift and jobs."""
    logger.debug(f"Timer reconciliation for CtrlDrift {name}")
    try:
        return _reconcile(spec, name, status, logger)
    except ValueError as e:
        logger.error(f"Validation error: {e}")
    except Exception as e:
        logger.error(f"Timer reconciliation error: {e}", exc_info=True)


@kopf.on.delete(crd.GROUP, crd.VERSION, crd.PLURAL)
def pipeline_delete(spec, name, namespace, logger, **kwargs):
    """Handle CtrlDrift deletion: remove the monitor and inference deployments."""
    logger.info(f"CtrlDrift {name} deleted, cleaning up deployments")
    try:
        reconciler = PipelineReconciler.for_resource(spec, name, SETTINGS, log=logger)
    except ValueError as e:
        # An invalid spec never created anything
        logger.warning(f"Skipping cleanup of invalid CtrlDrift {name}: {e}")
        return
    for error in reconciler.delete():
        logger.warning(f"Cleanup of CtrlDrift {name} incomplete: {error}")


if __name__ == "__main__":
    kopf.run()
