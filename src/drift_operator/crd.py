"""CRD schema constants and helpers."""

from dataclasses import dataclass, field

# CRD Group, Version, and Kind
GROUP = "mlops.driftprovider.io"
VERSION = "v1alpha1"
PLURAL = "ctrldrifts"
KIND = "CtrlDrift"

# API version string
API_VERSION = f"{GROUP}/{VERSION}"

# Workload names shared with the container images
MONITOR_DEPLOYMENT = "drift-deploy"
INFERENCE_DEPLOYMENT = "python-tflite-deploy"
TRAINING_JOB = "training-job"
CONVERSION_JOB = "converting-job"

# Labels
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "drift-operator"
PIPELINE_LABEL = f"{GROUP}/pipeline"

# Pipeline phases (inferred each pass, never stored as input)
PHASE_UNKNOWN = "Unknown"
PHASE_NO_MONITOR = "NoMonitor"
PHASE_MONITORING = "Monitoring"
PHASE_DRIFT_DETECTED = "DriftDetected"
PHASE_TRAINING = "Training"
PHASE_CONVERTING = "Converting"

# Status condition types
CONDITION_READY = "Ready"
CONDITION_SYNCED = "Synced"

# Defaults
DEFAULT_NAMESPACE = "default"
DEFAULT_THRESHOLD = 3000
DEFAULT_DATA_FOLDER = "/var/data/"
DEFAULT_DRIFT_FILE = "drift_data.csv"
DEFAULT_REFERENCE_FILE = "reference.csv"
DEFAULT_CLAIM_NAME = "data-pvc"
DEFAULT_BROKER_ADDRESS = "lserf-tinyml.cloudmmwunibo.it"
DEFAULT_TOPIC_NAME = "drift-detection"
DEFAULT_IMAGES = {
    "monitor": "lucaserf/drift_detection:latest",
    "inference": "lucaserf/python_tflite:latest",
    "training": "lucaserf/training-regression:latest",
    "conversion": "lucaserf/converting-lite:latest",
}


def _string(spec, key, default):
    value = spec.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"spec.{key} must be a string, got {type(value).__name__}")
    if not value and default:
        raise ValueError(f"spec.{key} must not be empty")
    return value


@dataclass(frozen=True)
class PipelineSpec:
    """Validated view of a CtrlDrift spec, with defaults applied."""

    name: str = ""
    deploy_name: str = MONITOR_DEPLOYMENT
    namespace: str = DEFAULT_NAMESPACE
    training_script: str = ""
    threshold: int = DEFAULT_THRESHOLD
    data_folder: str = DEFAULT_DATA_FOLDER
    drift_file: str = DEFAULT_DRIFT_FILE
    reference_file: str = DEFAULT_REFERENCE_FILE
    claim_name: str = DEFAULT_CLAIM_NAME
    broker_address: str = DEFAULT_BROKER_ADDRESS
    topic_name: str = DEFAULT_TOPIC_NAME
    images: dict = field(default_factory=lambda: dict(DEFAULT_IMAGES))

    @classmethod
    def from_spec(cls, spec, name="", default_namespace=DEFAULT_NAMESPACE):
        """Build from a raw resource spec. Raises ValueError on invalid input."""
        spec = spec or {}

        threshold = spec.get("driftThreshold", DEFAULT_THRESHOLD)
        # bool is an int subclass; reject it explicitly
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ValueError(f"spec.driftThreshold must be an integer, got {threshold!r}")
        if threshold < 0:
            raise ValueError(f"spec.driftThreshold must be >= 0, got {threshold}")

        images = dict(DEFAULT_IMAGES)
        overrides = spec.get("images") or {}
        if not isinstance(overrides, dict):
            raise ValueError("spec.images must be a mapping")
        for key, image in overrides.items():
            if key not in DEFAULT_IMAGES:
                raise ValueError(
                    f"Unknown image key: {key}. Allowed: {sorted(DEFAULT_IMAGES)}"
                )
            if not isinstance(image, str) or not image:
                raise ValueError(f"spec.images.{key} must be a non-empty string")
            images[key] = image

        data_folder = _string(spec, "dataFolder", DEFAULT_DATA_FOLDER)
        if not data_folder.endswith("/"):
            data_folder += "/"

        return cls(
            name=name or "",
            deploy_name=_string(spec, "deployName", MONITOR_DEPLOYMENT),
            namespace=_string(spec, "deployNamespace", default_namespace),
            training_script=_string(spec, "trainingScript", ""),
            threshold=threshold,
            data_folder=data_folder,
            drift_file=_string(spec, "driftFile", DEFAULT_DRIFT_FILE),
            reference_file=_string(spec, "referenceFile", DEFAULT_REFERENCE_FILE),
            claim_name=_string(spec, "claimName", DEFAULT_CLAIM_NAME),
            broker_address=_string(spec, "brokerAddress", DEFAULT_BROKER_ADDRESS),
            topic_name=_string(spec, "topicName", DEFAULT_TOPIC_NAME),
            images=images,
        )
