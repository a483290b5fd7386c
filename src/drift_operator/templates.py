"""Kubernetes workload templates for the retraining pipeline."""

from kubernetes import client

from . import crd

DATA_VOLUME = "data-volume"


def _labels(params, app):
    labels = {"app": app, crd.MANAGED_BY_LABEL: crd.MANAGED_BY}
    if params.name:
        labels[crd.PIPELINE_LABEL] = params.name
    return labels


def _env(pairs):
    return [client.V1EnvVar(name=name, value=value) for name, value in pairs]


def _data_volume(params):
    return client.V1Volume(
        name=DATA_VOLUME,
        persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
            claim_name=params.claim_name
        ),
    )


def _data_mount(params):
    return client.V1VolumeMount(name=DATA_VOLUME, mount_path=params.data_folder)


def _deployment(params, name, app, container):
    labels = _labels(params, app)
    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=name, namespace=params.namespace, labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels={"app": app}),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(
                    containers=[container],
                    volumes=[_data_volume(params)],
                ),
            ),
        ),
    )


def _job(params, name, app, container):
    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=name, namespace=params.namespace, labels=_labels(params, app)
        ),
        spec=client.V1JobSpec(
            backoff_limit=0,
            completions=1,
            parallelism=1,
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(
                    restart_policy="Never",
                    containers=[container],
                    volumes=[_data_volume(params)],
                ),
            ),
        ),
    )


def drift_monitor_deployment(params):
    """Long-running drift detector that appends drifted samples to the drift file."""
    # OUTPUT_NAME is the drift file without its extension
    output_name = params.drift_file.rsplit(".", 1)[0]
    container = client.V1Container(
        name="drift-detection",
        image=params.images["monitor"],
        image_pull_policy="Always",
        env=_env(
            [
                ("FOLDER_PATH", params.data_folder),
                ("BROKER_ADDRESS", params.broker_address),
                ("TOPIC_NAME", params.topic_name),
                ("BATCH_SIZE", "100"),
                ("ALPHA_P_VALUE", "0.001"),
                ("OUTPUT_NAME", output_name),
            ]
        ),
        volume_mounts=[_data_mount(params)],
    )
    return _deployment(params, params.deploy_name, "drift-detection", container)


def inference_deployment(params):
    """TFLite serving deployment reading the converted model from shared storage."""
    container = client.V1Container(
        name="python-tflite",
        image=params.images["inference"],
        image_pull_policy="Always",
        env=_env(
            [
                ("MODEL_NAME", "model_regression.tflite"),
                ("DATA_FOLDER", params.data_folder),
                ("BATCH_SIZE", "10"),
                ("TOPIC_NAME", params.topic_name),
                ("BROKER_ADDRESS", params.broker_address),
            ]
        ),
        volume_mounts=[_data_mount(params)],
    )
    return _deployment(params, crd.INFERENCE_DEPLOYMENT, "python-tflite", container)


def training_job(params):
    """Run-to-completion training on the drift file; renames it to the reference file."""
    env = [
        ("FOLDER_PATH", params.data_folder),
        ("OUTPUT_PATH", "regression_model_tf"),
        ("DATA_PATH", params.drift_file),
        ("LOGGING_LEVEL", "INFO"),
        ("RENAME", params.reference_file),
    ]
    if params.training_script:
        env.append(("TRAINING_SCRIPT", params.training_script))

    container = client.V1Container(
        name="training-regression",
        image=params.images["training"],
        env=_env(env),
        volume_mounts=[_data_mount(params)],
    )
    return _job(params, crd.TRAINING_JOB, "training-regression", container)


def conversion_job(params):
    """Convert the trained Keras model into a TFLite model."""
    container = client.V1Container(
        name="converting-lite",
        image=params.images["conversion"],
        image_pull_policy="Always",
        env=_env(
            [
                ("FOLDER_PATH", params.data_folder),
                ("MODEL_PATH", "regression_model_tf.keras"),
                ("OUTPUT_PATH", "model_regression"),
            ]
        ),
        volume_mounts=[_data_mount(params)],
    )
    return _job(params, crd.CONVERSION_JOB, "converting-lite", container)
