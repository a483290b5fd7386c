#!/usr/bin/env python3
"""
Drift pipeline CLI

A command-line interface for managing CtrlDrift retraining pipelines.
"""

import argparse
import json
import sys
import time

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from drift_operator import crd
from drift_operator.drift import read_drift_signal
from drift_operator.reconcile import latest_status


def load_kubeconfig():
    """Load Kubernetes configuration."""
    try:
        config.load_incluster_config()
        return True
    except config.ConfigException:
        try:
            config.load_kube_config()
            return True
        except Exception as e:
            print(f"Error loading Kubernetes config: {e}", file=sys.stderr)
            return False


def _api_message(e):
    """Extract the server message from an ApiException body, if any."""
    if not e.body:
        return None
    try:
        return json.loads(e.body).get("message")
    except (ValueError, AttributeError):
        return None


def build_spec(args):
    """CtrlDrift spec from create arguments; unset options are left to operator defaults."""
    spec = {}
    if args.deploy_name:
        spec["deployName"] = args.deploy_name
    if args.deploy_namespace:
        spec["deployNamespace"] = args.deploy_namespace
    if args.training_script:
        spec["trainingScript"] = args.training_script
    if args.threshold is not None:
        spec["driftThreshold"] = args.threshold
    if args.claim_name:
        spec["claimName"] = args.claim_name
    if args.data_folder:
        spec["dataFolder"] = args.data_folder

    images = {}
    for key in crd.DEFAULT_IMAGES:
        value = getattr(args, f"{key}_image", None)
        if value:
            images[key] = value
    if images:
        spec["images"] = images

    # Fail early on what the operator would reject
    crd.PipelineSpec.from_spec(spec)
    return spec


def create_pipeline(custom_api, name, namespace, spec):
    """Create a CtrlDrift resource."""
    body = {
        "apiVersion": crd.API_VERSION,
        "kind": crd.KIND,
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }

    try:
        custom_api.create_namespaced_custom_object(
            group=crd.GROUP,
            version=crd.VERSION,
            namespace=namespace,
            plural=crd.PLURAL,
            body=body,
        )
        print(f"✓ CtrlDrift '{name}' created")
        return True
    except ApiException as e:
        if e.status == 409:
            print(f"✗ CtrlDrift '{name}' already exists", file=sys.stderr)
        else:
            print(f"✗ Failed to create CtrlDrift: {e}", file=sys.stderr)
            message = _api_message(e)
            if message:
                print(f"  {message}", file=sys.stderr)
        return False


def _handler_status(resource):
    """The status written by the operator's handlers (the most recent one)."""
    return latest_status(resource.get("status"))


def _condition(status, kind):
    for condition in status.get("conditions", []) or []:
        if condition.get("type") == kind:
            return condition
    return {}


def cmd_create(args):
    """Create a CtrlDrift pipeline."""
    try:
        spec = build_spec(args)
    except ValueError as e:
        print(f"✗ Invalid pipeline: {e}", file=sys.stderr)
        sys.exit(2)

    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()
    if not create_pipeline(custom_api, args.name, args.namespace, spec):
        sys.exit(1)

    print(f"\nCtrlDrift '{args.name}' is being processed.")
    print(f"Watch status: {sys.argv[0]} watch {args.name} -n {args.namespace}")


def cmd_get(args):
    """Get CtrlDrift status."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    try:
        resource = custom_api.get_namespaced_custom_object(
            group=crd.GROUP,
            version=crd.VERSION,
            namespace=args.namespace,
            plural=crd.PLURAL,
            name=args.name,
        )
    except ApiException as e:
        if e.status == 404:
            print(f"✗ CtrlDrift '{args.name}' not found", file=sys.stderr)
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output == "json":
        print(json.dumps(resource, indent=2))
        return

    try:
        params = crd.PipelineSpec.from_spec(resource.get("spec", {}))
    except ValueError as e:
        print(f"✗ CtrlDrift '{args.name}' has an invalid spec: {e}", file=sys.stderr)
        sys.exit(1)
    status = _handler_status(resource)

    print(f"CtrlDrift: {args.name}")
    print(f"Namespace: {args.namespace}")
    print(f"\nSpec:")
    print(f"  Monitor: {params.deploy_name}")
    print(f"  Workload namespace: {params.namespace}")
    print(f"  Threshold: {params.threshold}")
    print(f"  Data: {params.data_folder}{params.drift_file} (claim {params.claim_name})")
    for key, image in params.images.items():
        print(f"  Image ({key}): {image}")

    print(f"\nStatus:")
    print(f"  Phase: {status.get('phase', 'Unknown')}")
    print(f"  Drift samples: {status.get('driftSamples', 'N/A')}")
    print(f"  Ready: {_condition(status, crd.CONDITION_READY).get('status', 'Unknown')}")
    print(f"  Synced: {_condition(status, crd.CONDITION_SYNCED).get('status', 'Unknown')}")
    print(f"  Message: {status.get('message', 'N/A')}")
    if status.get("lastError"):
        print(f"  Last error: {status.get('lastError')}")
    if status.get("observedAt"):
        print(f"  Observed: {status.get('observedAt')}")


def cmd_list(args):
    """List CtrlDrift pipelines."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    try:
        if args.namespace:
            response = custom_api.list_namespaced_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                namespace=args.namespace,
                plural=crd.PLURAL,
            )
        else:
            response = custom_api.list_cluster_custom_object(
                group=crd.GROUP,
                version=crd.VERSION,
                plural=crd.PLURAL,
            )
    except ApiException as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)

    items = response.get("items", [])
    if not items:
        print("No CtrlDrift pipelines found.")
        return

    print(f"{'NAME':<30} {'NAMESPACE':<20} {'PHASE':<15} {'SAMPLES':<9} {'READY':<8}")
    print("-" * 85)

    for item in items:
        metadata = item.get("metadata", {})
        status = _handler_status(item)

        name = metadata.get("name", "N/A")
        namespace = metadata.get("namespace", "N/A")
        phase = status.get("phase", "Unknown")
        samples = status.get("driftSamples", "N/A")
        ready = _condition(status, crd.CONDITION_READY).get("status", "Unknown")

        print(f"{name:<30} {namespace:<20} {phase:<15} {samples!s:<9} {ready:<8}")


def cmd_watch(args):
    """Watch CtrlDrift status."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    print(f"Watching CtrlDrift '{args.name}' (Ctrl+C to stop)...")
    print()

    try:
        while True:
            try:
                resource = custom_api.get_namespaced_custom_object(
                    group=crd.GROUP,
                    version=crd.VERSION,
                    namespace=args.namespace,
                    plural=crd.PLURAL,
                    name=args.name,
                )
                status = _handler_status(resource)
                phase = status.get("phase", "Unknown")
                samples = status.get("driftSamples", 0)
                message = status.get("message", "")

                print(f"\r[{phase}] samples={samples} {message}", end="", flush=True)

            except ApiException as e:
                if e.status == 404:
                    print(f"\n✗ CtrlDrift '{args.name}' not found", file=sys.stderr)
                    break

            time.sleep(args.interval)

    except KeyboardInterrupt:
        print("\nStopped watching.")


def cmd_delete(args):
    """Delete a CtrlDrift pipeline; the operator removes its deployments."""
    if not load_kubeconfig():
        sys.exit(1)

    custom_api = client.CustomObjectsApi()

    try:
        custom_api.delete_namespaced_custom_object(
            group=crd.GROUP,
            version=crd.VERSION,
            namespace=args.namespace,
            plural=crd.PLURAL,
            name=args.name,
        )
        print(f"✓ CtrlDrift '{args.name}' deleted")
    except ApiException as e:
        if e.status == 404:
            print(f"✗ CtrlDrift '{args.name}' not found", file=sys.stderr)
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_drift(args):
    """Inspect a local drift artifact against a threshold."""
    signal = read_drift_signal(args.folder, args.file)

    if signal.error:
        print(f"✗ {signal.error}", file=sys.stderr)
        sys.exit(1)
    if not signal.present:
        print(f"No drift data ({args.file} not in {args.folder})")
        return

    verdict = "retraining needed" if signal.exceeds(args.threshold) else "below threshold"
    print(f"{args.file}: {signal.sample_count} samples, threshold {args.threshold}: {verdict}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="driftctl",
        description="Drift pipeline CLI - Manage CtrlDrift retraining pipelines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a pipeline with defaults
  %(prog)s create regression

  # Create a pipeline with a lower threshold and a custom training image
  %(prog)s create regression --threshold 1000 --training-image me/train:v2

  # Show pipeline status
  %(prog)s get regression

  # Check a drift file locally
  %(prog)s drift --folder ./data --threshold 3000
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a CtrlDrift pipeline")
    create_parser.add_argument("name", help="CtrlDrift name")
    create_parser.add_argument(
        "--namespace", "-n", default="default", help="Kubernetes namespace"
    )
    create_parser.add_argument(
        "--deploy-name", help=f"Monitor deployment name (default: {crd.MONITOR_DEPLOYMENT})"
    )
    create_parser.add_argument(
        "--deploy-namespace", help="Namespace for the pipeline workloads"
    )
    create_parser.add_argument("--training-script", help="Training script reference")
    create_parser.add_argument(
        "--threshold",
        type=int,
        help=f"Drift samples that trigger retraining (default: {crd.DEFAULT_THRESHOLD})",
    )
    create_parser.add_argument(
        "--claim-name", help=f"Shared data PVC (default: {crd.DEFAULT_CLAIM_NAME})"
    )
    create_parser.add_argument(
        "--data-folder", help=f"Shared data mount path (default: {crd.DEFAULT_DATA_FOLDER})"
    )
    for key in crd.DEFAULT_IMAGES:
        create_parser.add_argument(
            f"--{key}-image", help=f"{key} image (default: {crd.DEFAULT_IMAGES[key]})"
        )
    create_parser.set_defaults(func=cmd_create)

    # Get command
    get_parser = subparsers.add_parser("get", help="Get CtrlDrift status")
    get_parser.add_argument("name", help="CtrlDrift name")
    get_parser.add_argument(
        "--namespace", "-n", default="default", help="Kubernetes namespace"
    )
    get_parser.add_argument(
        "--output", "-o", choices=["json", "wide"], default="wide", help="Output format"
    )
    get_parser.set_defaults(func=cmd_get)

    # List command
    list_parser = subparsers.add_parser("list", help="List CtrlDrift pipelines")
    list_parser.add_argument(
        "--namespace", "-n", help="Filter by namespace (all namespaces if not specified)"
    )
    list_parser.set_defaults(func=cmd_list)

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Watch CtrlDrift status")
    watch_parser.add_argument("name", help="CtrlDrift name")
    watch_parser.add_argument(
        "--namespace", "-n", default="default", help="Kubernetes namespace"
    )
    watch_parser.add_argument(
        "--interval", type=float, default=2.0, help="Polling interval in seconds"
    )
    watch_parser.set_defaults(func=cmd_watch)

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a CtrlDrift pipeline")
    delete_parser.add_argument("name", help="CtrlDrift name")
    delete_parser.add_argument(
        "--namespace", "-n", default="default", help="Kubernetes namespace"
    )
    delete_parser.set_defaults(func=cmd_delete)

    # Drift command
    drift_parser = subparsers.add_parser("drift", help="Inspect a local drift file")
    drift_parser.add_argument(
        "--folder", default=crd.DEFAULT_DATA_FOLDER, help="Data folder"
    )
    drift_parser.add_argument("--file", default=crd.DEFAULT_DRIFT_FILE, help="Drift file")
    drift_parser.add_argument(
        "--threshold", type=int, default=crd.DEFAULT_THRESHOLD, help="Retraining threshold"
    )
    drift_parser.set_defaults(func=cmd_drift)

    return parser


def main(argv=None):
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
