from pathlib import Path
from unittest import mock

import pytest
from kubernetes.client.rest import ApiException

from drift_operator import crd
from driftctl.main import _handler_status, build_parser, build_spec, create_pipeline, main


def test_build_spec_keeps_only_given_options() -> None:
    args = build_parser().parse_args(
        ["create", "regression", "--threshold", "1000", "--training-image", "me/train:v2"]
    )
    assert build_spec(args) == {"driftThreshold": 1000, "images": {"training": "me/train:v2"}}


def test_build_spec_rejects_what_the_operator_would() -> None:
    args = build_parser().parse_args(["create", "regression", "--threshold", "-1"])
    with pytest.raises(ValueError):
        build_spec(args)


def test_create_invalid_pipeline_exits_before_cluster_access(capsys) -> None:
    with mock.patch("driftctl.main.load_kubeconfig") as load:
        with pytest.raises(SystemExit) as exit_info:
            main(["create", "regression", "--threshold", "-1"])
    assert exit_info.value.code == 2
    load.assert_not_called()
    assert "Invalid pipeline" in capsys.readouterr().err


def test_create_pipeline_posts_custom_object(capsys) -> None:
    custom_api = mock.MagicMock()
    assert create_pipeline(custom_api, "regression", "ml", {"driftThreshold": 10})
    kwargs = custom_api.create_namespaced_custom_object.call_args.kwargs
    assert kwargs["group"] == crd.GROUP
    assert kwargs["plural"] == crd.PLURAL
    assert kwargs["body"]["kind"] == "CtrlDrift"
    assert kwargs["body"]["metadata"] == {"name": "regression", "namespace": "ml"}
    assert "created" in capsys.readouterr().out


def test_create_pipeline_conflict(capsys) -> None:
    custom_api = mock.MagicMock()
    custom_api.create_namespaced_custom_object.side_effect = ApiException(
        status=409, reason="Conflict"
    )
    assert not create_pipeline(custom_api, "regression", "ml", {})
    assert "already exists" in capsys.readouterr().err


def test_handler_status_picks_latest_pass() -> None:
    resource = {
        "status": {
            "pipeline_handler": {"phase": "NoMonitor", "observedAt": "2026-01-01T00:00:00Z"},
            "pipeline_timer": {"phase": "Training", "observedAt": "2026-01-01T00:05:00Z"},
        }
    }
    assert _handler_status(resource)["phase"] == "Training"
    assert _handler_status({}) == {}


def test_drift_command_reports_verdict(data_dir: Path, write_drift, capsys) -> None:
    write_drift(3500)
    main(["drift", "--folder", str(data_dir), "--threshold", "3000"])
    assert "3500 samples, threshold 3000: retraining needed" in capsys.readouterr().out


def test_drift_command_without_artifact(data_dir: Path, capsys) -> None:
    main(["drift", "--folder", str(data_dir)])
    assert "No drift data" in capsys.readouterr().out


def test_drift_command_unreadable_folder(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as exit_info:
        main(["drift", "--folder", str(tmp_path / "missing")])
    assert exit_info.value.code == 1


def test_no_command_prints_help() -> None:
    with pytest.raises(SystemExit) as exit_info:
        main([])
    assert exit_info.value.code == 1
