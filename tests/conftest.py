# --- test import path bootstrap (src/ layout) ---
import sys as _sys
from pathlib import Path as _Path

_SRC = _Path(__file__).resolve().parents[1] / "src"
if _SRC.is_dir():
    _p = str(_SRC)
    if _p not in _sys.path:
        _sys.path.insert(0, _p)
# --- end bootstrap ---

import logging
from pathlib import Path

import pytest
from kubernetes.client.rest import ApiException

from drift_operator import crd
from drift_operator.k8s import JobStatus


class FakeGateway:
    """In-memory stand-in for ClusterGateway that records every call."""

    def __init__(self, deployments=(), jobs=None, namespace="default"):
        self.namespace = namespace
        self.deployments = set(deployments)
        self.jobs = dict(jobs or {})
        self.calls = []
        self.failures = {}

    def fail(self, method, error):
        self.failures[method] = error

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.failures:
            raise self.failures[method]

    def list_deployments(self):
        self._call("list_deployments")
        return set(self.deployments)

    def create_deployment(self, body):
        name = body.metadata.name
        self._call("create_deployment", name)
        if name in self.deployments:
            raise ApiException(status=409, reason="Conflict")
        self.deployments.add(name)

    def restart_deployment(self, name):
        self._call("restart_deployment", name)
        if name not in self.deployments:
            raise ApiException(status=404, reason="Not Found")

    def delete_deployment(self, name):
        self._call("delete_deployment", name)
        if name not in self.deployments:
            raise ApiException(status=404, reason="Not Found")
        self.deployments.discard(name)

    def list_jobs(self):
        self._call("list_jobs")
        # values are a succeeded count or a (succeeded, failed) pair
        return tuple(
            JobStatus(name, *(counts if isinstance(counts, tuple) else (counts,)))
            for name, counts in self.jobs.items()
        )

    def create_job(self, body):
        name = body.metadata.name
        self._call("create_job", name)
        if name in self.jobs:
            raise ApiException(status=409, reason="Conflict")
        self.jobs[name] = 0

    def delete_job(self, name, propagation="Background"):
        self._call("delete_job", name, propagation)
        if name not in self.jobs:
            raise ApiException(status=404, reason="Not Found")
        del self.jobs[name]

    def mutations(self):
        return [c for c in self.calls if not c[0].startswith("list_")]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "data"
    folder.mkdir()
    return folder


@pytest.fixture
def params(data_dir: Path) -> crd.PipelineSpec:
    return crd.PipelineSpec(name="regression", data_folder=f"{data_dir}/")


@pytest.fixture
def write_drift(data_dir: Path):
    def _write(records: int, trailing_newline: bool = False) -> Path:
        path = data_dir / crd.DEFAULT_DRIFT_FILE
        content = "\n".join(f"{i},0.5,1.25" for i in range(records))
        if trailing_newline:
            content += "\n"
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("drift_operator.tests")
