"""Operator process settings, read from the environment."""

import os
from dataclasses import dataclass

from . import crd


def _positive_float(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{key} must be > 0, got {raw!r}")
    return value


@dataclass(frozen=True)
class OperatorSettings:
    timer_interval: float = 30.0
    request_timeout: float = 10.0
    log_level: str = "INFO"
    default_namespace: str = crd.DEFAULT_NAMESPACE

    @classmethod
    def from_env(cls, environ=None):
        environ = os.environ if environ is None else environ
        return cls(
            timer_interval=_positive_float(environ, "DRIFT_OPERATOR_TIMER_INTERVAL", 30.0),
            request_timeout=_positive_float(environ, "DRIFT_OPERATOR_REQUEST_TIMEOUT", 10.0),
            log_level=environ.get("DRIFT_OPERATOR_LOG_LEVEL", "INFO").upper(),
            default_namespace=environ.get(
                "DRIFT_OPERATOR_DEFAULT_NAMESPACE", crd.DEFAULT_NAMESPACE
            ),
        )
