"""Drift signal read from the shared data volume."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftSignal:
    present: bool = False
    sample_count: int = 0
    error: Optional[str] = None

    @property
    def known(self):
        return self.error is None

    def exceeds(self, threshold):
        """Strictly above threshold. An unknown or absent signal never exceeds."""
        return self.present and self.known and self.sample_count > threshold


def count_samples(content):
    """Number of newline-separated segments.

    A trailing newline yields a trailing empty segment, which is counted:
    "a\\nb\\n" is 3 samples. Thresholds are expressed in these units.
    """
    return len(content.split("\n"))


def read_drift_signal(folder, filename, log=None):
    """Read the drift artifact in `folder`.

    Missing artifact: not present. Any I/O error: not present, with the error
    recorded so status can show that drift is unknown rather than absent.
    """
    log = log or logger
    try:
        names = os.listdir(folder)
    except OSError as e:
        log.warning(f"Cannot read data folder {folder}: {e}")
        return DriftSignal(error=f"cannot read data folder: {e}")

    if filename not in names:
        log.debug(f"No drift data in {folder}")
        return DriftSignal()

    path = os.path.join(folder, filename)
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Cannot read drift data {path}: {e}")
        return DriftSignal(error=f"cannot read drift data: {e}")

    samples = count_samples(content)
    log.debug(f"Number of lines in {filename}: {samples}")
    return DriftSignal(present=True, sample_count=samples)
