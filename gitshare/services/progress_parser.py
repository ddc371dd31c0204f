"""Turns git's transfer progress lines into an overall completion figure."""

import logging
import re
from typing import Callable, Optional

from ..schemas import SyncProgress

logger = logging.getLogger(__name__)

_PERCENTAGE_RE = re.compile(r"([0-9]+)%")
_SPEED_RE = re.compile(r"([0-9.]+) ([KM])iB/s")

_UNIT_FACTORS = {"K": 1024, "M": 1024 * 1024}

# Share of the overall progress taken by the compression stage
COMPRESSING_SHARE = 20.0


class ProgressParser:
    """Tracks one transfer and reports progress only when it moves forward.

    A transfer has two stages: "Compressing objects", counted as the first
    20%, and the writing or receiving stage, counted as the remaining 80%.
    """

    def __init__(self, on_progress: Optional[Callable[[SyncProgress], None]] = None):
        self.on_progress = on_progress
        self.percentage = 0.0
        self.speed = 0.0

    def parse(self, line: str) -> Optional[SyncProgress]:
        """Return the overall progress a line stands for, or None if it is not a progress line."""
        match = _PERCENTAGE_RE.search(line)
        if not match:
            return None

        number = _to_float(match.group(1), "progress")
        stage = line.strip()
        if stage.startswith("remote:"):
            stage = stage[len("remote:") :].lstrip()

        if stage.startswith("Compressing"):
            percentage = number / 100 * COMPRESSING_SHARE
        else:
            percentage = number / 100 * (100 - COMPRESSING_SHARE) + COMPRESSING_SHARE

        speed = 0.0
        speed_match = _SPEED_RE.search(line)
        if speed_match:
            speed = _to_float(speed_match.group(1), "speed") * _UNIT_FACTORS[speed_match.group(2)]

        return SyncProgress(percentage=min(percentage, 100.0), speed=speed)

    def feed(self, line: str) -> bool:
        """Consume a line; returns True if it was a progress line."""
        progress = self.parse(line)
        if progress is None:
            return False

        if progress.percentage > self.percentage:
            self.percentage = progress.percentage
            self.speed = progress.speed
            if self.on_progress:
                self.on_progress(progress)

        return True


def _to_float(token: str, what: str) -> float:
    try:
        return float(token)
    except ValueError:
        logger.info('Error parsing %s: "%s"', what, token)
        return 0.0
