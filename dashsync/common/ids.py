"""Identifier helpers."""

from __future__ import annotations

import random
import string
from datetime import datetime, timezone

_REPORT_ALPHABET = string.ascii_uppercase + string.digits


def generate_session_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("session-%Y%m%dT%H%M%S%fZ")


def generate_report_id(now: datetime | None = None, rng: random.Random | None = None) -> str:
    now = now or datetime.now(tz=timezone.utc)
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_REPORT_ALPHABET) for _ in range(9))
    return f"RME-{now.year}-{suffix}"
