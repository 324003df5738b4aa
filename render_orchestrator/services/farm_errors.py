"""Classify render farm rejections from their message text.

The farm reports capacity problems only as human-readable text, so the
patterns here are an unversioned contract. When a limit cannot be parsed the
launcher falls back to halving its worker ceiling.
"""

import re
from dataclasses import dataclass
from enum import Enum

from render_orchestrator.exceptions import RenderFarmError


class RejectionKind(Enum):
    WORKER_LIMIT = "worker_limit"
    THROTTLED = "throttled"
    FATAL = "fatal"


@dataclass(frozen=True)
class FarmRejection:
    kind: RejectionKind
    enforced_limit: int | None = None
    requested_count: int | None = None

    @property
    def retryable(self) -> bool:
        return self.kind is not RejectionKind.FATAL


_WORKER = r"(?:functions?|lambdas?|workers?|invocations?|chunks?)"

# "... would cause 884 functions to be spawned ... limit this amount to 200"
_WORKER_LIMIT_PATTERN = re.compile(
    rf"would\s+(?:cause|spawn|create|need)\s+\d+\s+{_WORKER}"
    rf"|\b{_WORKER}\s+to\s+(?:be\s+)?spawn"
    rf"|too\s+many\s+{_WORKER}",
    re.IGNORECASE,
)

_ENFORCED_LIMIT_PATTERNS = [
    re.compile(r"limit\s+(?:this|the)\s+(?:amount|number)\s+to\s+(\d+)", re.IGNORECASE),
    re.compile(r"maximum\s+(?:of|is)\s+(\d+)", re.IGNORECASE),
    re.compile(r"limit\s+(?:of|is)\s+(\d+)", re.IGNORECASE),
    re.compile(r"at\s+most\s+(\d+)", re.IGNORECASE),
]

_REQUESTED_COUNT_PATTERN = re.compile(
    r"would\s+(?:cause|spawn|create|need)\s+(\d+)", re.IGNORECASE
)

_THROTTLE_PATTERN = re.compile(
    r"rate\s*exceeded|throttl|too\s*many\s*requests|concurrent\s*invocation"
    r"|concurrency\s*limit|reserved\s*concurrency|rate\s*limit",
    re.IGNORECASE,
)


def parse_enforced_limit(message: str) -> int | None:
    for pattern in _ENFORCED_LIMIT_PATTERNS:
        match = pattern.search(message)
        if match:
            return int(match.group(1))
    return None


def parse_requested_count(message: str) -> int | None:
    match = _REQUESTED_COUNT_PATTERN.search(message)
    return int(match.group(1)) if match else None


def classify_rejection(error: RenderFarmError) -> FarmRejection:
    message = error.message or ""

    # Worker-limit text can also mention the account concurrency limit,
    # so it is matched before throttling.
    if _WORKER_LIMIT_PATTERN.search(message):
        return FarmRejection(
            kind=RejectionKind.WORKER_LIMIT,
            enforced_limit=parse_enforced_limit(message),
            requested_count=parse_requested_count(message),
        )

    if error.farm_status == 429 or _THROTTLE_PATTERN.search(message):
        return FarmRejection(kind=RejectionKind.THROTTLED)

    return FarmRejection(kind=RejectionKind.FATAL)
