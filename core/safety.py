# core/safety.py
import logging
from typing import Any, Final, Iterable, List, Mapping, Tuple
from model.video import Sensitivity
from util.types import FrameResult

logger = logging.getLogger(__name__)

SAFE_FLOOR: Final[float] = 0.5
RISK_CEILING: Final[float] = 0.5

# (category, sub-score or None for flat scores, comparison)
# A low nudity "safe" score flags; every other score flags when high.
RULES: Final[Tuple[Tuple[str, str | None, str], ...]] = (
    ("nudity", "safe", "below"),
    ("weapon", None, "above"),
    ("alcohol", None, "above"),
    ("drugs", None, "above"),
    ("offensive", "prob", "above"),
    ("gore", "prob", "above"),
)


def _score(result: Mapping[str, Any], category: str, sub: str | None) -> float | None:
    value: Any = result.get(category)
    if sub is not None:
        value = value.get(sub) if isinstance(value, Mapping) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def frame_triggers(result: FrameResult) -> List[str]:
    """Names of the rules one frame trips, e.g. ["nudity.safe", "gore.prob"]."""
    if not result:
        return []
    hits: List[str] = []
    for category, sub, direction in RULES:
        score = _score(result, category, sub)
        if score is None:
            continue
        tripped = score < SAFE_FLOOR if direction == "below" else score > RISK_CEILING
        if tripped:
            hits.append(f"{category}.{sub}" if sub else category)
    return hits


def aggregate(results: Iterable[FrameResult]) -> Sensitivity:
    """
    flagged if any frame trips any rule; otherwise safe.
    Errored frames (None) and missing categories never trip; no frames at all is safe.
    """
    for i, result in enumerate(results):
        hits = frame_triggers(result)
        if hits:
            logger.info("safety.flagged frame=%d rules=%s", i, ",".join(hits))
            return Sensitivity.flagged
    return Sensitivity.safe
