# util/types.py
from typing import Any, Dict, NotRequired, Optional, TypedDict


# Flow: Narrow types for progress events and raw classifier output.

# Raw classifier body: category -> score or nested {sub-score: value}.
ClassifierScores = Dict[str, Any]

# None marks a frame whose classification errored.
FrameResult = Optional[ClassifierScores]


class ProgressPayload(TypedDict):
    progress: int
    status: str
    sensitivity: NotRequired[str]
