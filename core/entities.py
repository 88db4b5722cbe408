# core/entities.py
from dataclasses import dataclass


@dataclass(frozen=True)
class FrameSample:
    """
    One still frame written to disk for classification.

    Owned by the pipeline; the file is removed right after its classification attempt.
    """

    index: int  # 0-based position in the sample set
    path: str
    timestamp: float  # seconds into the source


@dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0
