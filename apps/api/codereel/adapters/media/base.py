"""Media collaborator interfaces consumed by the pipeline."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class PhaseError(Exception):
    """Raised by a collaborator when its pipeline phase cannot produce output."""

    phase = "unknown"


class InterpretationError(PhaseError):
    phase = "interpretation"


class SynthesisError(PhaseError):
    phase = "synthesis"


class RenderError(PhaseError):
    phase = "rendering"


class StorageError(PhaseError):
    phase = "storage"


@dataclass(frozen=True, slots=True)
class Interpretation:
    narration_text: str
    plan: dict[str, Any] | None = None


class ScriptInterpreter(ABC):
    @abstractmethod
    async def interpret_script(self, script: str, *, with_plan: bool) -> Interpretation:
        """Produce narration text and, when requested, a structured animation plan."""


class SpeechSynthesizer(ABC):
    @abstractmethod
    async def synthesize_speech(self, text: str) -> bytes:
        """Return encoded audio for the narration text."""


class VideoRenderer(ABC):
    @abstractmethod
    async def render_video(self, source: dict[str, Any] | str, audio: bytes) -> bytes:
        """Render an animation plan (or the raw script) over the audio track."""


class ArtifactStore(ABC):
    @abstractmethod
    async def persist_artifact(
        self,
        *,
        job_id: str,
        owner_id: str,
        data: bytes,
        duration_seconds: int,
        content_type: str,
    ) -> str:
        """Persist the final artifact and return an opaque result reference."""


@dataclass(slots=True)
class MediaCollaborators:
    interpreter: ScriptInterpreter
    synthesizer: SpeechSynthesizer
    renderer: VideoRenderer
    store: ArtifactStore


__all__ = [
    "ArtifactStore",
    "Interpretation",
    "InterpretationError",
    "MediaCollaborators",
    "PhaseError",
    "RenderError",
    "ScriptInterpreter",
    "SpeechSynthesizer",
    "StorageError",
    "SynthesisError",
    "VideoRenderer",
]
