"""Media collaborator adapters."""

from .base import (
    ArtifactStore,
    Interpretation,
    InterpretationError,
    MediaCollaborators,
    PhaseError,
    RenderError,
    ScriptInterpreter,
    SpeechSynthesizer,
    StorageError,
    SynthesisError,
    VideoRenderer,
)
from .mock_media import (
    MockArtifactStore,
    MockScriptInterpreter,
    MockSpeechSynthesizer,
    MockVideoRenderer,
    build_mock_collaborators,
)

__all__ = [
    "ArtifactStore",
    "Interpretation",
    "InterpretationError",
    "MediaCollaborators",
    "MockArtifactStore",
    "MockScriptInterpreter",
    "MockSpeechSynthesizer",
    "MockVideoRenderer",
    "PhaseError",
    "RenderError",
    "ScriptInterpreter",
    "SpeechSynthesizer",
    "StorageError",
    "SynthesisError",
    "VideoRenderer",
    "build_mock_collaborators",
]
