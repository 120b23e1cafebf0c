"""Deterministic media collaborators for local development and tests.

Each mock accepts ``failure_message``; when set, the next call raises the
phase error with that message and the failpoint resets, mirroring a single
transient outage of the real engine.
"""

from __future__ import annotations

import hashlib
from typing import Any
from uuid import uuid4

from codereel.adapters.media.base import (
    ArtifactStore,
    Interpretation,
    InterpretationError,
    MediaCollaborators,
    RenderError,
    ScriptInterpreter,
    SpeechSynthesizer,
    StorageError,
    SynthesisError,
    VideoRenderer,
)

# One second of audio at 128 kbps.
_BYTES_PER_WORD = 16_000
_VIDEO_MAGIC = b"MOCKMP4\x00"


def _consume_failpoint(owner: Any) -> str | None:
    message = owner.failure_message
    owner.failure_message = None
    return message


class MockScriptInterpreter(ScriptInterpreter):
    def __init__(self, failure_message: str | None = None) -> None:
        self.failure_message = failure_message
        self.calls = 0

    async def interpret_script(self, script: str, *, with_plan: bool) -> Interpretation:
        self.calls += 1
        message = _consume_failpoint(self)
        if message is not None:
            raise InterpretationError(message)

        lines = [line.strip() for line in script.splitlines() if line.strip()]
        narration = " ".join(f"Step {index}: {line}." for index, line in enumerate(lines, start=1))
        plan = None
        if with_plan:
            plan = {
                "scenes": [{"id": index, "caption": line} for index, line in enumerate(lines, start=1)],
                "voiceover": {"text": narration},
            }
        return Interpretation(narration_text=narration or script, plan=plan)


class MockSpeechSynthesizer(SpeechSynthesizer):
    def __init__(self, failure_message: str | None = None) -> None:
        self.failure_message = failure_message
        self.calls = 0

    async def synthesize_speech(self, text: str) -> bytes:
        self.calls += 1
        message = _consume_failpoint(self)
        if message is not None:
            raise SynthesisError(message)

        return b"\x00" * (_BYTES_PER_WORD * max(1, len(text.split())))


class MockVideoRenderer(VideoRenderer):
    def __init__(self, failure_message: str | None = None) -> None:
        self.failure_message = failure_message
        self.calls = 0

    async def render_video(self, source: dict[str, Any] | str, audio: bytes) -> bytes:
        self.calls += 1
        message = _consume_failpoint(self)
        if message is not None:
            raise RenderError(message)

        digest = hashlib.sha256(repr(source).encode("utf-8")).digest()
        return _VIDEO_MAGIC + digest + audio


class MockArtifactStore(ArtifactStore):
    def __init__(self, failure_message: str | None = None) -> None:
        self.failure_message = failure_message
        self.artifacts: dict[str, dict[str, Any]] = {}

    async def persist_artifact(
        self,
        *,
        job_id: str,
        owner_id: str,
        data: bytes,
        duration_seconds: int,
        content_type: str,
    ) -> str:
        message = _consume_failpoint(self)
        if message is not None:
            raise StorageError(message)

        result_ref = f"artifact-{uuid4()}"
        self.artifacts[result_ref] = {
            "job_id": job_id,
            "owner_id": owner_id,
            "size": len(data),
            "duration_seconds": duration_seconds,
            "content_type": content_type,
        }
        return result_ref


def build_mock_collaborators() -> MediaCollaborators:
    return MediaCollaborators(
        interpreter=MockScriptInterpreter(),
        synthesizer=MockSpeechSynthesizer(),
        renderer=MockVideoRenderer(),
        store=MockArtifactStore(),
    )


__all__ = [
    "MockArtifactStore",
    "MockScriptInterpreter",
    "MockSpeechSynthesizer",
    "MockVideoRenderer",
    "build_mock_collaborators",
]
