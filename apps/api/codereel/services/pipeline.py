"""Background pipeline: interpretation, speech synthesis, rendering and storage."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable
from typing import TypeVar

from codereel.adapters.media import InterpretationError, MediaCollaborators, PhaseError, SynthesisError
from codereel.repositories.memory import JobRecord
from codereel.schemas.job import JobKind
from codereel.services.lifecycle import JobLifecycleManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_AUDIO_BITRATE = 128_000

# Progress values are cosmetic; they only need to increase across boundaries.
_PROGRESS_AFTER_INTERPRETATION = 20
_PROGRESS_AFTER_SYNTHESIS = 45
_PROGRESS_AFTER_RENDERING = 75
_PROGRESS_AFTER_STORAGE = 95


class PhaseTimeoutError(PhaseError):
    """Synthetic failure raised when a phase exceeds the configured timeout."""


def estimate_audio_duration(byte_length: int, bitrate: int = DEFAULT_AUDIO_BITRATE) -> int:
    """Seconds of audio at a constant bitrate, rounded half up."""
    return math.floor(byte_length * 8 / bitrate + 0.5)


def requires_plan(job: JobRecord) -> bool:
    if job.kind is JobKind.ANIMATION:
        return True
    return job.kind is JobKind.VIDEO and job.options.render_version == "v2"


class PipelineExecutor:
    def __init__(
        self,
        lifecycle: JobLifecycleManager,
        collaborators: MediaCollaborators,
        *,
        assumed_audio_bitrate: int = DEFAULT_AUDIO_BITRATE,
        phase_timeout_seconds: float | None = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._media = collaborators
        self._bitrate = assumed_audio_bitrate
        self._phase_timeout = phase_timeout_seconds

    async def run(self, job_id: str) -> None:
        """Drive one job to a terminal state; failures end the job and never propagate."""
        job = self._lifecycle.get_job(job_id)
        if job is None:
            logger.warning("pipeline.job_missing job_id=%s", job_id)
            return

        try:
            if not await self._lifecycle.mark_generating(job_id):
                return
            result_ref, duration_seconds = await self._execute(job)
            await self._lifecycle.complete(job_id, result_ref, duration_seconds)
        except Exception as exc:
            error = str(exc).strip() or type(exc).__name__
            logger.warning(
                "pipeline.phase_failed job_id=%s phase=%s error_type=%s",
                job_id,
                getattr(exc, "phase", "internal"),
                type(exc).__name__,
            )
            await self._lifecycle.fail(job_id, error)

    async def _execute(self, job: JobRecord) -> tuple[str, int]:
        with_plan = requires_plan(job)
        interpretation = await self._call_phase(
            "interpretation",
            self._media.interpreter.interpret_script(job.script, with_plan=with_plan),
        )
        if with_plan and interpretation.plan is None:
            raise InterpretationError("Animation plan missing from script interpretation")
        await self._lifecycle.update_progress(job.id, _PROGRESS_AFTER_INTERPRETATION, "Narration ready")

        audio = await self._call_phase(
            "synthesis",
            self._media.synthesizer.synthesize_speech(interpretation.narration_text),
        )
        if not audio:
            raise SynthesisError("Speech synthesis returned no audio")
        await self._lifecycle.update_progress(job.id, _PROGRESS_AFTER_SYNTHESIS, "Narration audio ready")

        if job.kind is JobKind.AUDIO:
            artifact, content_type = audio, "audio/mpeg"
        else:
            source = interpretation.plan if with_plan else job.script
            artifact = await self._call_phase("rendering", self._media.renderer.render_video(source, audio))
            content_type = "video/mp4"
            await self._lifecycle.update_progress(job.id, _PROGRESS_AFTER_RENDERING, "Rendering finished")

        duration_seconds = estimate_audio_duration(len(audio), self._bitrate)
        result_ref = await self._call_phase(
            "storage",
            self._media.store.persist_artifact(
                job_id=job.id,
                owner_id=job.owner_id,
                data=artifact,
                duration_seconds=duration_seconds,
                content_type=content_type,
            ),
        )
        await self._lifecycle.update_progress(job.id, _PROGRESS_AFTER_STORAGE, "Stored")
        return result_ref, duration_seconds

    async def _call_phase(self, phase: str, call: Awaitable[T]) -> T:
        if self._phase_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self._phase_timeout)
        except TimeoutError as exc:
            error = PhaseTimeoutError(f"{phase} phase timed out after {self._phase_timeout:g}s")
            error.phase = phase
            raise error from exc


__all__ = ["PhaseTimeoutError", "PipelineExecutor", "estimate_audio_duration", "requires_plan"]
