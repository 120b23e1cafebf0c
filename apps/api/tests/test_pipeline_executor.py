"""Background pipeline tests against the deterministic media collaborators."""

from __future__ import annotations

import asyncio
import unittest

from codereel.adapters.media import (
    Interpretation,
    MediaCollaborators,
    MockArtifactStore,
    MockScriptInterpreter,
    MockSpeechSynthesizer,
    MockVideoRenderer,
    ScriptInterpreter,
    SpeechSynthesizer,
)
from codereel.repositories.memory import InMemoryStore
from codereel.schemas.job import JobKind, JobStatus, SubmitJobOptions
from codereel.services.lifecycle import JobLifecycleManager
from codereel.services.notifications import NotificationHub
from codereel.services.pipeline import PipelineExecutor, estimate_audio_duration
from codereel.services.webhooks import WebhookDispatcher

_SCRIPT = "def add(a, b):\n    return a + b"


class _FakeConnection:
    def __init__(self) -> None:
        self.is_open = True
        self.messages: list[dict] = []

    async def send_json(self, data: dict) -> None:
        self.messages.append(data)


class _PlanlessInterpreter(ScriptInterpreter):
    async def interpret_script(self, script: str, *, with_plan: bool) -> Interpretation:
        return Interpretation(narration_text="Adds two numbers.", plan=None)


class _SlowInterpreter(ScriptInterpreter):
    async def interpret_script(self, script: str, *, with_plan: bool) -> Interpretation:
        await asyncio.sleep(5)
        return Interpretation(narration_text=script, plan=None)


class _SilentSynthesizer(SpeechSynthesizer):
    async def synthesize_speech(self, text: str) -> bytes:
        return b""


class _StalledConnection:
    def __init__(self) -> None:
        self.is_open = True
        self._never = asyncio.Event()

    async def send_json(self, data: dict) -> None:
        await self._never.wait()


class _CapturingRenderer(MockVideoRenderer):
    def __init__(self) -> None:
        super().__init__()
        self.sources: list[object] = []

    async def render_video(self, source, audio: bytes) -> bytes:
        self.sources.append(source)
        return await super().render_video(source, audio)


class PipelineExecutorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.hub = NotificationHub()
        self.lifecycle = JobLifecycleManager(self.store, self.hub)
        self.interpreter = MockScriptInterpreter()
        self.synthesizer = MockSpeechSynthesizer()
        self.renderer = _CapturingRenderer()
        self.artifacts = MockArtifactStore()
        self.subscriber = _FakeConnection()

    def _executor(self, **overrides) -> PipelineExecutor:
        collaborators = MediaCollaborators(
            interpreter=overrides.pop("interpreter", self.interpreter),
            synthesizer=overrides.pop("synthesizer", self.synthesizer),
            renderer=self.renderer,
            store=self.artifacts,
        )
        return PipelineExecutor(self.lifecycle, collaborators, **overrides)

    def _create_job(self, kind: JobKind = JobKind.VIDEO, render_version: str = "v2") -> str:
        record = self.lifecycle.create_job(
            owner_id="owner-1",
            script=_SCRIPT,
            title="def add(a, b):",
            kind=kind,
            options=SubmitJobOptions(render_version=render_version),
        )
        self.hub.subscribe(self.subscriber, record.id)
        return record.id

    async def test_video_job_completes_with_stored_artifact(self) -> None:
        job_id = self._create_job()

        await self._executor().run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.COMPLETED)
        self.assertEqual(record.progress, 100)
        self.assertIn(record.result_ref, self.artifacts.artifacts)
        stored = self.artifacts.artifacts[record.result_ref]
        self.assertEqual(stored["job_id"], job_id)
        self.assertEqual(stored["owner_id"], "owner-1")
        self.assertEqual(stored["content_type"], "video/mp4")
        self.assertEqual(stored["duration_seconds"], record.duration_seconds)
        self.assertEqual(self.renderer.calls, 1)
        self.assertIsInstance(self.renderer.sources[0], dict)

    async def test_v1_video_renders_raw_script(self) -> None:
        job_id = self._create_job(render_version="v1")

        await self._executor().run(job_id)

        self.assertEqual(self.store.jobs[job_id].status, JobStatus.COMPLETED)
        self.assertEqual(self.renderer.sources, [_SCRIPT])

    async def test_animation_job_renders_plan(self) -> None:
        job_id = self._create_job(kind=JobKind.ANIMATION, render_version="v1")

        await self._executor().run(job_id)

        self.assertEqual(self.store.jobs[job_id].status, JobStatus.COMPLETED)
        plan = self.renderer.sources[0]
        self.assertEqual([scene["id"] for scene in plan["scenes"]], [1, 2])
        self.assertIn("voiceover", plan)

    async def test_audio_job_skips_rendering(self) -> None:
        job_id = self._create_job(kind=JobKind.AUDIO)

        await self._executor().run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.COMPLETED)
        self.assertEqual(self.renderer.calls, 0)
        self.assertEqual(self.artifacts.artifacts[record.result_ref]["content_type"], "audio/mpeg")

    async def test_duration_follows_audio_length(self) -> None:
        job_id = self._create_job()

        await self._executor().run(job_id)

        # "Step 1: def add(a, b):. Step 2: return a + b." is eleven words of 16000 bytes each.
        self.assertEqual(self.store.jobs[job_id].duration_seconds, 11)
        self.assertEqual(estimate_audio_duration(16_000 * 10), 10)

    async def test_phase_failures_fail_the_job_without_storing(self) -> None:
        cases = (
            ("interpreter", "Script interpretation service unavailable"),
            ("synthesizer", "Speech synthesis quota exceeded"),
            ("renderer", "Renderer crashed"),
        )
        for attribute, message in cases:
            with self.subTest(phase=attribute):
                self.setUp()
                getattr(self, attribute).failure_message = message
                job_id = self._create_job()

                with self.assertLogs("codereel.services.pipeline", level="WARNING"):
                    await self._executor().run(job_id)

                await self.hub.flush()
                record = self.store.jobs[job_id]
                self.assertEqual(record.status, JobStatus.FAILED)
                self.assertEqual(record.error, message)
                self.assertIsNone(record.result_ref)
                self.assertEqual(self.artifacts.artifacts, {})
                self.assertEqual(self.subscriber.messages[-1], {
                    "type": "error",
                    "jobId": job_id,
                    "error": message,
                    "timestamp": self.subscriber.messages[-1]["timestamp"],
                })

    async def test_storage_failure_fails_the_job(self) -> None:
        self.artifacts.failure_message = "Bucket unavailable"
        job_id = self._create_job()

        await self._executor().run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.FAILED)
        self.assertEqual(record.error, "Bucket unavailable")
        self.assertEqual(self.renderer.calls, 1)

    async def test_missing_plan_fails_the_job(self) -> None:
        job_id = self._create_job(kind=JobKind.ANIMATION)

        await self._executor(interpreter=_PlanlessInterpreter()).run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.FAILED)
        self.assertEqual(record.error, "Animation plan missing from script interpretation")
        self.assertEqual(self.renderer.calls, 0)

    async def test_empty_audio_fails_the_job(self) -> None:
        job_id = self._create_job()

        await self._executor(synthesizer=_SilentSynthesizer()).run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.FAILED)
        self.assertEqual(record.error, "Speech synthesis returned no audio")

    async def test_phase_timeout_fails_the_job(self) -> None:
        job_id = self._create_job()

        with self.assertLogs("codereel.services.pipeline", level="WARNING") as logs:
            await self._executor(interpreter=_SlowInterpreter(), phase_timeout_seconds=0.05).run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.FAILED)
        self.assertEqual(record.error, "interpretation phase timed out after 0.05s")
        self.assertIn("phase=interpretation", logs.output[0])

    async def test_observed_progress_never_decreases_and_ends_in_completed(self) -> None:
        job_id = self._create_job()

        await self._executor().run(job_id)
        await self.hub.flush()

        messages = self.subscriber.messages
        progress = [m["progress"] for m in messages if m["type"] == "progress"]
        self.assertEqual(progress, sorted(progress))
        self.assertEqual(progress[0], 0)
        self.assertEqual(messages[0]["status"], "generating")
        self.assertEqual(messages[-1]["type"], "completed")
        self.assertEqual(sum(1 for m in messages if m["type"] in ("completed", "error")), 1)

    async def test_terminal_job_is_not_rerun(self) -> None:
        job_id = self._create_job()
        executor = self._executor()
        await executor.run(job_id)
        await self.hub.flush()
        messages_before = len(self.subscriber.messages)

        with self.assertLogs("codereel.services.lifecycle", level="WARNING"):
            await executor.run(job_id)
        await self.hub.flush()

        self.assertEqual(self.interpreter.calls, 1)
        self.assertEqual(len(self.subscriber.messages), messages_before)

    async def test_unknown_job_is_logged_and_ignored(self) -> None:
        with self.assertLogs("codereel.services.pipeline", level="WARNING") as logs:
            await self._executor().run("job-missing")

        self.assertIn("pipeline.job_missing", logs.output[0])


    async def test_stalled_subscriber_does_not_stop_the_job(self) -> None:
        self.hub = NotificationHub(send_timeout_seconds=0.2)
        self.lifecycle = JobLifecycleManager(self.store, self.hub)
        job_id = self._create_job(kind=JobKind.AUDIO)
        self.hub.subscribe(_StalledConnection(), job_id)

        await asyncio.wait_for(self._executor().run(job_id), timeout=1)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.COMPLETED)
        self.assertEqual(record.progress, 100)
        with self.assertLogs("codereel.services.notifications", level="WARNING"):
            await asyncio.wait_for(self.hub.flush(), timeout=1)
        self.assertEqual(self.subscriber.messages[-1]["type"], "completed")


    async def test_webhook_with_malformed_url_never_escapes_the_run(self) -> None:
        webhooks = WebhookDispatcher(url="http://hooks.example:abc/x", secret="test-webhook-secret")
        self.lifecycle = JobLifecycleManager(self.store, self.hub, webhooks)
        self.renderer.failure_message = "Renderer crashed"
        job_id = self._create_job()

        with self.assertLogs("codereel.services.webhooks", level="WARNING"):
            await self._executor().run(job_id)

        record = self.store.jobs[job_id]
        self.assertEqual(record.status, JobStatus.FAILED)
        self.assertEqual(record.error, "Renderer crashed")
        self.assertEqual(webhooks.attempt_count, 1)


if __name__ == "__main__":
    unittest.main()
