"""Admission and status tests for the job orchestrator."""

from __future__ import annotations

import unittest

from codereel.adapters.credits import InMemoryCreditLedger
from codereel.adapters.media import build_mock_collaborators
from codereel.errors import AdmissionError, ApiError
from codereel.repositories.memory import InMemoryStore
from codereel.schemas.job import JobKind, JobStatus, SubmitJobOptions
from codereel.services.job_queue import JobQueue
from codereel.services.lifecycle import JobLifecycleManager
from codereel.services.notifications import NotificationHub
from codereel.services.orchestrator import JobOrchestrator, derive_title
from codereel.services.pipeline import PipelineExecutor

_COSTS = {JobKind.VIDEO: 2, JobKind.ANIMATION: 2, JobKind.AUDIO: 1}


class DeriveTitleTests(unittest.TestCase):
    def test_explicit_title_wins(self) -> None:
        self.assertEqual(derive_title("print('hi')", SubmitJobOptions(title="  Greeting  ")), "Greeting")

    def test_long_script_is_truncated_to_five_words(self) -> None:
        title = derive_title("for item in items: print(item)\nreturn total", SubmitJobOptions())
        self.assertEqual(title, "for item in items: print(item)...")

    def test_short_script_is_used_whole(self) -> None:
        self.assertEqual(derive_title("print('hi')", SubmitJobOptions()), "print('hi')")


class JobOrchestratorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.lifecycle = JobLifecycleManager(self.store, NotificationHub())
        self.collaborators = build_mock_collaborators()
        self.queue = JobQueue(PipelineExecutor(self.lifecycle, self.collaborators), concurrency=2)
        self.ledger = InMemoryCreditLedger(trial_credits=0, balances={"owner-1": 10, "owner-poor": 1})
        self.orchestrator = JobOrchestrator(
            lifecycle=self.lifecycle,
            ledger=self.ledger,
            queue=self.queue,
            costs=_COSTS,
        )

    async def asyncTearDown(self) -> None:
        await self.queue.stop()

    async def test_submit_reserves_credit_and_queues_job(self) -> None:
        response = await self.orchestrator.submit(owner_id="owner-1", script="print('hi')", kind="video")

        self.assertEqual(response.status, JobStatus.QUEUED)
        self.assertEqual(response.credits_deducted, 2)
        self.assertEqual(response.remaining_credits, 8)
        self.assertEqual(self.ledger.balance_of("owner-1"), 8)
        self.assertEqual(self.queue.backlog, 1)
        self.assertEqual(self.store.jobs[response.job_id].owner_id, "owner-1")
        self.assertEqual(
            set(response.to_wire()),
            {"jobId", "status", "title", "creditsDeducted", "remainingCredits"},
        )

    async def test_insufficient_credit_creates_no_job(self) -> None:
        with self.assertRaises(AdmissionError) as context:
            await self.orchestrator.submit(owner_id="owner-poor", script="print('hi')", kind=JobKind.ANIMATION)

        error = context.exception
        self.assertEqual(error.status_code, 402)
        self.assertEqual(error.payload.code, "INSUFFICIENT_CREDIT")
        self.assertEqual(error.payload.message, "Insufficient credits for animation generation")
        self.assertEqual(error.payload.details, {"required": 2})
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self.queue.backlog, 0)
        self.assertEqual(self.ledger.balance_of("owner-poor"), 1)

    async def test_cheaper_kind_is_admitted_on_a_small_balance(self) -> None:
        response = await self.orchestrator.submit(owner_id="owner-poor", script="print('hi')", kind="audio")

        self.assertEqual(response.credits_deducted, 1)
        self.assertEqual(response.remaining_credits, 0)

    async def test_invalid_input_is_rejected_before_reserving_credit(self) -> None:
        cases = (
            ({"owner_id": "  ", "script": "print('hi')", "kind": "video"}, "ownerId"),
            ({"owner_id": "owner-1", "script": "   ", "kind": "video"}, "script"),
            ({"owner_id": "owner-1", "script": "print('hi')", "kind": "podcast"}, "kind"),
            (
                {
                    "owner_id": "owner-1",
                    "script": "print('hi')",
                    "kind": "video",
                    "options": {"renderVersion": "v9"},
                },
                "options",
            ),
        )
        for kwargs, field in cases:
            with self.subTest(field=field):
                with self.assertRaises(AdmissionError) as context:
                    await self.orchestrator.submit(**kwargs)

                self.assertEqual(context.exception.status_code, 400)
                self.assertEqual(context.exception.payload.code, "INVALID_INPUT")
                self.assertEqual(context.exception.payload.details, {"field": field})

        self.assertEqual(self.ledger.reservation_count, 0)
        self.assertEqual(self.store.jobs, {})

    async def test_status_of_unknown_job_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as context:
            self.orchestrator.get_status("job-missing")

        self.assertEqual(context.exception.status_code, 404)
        self.assertEqual(context.exception.payload.code, "RESOURCE_NOT_FOUND")

    async def test_submitted_jobs_run_to_completion(self) -> None:
        responses = [
            await self.orchestrator.submit(owner_id="owner-1", script="print('hi')", kind=kind)
            for kind in ("video", "animation", "audio")
        ]
        queued = self.orchestrator.get_status(responses[0].job_id)
        self.assertEqual(queued.status, JobStatus.QUEUED)
        self.assertFalse(queued.ready)

        await self.queue.start()
        await self.queue.drain()

        for response in responses:
            view = self.orchestrator.get_status(response.job_id)
            self.assertEqual(view.status, JobStatus.COMPLETED)
            self.assertTrue(view.ready)
            self.assertEqual(view.progress, 100)
            self.assertIsNotNone(view.result_ref)
            self.assertIsNone(view.error)
        self.assertEqual(self.ledger.balance_of("owner-1"), 5)

    async def test_failed_job_reports_error_and_is_not_ready(self) -> None:
        self.collaborators.renderer.failure_message = "Renderer crashed"
        response = await self.orchestrator.submit(owner_id="owner-1", script="print('hi')", kind="video")

        await self.queue.start()
        await self.queue.drain()

        view = self.orchestrator.get_status(response.job_id)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertFalse(view.ready)
        self.assertEqual(view.error, "Renderer crashed")
        self.assertIsNone(view.result_ref)
        wire = view.to_wire()
        self.assertNotIn("resultRef", wire)
        self.assertEqual(wire["error"], "Renderer crashed")


if __name__ == "__main__":
    unittest.main()
