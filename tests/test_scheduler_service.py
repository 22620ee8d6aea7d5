import pytest

from iptv_catalog.services.scheduler_service import RevalidationScheduler


class RecordingOrchestrator:
    def __init__(self, fail: bool = False):
        self.calls: list[dict] = []
        self.fail = fail

    async def refresh(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail:
            raise RuntimeError("boom")


class TestRevalidationScheduler:
    """Tests for the periodic revalidation job"""

    async def test_start_and_shutdown(self):
        scheduler = RevalidationScheduler(RecordingOrchestrator(), "0 */6 * * *")

        scheduler.start()
        try:
            assert scheduler.running is True
            assert scheduler.get_next_run_time() is not None
        finally:
            scheduler.shutdown()

        assert scheduler.running is False
        assert scheduler.get_next_run_time() is None

    async def test_invalid_cron_is_rejected(self):
        scheduler = RevalidationScheduler(RecordingOrchestrator(), "not a cron")

        with pytest.raises(ValueError):
            scheduler.start()

    async def test_job_runs_background_refresh(self):
        orchestrator = RecordingOrchestrator()

        await RevalidationScheduler(orchestrator, "0 */6 * * *")._revalidate_job()

        assert orchestrator.calls == [{"background": True}]

    async def test_job_errors_are_logged_not_raised(self):
        orchestrator = RecordingOrchestrator(fail=True)

        await RevalidationScheduler(orchestrator, "0 */6 * * *")._revalidate_job()

        assert len(orchestrator.calls) == 1
