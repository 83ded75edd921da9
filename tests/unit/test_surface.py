"""
Unit Tests for the Rendering Surface Boundary
=============================================

Tests for the completion channel, the job back-reference and loop affinity.
"""

import asyncio
import gc
import threading

import pytest

from snippet_renderer.core.errors import SurfaceBusyError
from snippet_renderer.core.rendering.surface import (
    CompletionChannel,
    SurfaceEvent,
    SurfaceEventKind,
)
from snippet_renderer.models.schemas import JobState

from tests.utils.helpers import wait_for_condition
from tests.utils.mocks import FakeSurface


class RecordingJob:
    """Stand-in for a render job that records delivered events."""

    def __init__(self, identifier: str, accept: bool = True):
        self.identifier = identifier
        self.state = JobState.AWAITING_SURFACE_LOAD
        self.accept = accept
        self.events = []
        self.threads = []

    def deliver_surface_event(self, event: SurfaceEvent) -> bool:
        self.events.append(event)
        self.threads.append(threading.get_ident())
        return self.accept


class TestJobBackReference:
    """Test the surface's current job association."""

    def test_attach_and_release(self, fake_surface):
        job = RecordingJob("a")
        fake_surface.attach(job)
        assert fake_surface.current_job is job
        fake_surface.release(job)
        assert fake_surface.current_job is None

    def test_attach_same_job_twice(self, fake_surface):
        job = RecordingJob("a")
        fake_surface.attach(job)
        fake_surface.attach(job)
        assert fake_surface.current_job is job

    def test_attach_while_held_by_other_job(self, fake_surface):
        first, second = RecordingJob("a"), RecordingJob("b")
        fake_surface.attach(first)
        with pytest.raises(SurfaceBusyError, match="'a'"):
            fake_surface.attach(second)
        assert fake_surface.current_job is first

    def test_release_other_job_is_noop(self, fake_surface):
        first, second = RecordingJob("a"), RecordingJob("b")
        fake_surface.attach(first)
        fake_surface.release(second)
        assert fake_surface.current_job is first
        fake_surface.release()
        assert fake_surface.current_job is None

    def test_back_reference_does_not_own_job(self, fake_surface):
        job = RecordingJob("a")
        fake_surface.attach(job)
        del job
        gc.collect()
        assert fake_surface.current_job is None


class TestCompletionChannel:
    """Test serialized delivery of surface events."""

    def test_post_before_start(self):
        channel = CompletionChannel()
        with pytest.raises(RuntimeError, match="not running"):
            channel.post(SurfaceEvent(kind=SurfaceEventKind.LOAD_FINISHED, job=None))

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        channel = CompletionChannel()
        channel.start()
        assert channel.is_running
        await channel.stop()
        assert not channel.is_running

    @pytest.mark.asyncio
    async def test_delivers_and_releases(self, bound_surface, channel):
        job = RecordingJob("a")
        bound_surface.attach(job)
        bound_surface.report_load_finished()

        await wait_for_condition(lambda: len(job.events) == 1)
        assert job.events[0].kind == SurfaceEventKind.LOAD_FINISHED
        assert job.events[0].job is job
        assert bound_surface.current_job is None
        assert channel.delivered == 1

    @pytest.mark.asyncio
    async def test_failure_carries_error(self, bound_surface):
        job = RecordingJob("a")
        bound_surface.attach(job)
        error = RuntimeError("load failed")
        bound_surface.report_load_failed(error)

        await wait_for_condition(lambda: len(job.events) == 1)
        assert job.events[0].kind == SurfaceEventKind.LOAD_FAILED
        assert job.events[0].error is error

    @pytest.mark.asyncio
    async def test_report_from_other_thread(self, bound_surface):
        job = RecordingJob("a")
        bound_surface.attach(job)
        loop_thread = threading.get_ident()

        reporter = threading.Thread(target=bound_surface.report_load_finished)
        reporter.start()
        reporter.join()

        await wait_for_condition(lambda: len(job.events) == 1)
        assert job.threads == [loop_thread]

    @pytest.mark.asyncio
    async def test_stale_event_dropped(self, bound_surface, channel):
        job = RecordingJob("a", accept=False)
        bound_surface.attach(job)
        bound_surface.report_load_finished()

        await wait_for_condition(lambda: channel.dropped == 1)
        assert channel.delivered == 0
        assert bound_surface.current_job is None

    @pytest.mark.asyncio
    async def test_report_for_earlier_job_keeps_current_job(self, bound_surface, channel):
        earlier, current = RecordingJob("earlier", accept=False), RecordingJob("current")
        bound_surface.attach(current)
        bound_surface.report_load_finished(earlier)  # type: ignore[arg-type]

        await wait_for_condition(lambda: channel.dropped == 1)
        assert [event.job for event in earlier.events] == [earlier]
        assert current.events == []
        assert bound_surface.current_job is current

    @pytest.mark.asyncio
    async def test_dispatch_without_start(self):
        with pytest.raises(RuntimeError, match="without a queue"):
            await CompletionChannel()._dispatch()

    @pytest.mark.asyncio
    async def test_event_without_job_dropped(self, bound_surface, channel):
        bound_surface.report_load_finished()
        await wait_for_condition(lambda: channel.dropped == 1)

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self, channel):
        job = RecordingJob("a")
        for kind in (SurfaceEventKind.LOAD_FAILED, SurfaceEventKind.LOAD_FINISHED):
            channel.post(SurfaceEvent(kind=kind, job=job))  # type: ignore[arg-type]

        await wait_for_condition(lambda: len(job.events) == 2)
        assert [event.kind for event in job.events] == [
            SurfaceEventKind.LOAD_FAILED,
            SurfaceEventKind.LOAD_FINISHED,
        ]


class TestSurfaceAffinity:
    """Test marshalling calls onto the surface loop."""

    @pytest.mark.asyncio
    async def test_unbound_surface(self):
        async def noop():
            return None

        with pytest.raises(RuntimeError, match="not bound"):
            await FakeSurface().run_on_surface(noop)

    @pytest.mark.asyncio
    async def test_same_loop_runs_inline(self, bound_surface):
        async def which_loop():
            return asyncio.get_running_loop()

        assert await bound_surface.run_on_surface(which_loop) is asyncio.get_running_loop()

    @pytest.mark.asyncio
    async def test_other_thread_hops_to_surface_loop(self, bound_surface):
        surface_loop = asyncio.get_running_loop()

        async def which_loop(tag):
            return asyncio.get_running_loop(), tag

        def call_from_thread():
            return asyncio.run(bound_surface.run_on_surface(which_loop, "x"))

        loop, tag = await asyncio.to_thread(call_from_thread)
        assert loop is surface_loop
        assert tag == "x"

    @pytest.mark.asyncio
    async def test_errors_propagate_across_threads(self, bound_surface):
        async def fail():
            raise ValueError("surface said no")

        def call_from_thread():
            return asyncio.run(bound_surface.run_on_surface(fail))

        with pytest.raises(ValueError, match="surface said no"):
            await asyncio.to_thread(call_from_thread)
