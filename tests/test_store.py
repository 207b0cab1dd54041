"""Tests for the job store primitives.

Covers create/get, set-once component merges, guarded transitions,
concurrent merges and the stale-job sweep helpers.
"""

import json
import threading
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.jobs import (
    InvalidTransitionError,
    JobAlreadyExistsError,
    JobNotFoundError,
    UnknownComponentError,
    UnknownJobTypeError,
)
from app.models import GenerationJob, JobComponent, utc_now
from app.store import (
    create_job,
    expire_stale_jobs,
    find_stale_running_jobs,
    get_job,
    merge_component,
    record_component_failure,
    transition_job,
)
from tests.conftest import SAMPLE_INPUT

URL_A = "https://media.example.com/a.mp3"
URL_B = "https://media.example.com/b.m4a"


class TestCreateAndGet:
    """Tests for create_job / get_job."""

    def test_create_then_get_is_running_and_empty(self, session_factory):
        session = session_factory()
        try:
            created = create_job(session, "user-1", "podcastAd", SAMPLE_INPUT)
            session.commit()

            job = get_job(session, created.job_id)
            assert job.status == "running"
            assert job.components == {}
            assert job.output is None
            assert job.owner_id == "user-1"
            assert job.job_type == "podcastAd"
            assert job.input == SAMPLE_INPUT
            assert job.created_at.tzinfo is not None
            assert len(job.job_id) == 32
        finally:
            session.close()

    def test_create_with_explicit_id(self, session_factory):
        session = session_factory()
        try:
            created = create_job(session, "user-1", "podcastAd", {}, job_id="J1")
            session.commit()
            assert created.job_id == "J1"
            assert get_job(session, "J1").status == "running"
        finally:
            session.close()

    def test_duplicate_id_raises_already_exists(self, session_factory, make_job):
        make_job(job_id="J1")

        session = session_factory()
        try:
            with pytest.raises(JobAlreadyExistsError):
                create_job(session, "user-2", "podcastAd", {}, job_id="J1")

            # Original job untouched
            assert get_job(session, "J1").owner_id == "user-1"
        finally:
            session.close()

    def test_unknown_type_rejected(self, session_factory):
        session = session_factory()
        try:
            with pytest.raises(UnknownJobTypeError):
                create_job(session, "user-1", "jingle", {})
            count = session.execute(select(func.count()).select_from(GenerationJob)).scalar()
            assert count == 0
        finally:
            session.close()

    def test_get_unknown_raises_not_found(self, session_factory):
        session = session_factory()
        try:
            with pytest.raises(JobNotFoundError):
                get_job(session, "ghost")
        finally:
            session.close()

    def test_get_is_owner_scoped(self, session_factory, make_job):
        job_id = make_job(owner_id="user-1")

        session = session_factory()
        try:
            assert get_job(session, job_id, owner_id="user-1").job_id == job_id
            with pytest.raises(JobNotFoundError):
                get_job(session, job_id, owner_id="user-2")
        finally:
            session.close()


class TestMergeComponent:
    """Tests for set-once component merges."""

    @pytest.mark.parametrize(
        "first,second",
        [("music", "voiceOver"), ("voiceOver", "music")],
    )
    def test_both_components_satisfy_job_in_either_order(
        self, session_factory, make_job, first, second
    ):
        job_id = make_job()
        session = session_factory()
        try:
            outcome1 = merge_component(session, job_id, first, URL_A)
            session.commit()
            assert outcome1.applied
            assert not outcome1.job_satisfied

            outcome2 = merge_component(session, job_id, second, URL_B)
            session.commit()
            assert outcome2.applied
            assert outcome2.job_satisfied
        finally:
            session.close()

    def test_single_component_leaves_job_running(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            merge_component(session, job_id, "music", URL_A)
            session.commit()

            job = get_job(session, job_id)
            assert job.status == "running"
            assert job.components["music"].url == URL_A
            assert job.missing_components == ("voiceOver",)
        finally:
            session.close()

    @pytest.mark.parametrize("second_url", [URL_A, "https://media.example.com/other.mp3"])
    def test_duplicate_merge_is_noop(self, session_factory, make_job, second_url):
        job_id = make_job()
        session = session_factory()
        try:
            merge_component(session, job_id, "music", URL_A, provider_request_id="run-1")
            session.commit()
            before = get_job(session, job_id)

            outcome = merge_component(session, job_id, "music", second_url, "run-2")
            session.commit()
            after = get_job(session, job_id)

            assert not outcome.applied
            assert not outcome.job_satisfied
            assert after == before
            rows = session.execute(
                select(func.count()).select_from(JobComponent).where(JobComponent.job_id == job_id)
            ).scalar()
            assert rows == 1
        finally:
            session.close()

    def test_duplicate_of_last_component_does_not_resatisfy(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            merge_component(session, job_id, "music", URL_A)
            assert merge_component(session, job_id, "voiceOver", URL_B).job_satisfied
            session.commit()

            assert not merge_component(session, job_id, "voiceOver", URL_B).job_satisfied
        finally:
            session.close()

    def test_merge_on_terminal_job_not_applied(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            transition_job(session, job_id, "canceled")
            session.commit()

            outcome = merge_component(session, job_id, "music", URL_A)
            session.commit()

            assert not outcome.applied
            assert get_job(session, job_id).components == {}
        finally:
            session.close()

    def test_unknown_job_raises_and_creates_nothing(self, session_factory):
        session = session_factory()
        try:
            with pytest.raises(JobNotFoundError):
                merge_component(session, "ghost", "music", URL_A)
            session.rollback()

            jobs = session.execute(select(func.count()).select_from(GenerationJob)).scalar()
            comps = session.execute(select(func.count()).select_from(JobComponent)).scalar()
            assert jobs == 0
            assert comps == 0
        finally:
            session.close()

    def test_unknown_component_raises(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            with pytest.raises(UnknownComponentError):
                merge_component(session, job_id, "jingle", URL_A)
        finally:
            session.close()

    def test_empty_url_rejected(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            with pytest.raises(ValueError):
                merge_component(session, job_id, "music", "  ")
        finally:
            session.close()

    def test_failure_then_success_is_duplicate(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            assert record_component_failure(session, job_id, "music", "provider exploded")
            session.commit()

            outcome = merge_component(session, job_id, "music", URL_A)
            assert not outcome.applied

            job = get_job(session, job_id)
            assert job.components["music"].status == "failed"
            assert job.components["music"].error_message == "provider exploded"
        finally:
            session.close()


class TestConcurrentMerges:
    """Concurrent merges must never lose an update."""

    def test_parallel_merges_of_different_components(self, session_factory, make_job):
        for _ in range(5):
            job_id = make_job()
            barrier = threading.Barrier(2)
            outcomes = {}
            errors = []

            def worker(component, url, job_id=job_id, barrier=barrier, outcomes=outcomes):
                session = session_factory()
                try:
                    barrier.wait()
                    outcomes[component] = merge_component(session, job_id, component, url)
                    session.commit()
                except Exception as e:  # pragma: no cover - surfaced by assertion
                    session.rollback()
                    errors.append(e)
                finally:
                    session.close()

            threads = [
                threading.Thread(target=worker, args=("music", URL_A)),
                threading.Thread(target=worker, args=("voiceOver", URL_B)),
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert errors == []
            session = session_factory()
            try:
                job = get_job(session, job_id)
            finally:
                session.close()

            assert job.components["music"].url == URL_A
            assert job.components["voiceOver"].url == URL_B
            # Exactly one of the two merges observed the full set
            assert sum(o.job_satisfied for o in outcomes.values()) == 1

    def test_parallel_duplicate_merges_apply_once(self, session_factory, make_job):
        job_id = make_job()
        barrier = threading.Barrier(4)
        applied = []

        def worker(n):
            session = session_factory()
            try:
                barrier.wait()
                outcome = merge_component(session, job_id, "music", f"{URL_A}?n={n}")
                session.commit()
                applied.append(outcome.applied)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(applied) == [False, False, False, True]


class TestTransitionJob:
    """Tests for guarded status transitions."""

    def test_first_terminal_transition_wins(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            assert transition_job(session, job_id, "completed", output={"tracks": []})
            session.commit()

            assert not transition_job(session, job_id, "failed", error_code="JOB_TIMEOUT")
            session.commit()

            job = get_job(session, job_id)
            assert job.status == "completed"
            assert job.output == {"tracks": []}
            assert job.error_code is None
            assert job.finished_at is not None
        finally:
            session.close()

    def test_cannot_move_back_to_running(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            with pytest.raises(InvalidTransitionError):
                transition_job(session, job_id, "running")
        finally:
            session.close()

    def test_unknown_job(self, session_factory):
        session = session_factory()
        try:
            with pytest.raises(JobNotFoundError):
                transition_job(session, "ghost", "failed")
        finally:
            session.close()

    def test_output_stored_as_json(self, session_factory, make_job):
        job_id = make_job()
        session = session_factory()
        try:
            transition_job(session, job_id, "completed", output={"jobId": job_id})
            session.commit()
            row = session.execute(
                select(GenerationJob).where(GenerationJob.job_id == job_id)
            ).scalar_one()
            assert json.loads(row.output_json) == {"jobId": job_id}
        finally:
            session.close()


class TestStaleJobs:
    """Tests for the supervisory sweep helpers."""

    def test_finds_only_old_running_jobs(self, session_factory, make_job):
        old_id = make_job()
        done_id = make_job()

        session = session_factory()
        try:
            transition_job(session, done_id, "completed")
            session.commit()

            future = utc_now() + timedelta(seconds=120)
            assert find_stale_running_jobs(session, 60, now=future) == [old_id]
            assert find_stale_running_jobs(session, 600, now=future) == []
        finally:
            session.close()

    def test_expire_fails_stale_jobs_with_timeout_code(self, session_factory, make_job):
        job_id = make_job()

        session = session_factory()
        try:
            merge_component(session, job_id, "music", URL_A)
            session.commit()

            expired = expire_stale_jobs(session, 60, now=utc_now() + timedelta(seconds=120))
            session.commit()

            assert expired == [job_id]
            job = get_job(session, job_id)
            assert job.status == "failed"
            assert job.error_code == "JOB_TIMEOUT"
            assert "voiceOver" in job.error_message
            # Partial results stay inspectable
            assert job.components["music"].url == URL_A
        finally:
            session.close()
