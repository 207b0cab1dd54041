"""Podcast Ad Orchestrator - Generation dispatcher.

Starts one provider run per required component of a freshly created job.

Dispatch is fire-and-forget: a provider's result never comes back as a return
value, only through the callback reconciler. A synchronous rejection affects
that component only; sibling components are still dispatched and the job stays
running (the supervisory sweep fails it if no callback ever arrives).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.config import ProviderConfig
from app.jobs import DispatchFailureError
from app.providers import GenerationProvider, GenerationRequest, ProviderAck
from app.store import JobSnapshot

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Per-component outcome of dispatching one job."""

    job_id: str
    started: dict[str, ProviderAck] = field(default_factory=dict)
    failures: dict[str, DispatchFailureError] = field(default_factory=dict)

    @property
    def all_failed(self) -> bool:
        return not self.started and bool(self.failures)

    def as_dict(self) -> dict:
        """Plain-dict form for task results and logs."""
        return {
            "job_id": self.job_id,
            "started": {c: ack.provider_request_id for c, ack in self.started.items()},
            "failed": {c: err.reason for c, err in self.failures.items()},
        }


class GenerationDispatcher:
    """Fans a job out to its generation provider, one run per component."""

    def __init__(self, provider: GenerationProvider, config: ProviderConfig):
        self.provider = provider
        self.config = config

    def build_request(self, job: JobSnapshot, component: str) -> GenerationRequest:
        """Build the provider request for one component of a job."""
        return GenerationRequest(
            job_id=job.job_id,
            component=component,
            params=dict(job.input.get(component) or {}),
            callback_url=self.config.callback_url(job.job_id, component),
        )

    def dispatch(self, job: JobSnapshot) -> DispatchReport:
        """Start a provider run for every required component of the job.

        Components that already have a result are skipped, so re-running
        dispatch for a job does not restart finished work.

        Args:
            job: Snapshot of the job to dispatch.

        Returns:
            DispatchReport with started runs and per-component failures.
        """
        report = DispatchReport(job_id=job.job_id)

        if job.is_terminal:
            logger.info("Job %s is %s, nothing to dispatch", job.job_id, job.status)
            return report

        for component in job.required_components:
            if component in job.components:
                logger.info(
                    "Component already reported, skipping dispatch: job_id=%s, component=%s",
                    job.job_id,
                    component,
                )
                continue

            request = self.build_request(job, component)
            try:
                ack = self.provider.start(request)
            except Exception as e:
                failure = DispatchFailureError(job.job_id, component, str(e) or type(e).__name__)
                report.failures[component] = failure
                logger.warning("%s", failure.message, exc_info=True)
                continue

            report.started[component] = ack
            logger.info(
                "Dispatched component: job_id=%s, component=%s, provider_request_id=%s",
                job.job_id,
                component,
                ack.provider_request_id,
            )

        if report.all_failed:
            logger.error(
                "Every component dispatch failed for job_id=%s; job left running for supervision",
                job.job_id,
            )
        return report
