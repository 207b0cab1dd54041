"""Podcast Ad Orchestrator - Job API service.

FastAPI service for job intake, job inspection/cancellation and provider callbacks.
"""

__all__: list[str] = []
