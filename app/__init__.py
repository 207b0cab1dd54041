"""Podcast Ad Orchestrator - Core application modules.

Provides:
- Job types and the job state machine
- SQLite models and the job store primitives
- Generation providers, dispatcher and callback reconciler
"""

__version__ = "0.1.0"
