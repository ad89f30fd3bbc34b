"""Application use cases - Business logic orchestration."""

from scalpgate.application.use_cases.generate_candidate_usecase import CandidateGenerator
from scalpgate.application.use_cases.scheduler_usecase import SignalScheduler

__all__ = [
    "CandidateGenerator",
    "SignalScheduler",
]
