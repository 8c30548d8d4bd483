"""Pipeline Orchestrators - Reconciliation stages across repositories"""

from pipeline.orchestrators.action_inference import ActionInferenceEngine
from pipeline.orchestrators.codification_sync import CodificationSync
from pipeline.orchestrators.date_rollup import update_ordinance_dates_from_meetings
from pipeline.orchestrators.identity_resolver import IdentityResolver
from pipeline.orchestrators.resolution_extractor import ResolutionExtractor
from pipeline.orchestrators.vote_reconciler import VoteReconciler

__all__ = [
    "ActionInferenceEngine",
    "CodificationSync",
    "IdentityResolver",
    "ResolutionExtractor",
    "VoteReconciler",
    "update_ordinance_dates_from_meetings",
]
