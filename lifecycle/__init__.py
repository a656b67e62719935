"""
Lead lifecycle: call-ended ingestion, manual leads, site visits, duplicate
consolidation and the follow-up dispatch batch.
"""

from .call_ended import CallEndedProcessor, ProcessedCallEnded
from .dedup import consolidate_duplicate_leads_by_phone
from .dispatch import DispatchBatchProcessor, DispatchSummary
from .manual import ManualLeadInput, ManualLeadResult, ManualLeadService
from .site_visits import SiteVisitInput, SiteVisitResult, SiteVisitService

__all__ = [
    "CallEndedProcessor",
    "ProcessedCallEnded",
    "consolidate_duplicate_leads_by_phone",
    "DispatchBatchProcessor",
    "DispatchSummary",
    "ManualLeadInput",
    "ManualLeadResult",
    "ManualLeadService",
    "SiteVisitInput",
    "SiteVisitResult",
    "SiteVisitService",
]
