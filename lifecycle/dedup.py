"""
Duplicate-lead consolidation by phone.
"""

import logging
from typing import Optional

from normalization.phone import phone_suffix

logger = logging.getLogger(__name__)


async def consolidate_duplicate_leads_by_phone(store, phone: str, context: str) -> Optional[str]:
    """
    Return the canonical lead id for ``phone``, merging duplicates into it.

    The oldest lead (ties broken by id) is canonical. Follow-ups and site
    visits of the others are re-pointed to it and the others are deleted.
    Returns None when no lead has this phone.
    """
    leads = await store.leads.list_by_phone(phone)
    if not leads:
        return None

    canonical_id = leads[0].id
    duplicate_ids = [lead.id for lead in leads[1:]]
    if not duplicate_ids:
        return canonical_id

    moved_follow_ups, moved_visits, deleted = await store.leads.merge_into(canonical_id, duplicate_ids)
    logger.info(
        f"Consolidated {deleted} duplicate lead(s) ({context})",
        extra={
            "lead_id": canonical_id,
            "phone_suffix": phone_suffix(phone),
            "follow_ups_moved": moved_follow_ups,
            "site_visits_moved": moved_visits,
        },
    )
    return canonical_id
