"""
Previous Session History

Looks up the stories of earlier sessions in a campaign so the story
generator can keep narrative threads continuous.
"""

import logging
from typing import List, Optional

from ..config import settings
from ..store import DocumentStore
from .models import JobKey, SessionSummary

logger = logging.getLogger(__name__)


class PreviousSessionRepository:
    def __init__(self, store: DocumentStore, limit: Optional[int] = None):
        self.store = store
        self.limit = limit or settings.previous_sessions_limit

    async def fetch(self, campaign_id: str, before_session: str) -> List[SessionSummary]:
        """
        Return stories of sessions dated before ``before_session``.

        Args:
            campaign_id: Campaign to search
            before_session: Session id whose ``sessionDate`` is the cut-off

        Returns:
            At most ``limit`` summaries with a story, older-first. Empty
            when the current session has no date.
        """
        key = JobKey(campaign_id=campaign_id, session_id=before_session)
        current = await self.store.get(key.document_path) or {}
        session_date = current.get("sessionDate")
        if not session_date:
            logger.debug(f"Session {key} has no sessionDate, skipping previous sessions")
            return []

        rows = await self.store.query(
            key.sessions_collection,
            filters=[("sessionDate", "<", session_date)],
            order_by="sessionDate",
        )

        summaries = [
            SessionSummary(
                session_id=doc_id,
                title=data.get("title") or "",
                session_date=data.get("sessionDate"),
                content=data["content"],
            )
            for doc_id, data in rows
            if doc_id != before_session and (data.get("content") or "").strip()
        ]
        summaries = summaries[-self.limit:]

        logger.info(f"Loaded {len(summaries)} previous session stories for {key}")
        return summaries
