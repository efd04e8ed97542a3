"""
Campaign Glossary

Loads campaign proper nouns (characters, locations, quests, organisations)
from Kanka and renders them as a reference block for prompts. The block
only helps the models spell names; it must never become story content.
"""

import asyncio
import logging
from typing import List, Optional

import httpx

from ..config import settings
from ..errors import CapabilityUnavailable
from ..store import DocumentStore
from .models import GlossaryContext, GlossaryEntity

logger = logging.getLogger(__name__)

ENTITY_TYPES = ("characters", "locations", "quests", "organisations")

_SECTION_LABELS = {
    "characters": "Characters",
    "locations": "Locations",
    "quests": "Quests",
    "organisations": "Organisations",
}


def build_glossary_block(glossary: Optional[GlossaryContext]) -> str:
    """
    Render the glossary as a labelled prompt block.

    Returns:
        The block, or an empty string when there is nothing to reference
    """
    if glossary is None:
        return ""

    sections = []
    for entity_type in ENTITY_TYPES:
        entities: List[GlossaryEntity] = getattr(glossary, entity_type)
        names = ", ".join(e.name for e in entities if e.name)
        if names:
            sections.append(f"{_SECTION_LABELS[entity_type]}: {names}")

    if not sections:
        return ""

    body = "\n".join(sections)
    return (
        "CAMPAIGN REFERENCE (for name/place accuracy only):\n"
        f"{body}\n\n"
        "Remember: Use this context ONLY to spell names and places correctly "
        "when you hear them. Do not add information that wasn't spoken."
    )


class KankaClient:
    """Minimal async client for the Kanka campaign API."""

    def __init__(
        self,
        api_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_token:
            raise CapabilityUnavailable("Kanka API token is required.")
        self.api_token = api_token
        self.base_url = (base_url or settings.kanka_base_url).rstrip("/")
        self.timeout = timeout or settings.kanka_timeout_seconds
        self._transport = transport

    async def get_all_entities(self, kanka_campaign_id: str) -> GlossaryContext:
        """
        Fetch every glossary entity type for a Kanka campaign.

        Types are fetched concurrently; a type that fails is logged and
        left empty so one broken endpoint does not block the others.
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Accept": "application/json",
            },
        ) as client:
            results = await asyncio.gather(
                *(self._fetch_type(client, kanka_campaign_id, t) for t in ENTITY_TYPES)
            )

        return GlossaryContext(**dict(zip(ENTITY_TYPES, results)))

    async def _fetch_type(
        self,
        client: httpx.AsyncClient,
        kanka_campaign_id: str,
        entity_type: str,
    ) -> List[GlossaryEntity]:
        url = f"{self.base_url}/campaigns/{kanka_campaign_id}/{entity_type}"
        try:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Kanka] Failed to fetch {entity_type}: {e}")
            return []

        return [
            GlossaryEntity(name=item["name"])
            for item in data
            if isinstance(item, dict) and item.get("name")
        ]


class GlossaryLoader:
    """Resolve the glossary for a campaign from its settings document."""

    def __init__(
        self,
        store: DocumentStore,
        api_token: Optional[str] = None,
        client: Optional[KankaClient] = None,
    ):
        self.store = store
        self.api_token = api_token if api_token is not None else settings.kanka_api_token
        self._client = client

    async def load(self, campaign_id: str, enabled: bool) -> Optional[GlossaryContext]:
        """
        Load the glossary for a job.

        Returns:
            The glossary, or None when disabled or not linked to Kanka

        Raises:
            CapabilityUnavailable: If enabled and linked but no token is configured
        """
        if not enabled:
            return None

        campaign = await self.store.get(f"campaigns/{campaign_id}") or {}
        kanka_campaign_id = (campaign.get("settings") or {}).get("kankaCampaignId")
        if not kanka_campaign_id:
            logger.warning(
                f"[Kanka] Glossary enabled for campaign {campaign_id} "
                f"but kankaCampaignId is not set"
            )
            return None

        client = self._client
        if client is None:
            if not self.api_token:
                raise CapabilityUnavailable(
                    "Campaign glossary is enabled but the Kanka API token is not configured."
                )
            client = KankaClient(self.api_token)

        logger.debug(f"[Kanka] Fetching entities for Kanka campaign {kanka_campaign_id}")
        return await client.get_all_entities(str(kanka_campaign_id))
