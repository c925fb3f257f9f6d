"""Lead repository."""
from typing import List, Optional

from dialer.services.leads.base import Lead, LeadProvider


class LeadRepository:
    """Repository for lead operations."""

    def __init__(self, provider: LeadProvider):
        self.provider = provider

    async def list_leads(self) -> List[Lead]:
        """Get all leads."""
        return await self.provider.list_leads()

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        """Get lead by id."""
        return await self.provider.get_lead(lead_id)
