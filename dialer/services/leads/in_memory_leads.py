"""In-memory lead provider."""
from pathlib import Path
from typing import List, Optional

import yaml

from dialer.services.leads.base import Lead, LeadProvider


class InMemoryLeadProvider(LeadProvider):
    """In-memory lead provider using YAML configuration."""

    def __init__(self, leads_file: Optional[str] = None):
        """Initialize with optional leads file path."""
        if leads_file is None:
            leads_file = Path(__file__).parent / "data" / "leads.yaml"
        self.leads_file = Path(leads_file)
        self._leads: Optional[List[Lead]] = None

    async def _load_leads(self) -> List[Lead]:
        """Load leads from YAML file."""
        if self._leads is None:
            if not self.leads_file.exists():
                self._leads = []
            else:
                with open(self.leads_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                    # Quoting is easy to forget on ids and E.164 numbers
                    self._leads = [
                        Lead(**{key: str(value) for key, value in lead.items()})
                        for lead in data.get("leads", [])
                    ]
        return self._leads

    async def list_leads(self) -> List[Lead]:
        """Get all leads."""
        return list(await self._load_leads())

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        """Get a lead by id."""
        for lead in await self._load_leads():
            if lead.id == lead_id:
                return lead
        return None
