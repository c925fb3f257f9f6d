"""Lead provider interface."""
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel


class Lead(BaseModel):
    """Lead (prospect) the agent can call."""

    id: str
    name: str
    phone: str
    notes: str = ""


class LeadProvider(ABC):
    """Abstract base class for lead providers."""

    @abstractmethod
    async def list_leads(self) -> List[Lead]:
        """Get all leads."""
        pass

    @abstractmethod
    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        """Get a lead by id."""
        pass
