"""
In-memory cache of the active endpoint definitions.
"""

import logging
from typing import Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from apiwatch.repositories.endpoint_repository import EndpointRepository
from apiwatch.schemas import EndpointSnapshot

logger = logging.getLogger(__name__)


class EndpointRegistry:
    """Snapshot of active endpoints, replaced wholesale on every refresh."""

    def __init__(self):
        self._endpoints: Dict[UUID, EndpointSnapshot] = {}

    def refresh(self, db: Session) -> List[EndpointSnapshot]:
        """Reload active endpoints from the store. Store errors propagate."""
        rows = EndpointRepository.list_active(db)
        self._endpoints = {row.id: EndpointSnapshot.model_validate(row) for row in rows}
        logger.debug("Endpoint registry refreshed: %d active", len(self._endpoints))
        return self.endpoints

    @property
    def endpoints(self) -> List[EndpointSnapshot]:
        return list(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)
