"""Request context for owner scoping."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the verified owner identity.

    Used to enforce ownership boundaries in all data access.
    """

    owner_id: UUID
