"""
Repository layer: persistence boundary between services and the ORM.

``Repositories.for_session`` builds the SQLAlchemy-backed bundle used by the
workflow service for one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from approval_kernel.repositories.base import (
    ConfigurationRepository,
    DelegationRepository,
    EventRepository,
    RequestRepository,
)
from approval_kernel.repositories.configuration_repo import SqlConfigurationRepository
from approval_kernel.repositories.delegation_repo import SqlDelegationRepository
from approval_kernel.repositories.event_repo import SqlEventRepository
from approval_kernel.repositories.request_repo import SqlRequestRepository


@dataclass(frozen=True)
class Repositories:
    """All repositories bound to one session/transaction."""

    configurations: ConfigurationRepository
    requests: RequestRepository
    events: EventRepository
    delegations: DelegationRepository

    @classmethod
    def for_session(cls, session: Session) -> Repositories:
        return cls(
            configurations=SqlConfigurationRepository(session),
            requests=SqlRequestRepository(session),
            events=SqlEventRepository(session),
            delegations=SqlDelegationRepository(session),
        )


__all__ = [
    "ConfigurationRepository",
    "DelegationRepository",
    "EventRepository",
    "Repositories",
    "RequestRepository",
    "SqlConfigurationRepository",
    "SqlDelegationRepository",
    "SqlEventRepository",
    "SqlRequestRepository",
]
