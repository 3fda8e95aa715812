"""SQLAlchemy ORM models for the approval kernel."""

from approval_kernel.models.configuration import (
    ApprovalConfigurationModel,
    ApproverModel,
)
from approval_kernel.models.decision_event import DecisionEventModel
from approval_kernel.models.delegation import DelegationModel
from approval_kernel.models.request import ApprovalRequestModel
from approval_kernel.models.sequence import SequenceCounter

__all__ = [
    "ApprovalConfigurationModel",
    "ApprovalRequestModel",
    "ApproverModel",
    "DecisionEventModel",
    "DelegationModel",
    "SequenceCounter",
]
