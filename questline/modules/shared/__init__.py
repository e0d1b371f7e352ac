"""
Shared building blocks for domain services.

- BaseService / BaseRepository
- Domain exceptions
- Collaborator protocols (character progress, reward sink)
"""

from .base_repository import BaseRepository
from .base_service import BaseService
from .collaborators import CharacterProgressProvider, Clock, RewardSink, SubjectProgress
from .exceptions import (
    InvalidStateError,
    NotFoundError,
    PartialRewardFailureError,
    QuestlineDomainException,
    RewardGrantFailure,
    ValidationError,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "CharacterProgressProvider",
    "Clock",
    "RewardSink",
    "SubjectProgress",
    "QuestlineDomainException",
    "NotFoundError",
    "ValidationError",
    "InvalidStateError",
    "PartialRewardFailureError",
    "RewardGrantFailure",
]
