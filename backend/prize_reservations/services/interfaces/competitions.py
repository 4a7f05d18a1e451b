"""
Competition directory interface.
The relational store that owns competitions and sold tickets lives outside
this service; reservations only need this narrow read-only view of it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Competition:
    id: str
    status: str
    total_tickets: int
    max_tickets_per_user: int
    question_answer: int

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


class CompetitionDirectory(ABC):
    """
    Interface for competition lookups.

    Implementations:
    - InMemoryCompetitionDirectory: seeded in-process, for development and tests
    - A database-backed directory owned by the order system
    """

    @abstractmethod
    async def get_competition(self, competition_id: str) -> Optional[Competition]:
        """
        Args:
            competition_id: Competition to look up

        Returns:
            The competition, or None if it does not exist
        """
        pass

    @abstractmethod
    async def sold_ticket_numbers(self, competition_id: str, user_id: Optional[str] = None) -> set[int]:
        """
        Permanently taken numbers (sold or free entries).

        Args:
            competition_id: Competition ID
            user_id: Restrict to tickets owned by this user
        """
        pass
