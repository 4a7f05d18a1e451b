"""
In-process competition directory.
No persistence - state lives as long as the process.
"""

from typing import Iterable, Optional

from prize_reservations.services.interfaces.competitions import Competition, CompetitionDirectory


class InMemoryCompetitionDirectory(CompetitionDirectory):
    """
    Seedable directory for development and tests.

    Use when:
    - Running the API without the order system
    - Exercising reservations against known ticket pools
    """

    def __init__(self, competitions: Iterable[Competition] = ()):
        self._competitions = {c.id: c for c in competitions}
        self._sold: dict[str, dict[int, str]] = {}

    def add(self, competition: Competition) -> None:
        self._competitions[competition.id] = competition

    def mark_sold(self, competition_id: str, user_id: str, ticket_numbers: Iterable[int]) -> None:
        sold = self._sold.setdefault(competition_id, {})
        for number in ticket_numbers:
            sold[number] = user_id

    async def get_competition(self, competition_id: str) -> Optional[Competition]:
        return self._competitions.get(competition_id)

    async def sold_ticket_numbers(self, competition_id: str, user_id: Optional[str] = None) -> set[int]:
        sold = self._sold.get(competition_id, {})
        if user_id is None:
            return set(sold)
        return {number for number, owner in sold.items() if owner == user_id}
