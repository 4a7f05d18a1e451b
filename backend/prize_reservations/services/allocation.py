"""
Free-pool ticket selection.

Picks `quantity` numbers uniformly at random from 1..total_tickets minus the
unavailable ones, using a partial Fisher-Yates shuffle (swap-with-last and pop,
O(1) per pick). The result is sorted for display.

Selection is advisory: the numbers are only held once TicketLockManager.reserve
succeeds.
"""

import random
from typing import Iterable, Optional

from prize_reservations.core.exceptions import ValidationError


def allocate_ticket_numbers(
    total_tickets: int,
    unavailable: Iterable[int],
    quantity: int,
    rng: Optional[random.Random] = None,
) -> list[int]:
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1")

    rng = rng or random.Random()
    taken = set(unavailable)
    available = [n for n in range(1, total_tickets + 1) if n not in taken]

    if len(available) < quantity:
        raise ValidationError(
            f"Only {len(available)} tickets available. Please select fewer tickets."
        )

    selected = []
    for _ in range(quantity):
        index = rng.randrange(len(available))
        selected.append(available[index])
        available[index] = available[-1]
        available.pop()

    return sorted(selected)
