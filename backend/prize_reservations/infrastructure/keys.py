"""Store key layout. These patterns are shared with every other application instance."""

TICKET_LOCK_PREFIX = "ticket-lock"


def reservation_key(competition_id: str, user_id: str) -> str:
    return f"reservation:{competition_id}:{user_id}"


def ticket_lock_key(competition_id: str, ticket_number: int) -> str:
    return f"{TICKET_LOCK_PREFIX}:{competition_id}:{ticket_number}"


def ticket_lock_pattern(competition_id: str) -> str:
    return f"{TICKET_LOCK_PREFIX}:{competition_id}:*"


def qcm_attempts_key(competition_id: str, user_id: str) -> str:
    return f"qcm-attempts:{competition_id}:{user_id}"


def qcm_block_key(competition_id: str, user_id: str) -> str:
    return f"qcm-block:{competition_id}:{user_id}"


def qcm_passed_key(competition_id: str, user_id: str) -> str:
    return f"qcm-passed:{competition_id}:{user_id}"


def rate_limit_key(bucket: str, identifier: str) -> str:
    return f"ratelimit:{bucket}:{identifier}"
