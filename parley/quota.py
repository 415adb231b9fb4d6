"""Turn budget: debited per bot turn, credited per human message."""

MIN_QUOTA = 0
MAX_QUOTA = 100
INITIAL_QUOTA = 10
BOT_RESPONSE_COST = 1
USER_MESSAGE_BONUS = 1


def clamp_quota(value: int) -> int:
    return max(MIN_QUOTA, min(MAX_QUOTA, value))


class QuotaGovernor:
    """Bounded integer budget. Every write is clamped to [MIN_QUOTA, MAX_QUOTA]."""

    def __init__(self, remaining: int = INITIAL_QUOTA) -> None:
        self._remaining = clamp_quota(remaining)

    def __repr__(self) -> str:
        return f"QuotaGovernor(remaining={self._remaining})"

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def exhausted(self) -> bool:
        return self._remaining <= MIN_QUOTA

    def add(self, delta: int) -> int:
        """Apply a debit (negative) or credit (positive). Never raises."""
        self._remaining = clamp_quota(self._remaining + delta)
        return self._remaining

    def reset(self, value: int = INITIAL_QUOTA) -> int:
        self._remaining = clamp_quota(value)
        return self._remaining
