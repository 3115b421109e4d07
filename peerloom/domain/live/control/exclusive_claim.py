"""Single-holder slots such as the presenter and spotlight positions."""

from loguru import logger


class ExclusiveClaim:
    """
    A slot held by at most one user.

    The first valid claim wins and only the holder can release it. The host
    path uses `override`, which replaces (or clears) the holder unconditionally.
    """

    def __init__(self, name: str):
        self.name = name
        self._holder: str | None = None

    @property
    def holder(self) -> str | None:
        return self._holder

    def is_held(self) -> bool:
        return self._holder is not None

    def is_held_by_other(self, user_id: str) -> bool:
        return self._holder is not None and self._holder != user_id

    def acquire(self, user_id: str) -> bool:
        """Claim the slot. Re-acquiring by the current holder succeeds."""
        if self._holder is None:
            self._holder = user_id
            logger.debug("{} claimed by {}", self.name, user_id)
            return True
        return self._holder == user_id

    def release(self, user_id: str) -> bool:
        """Release the slot if `user_id` holds it. Releasing a free slot is a no-op."""
        if self._holder != user_id:
            return False
        self._holder = None
        logger.debug("{} released by {}", self.name, user_id)
        return True

    def override(self, user_id: str | None) -> str | None:
        """Set the holder regardless of the current claim. Returns the previous holder."""
        previous = self._holder
        self._holder = user_id
        if previous != user_id:
            logger.debug("{} overridden {} -> {}", self.name, previous, user_id)
        return previous

    def __repr__(self) -> str:
        return f"ExclusiveClaim({self.name!r}, holder={self._holder!r})"
