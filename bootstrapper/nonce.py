import threading


class NonceSequencer:
    """
    Hands out transaction nonces for the deployer account.

    Seeded once from the account's on-chain transaction count; every call to
    ``next`` returns a fresh value, so no two transactions of a run collide.
    """

    def __init__(self, start: int):
        if start < 0:
            raise ValueError(f"Nonce must not be negative, got {start}.")
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            nonce = self._next
            self._next += 1
            return nonce

    def peek(self) -> int:
        """Returns the nonce the next call to ``next`` will issue."""
        with self._lock:
            return self._next
