from typing import List


class ReconnectPolicy:
    """Bounded exponential backoff.

    Attempt ``n`` (1-based) waits ``min(initial_delay * factor ** (n - 1), max_delay)``
    seconds. There is no attempt after ``max_attempts``.
    """

    def __init__(self, max_attempts: int = 5, initial_delay: float = 1.0, max_delay: float = 5.0, factor: float = 2.0):
        if max_attempts < 0:
            raise ValueError('max_attempts must be >= 0')
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.factor = factor

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError('attempt is 1-based')
        return min(self.initial_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def delays(self) -> List[float]:
        return [self.delay_for(n) for n in range(1, self.max_attempts + 1)]
