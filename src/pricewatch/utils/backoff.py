from __future__ import annotations

def retry_delay_ms(initial_ms: int, attempt: int) -> int:
    """
    Exponential backoff before retry number `attempt` (0-based, no jitter):
    initial * 2^attempt -> 1000, 2000, 4000, ...
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return int(initial_ms * (2 ** attempt))
