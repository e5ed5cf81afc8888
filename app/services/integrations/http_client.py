"""
HTTP client helper with standardized timeout configuration.

Every outbound call (generation, delivery) gets an explicit, bounded timeout so a
slow upstream turns into a failed turn instead of a blocked worker.
"""

import httpx

DEFAULT_TIMEOUT_SECONDS = 10.0


def get_httpx_timeout(total: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.Timeout:
    """
    Timeout configuration for outbound calls.

    Args:
        total: Read timeout (and default for every phase), in seconds

    Returns:
        httpx.Timeout with connect/write/pool capped at 5 seconds
    """
    short = min(5.0, total)
    return httpx.Timeout(
        total,
        connect=short,  # Time to establish connection
        read=total,  # Time to read response (generation is the slow part)
        write=short,  # Time to write request
        pool=short,  # Time to get connection from pool
    )


def create_httpx_client(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Create an httpx.AsyncClient with the standardized timeout configuration."""
    return httpx.AsyncClient(timeout=get_httpx_timeout(timeout_seconds))
