"""
HTTP client helper with standardized timeout configuration.

Ensures all outbound HTTP calls have explicit timeouts so a slow Telegram API
cannot stall a scheduler tick.
"""

import httpx


def get_httpx_timeout() -> httpx.Timeout:
    """
    Get standardized timeout configuration for HTTP clients.

    Returns:
        httpx.Timeout with appropriate timeout values for notification sends
    """
    # httpx.Timeout API: first arg is default timeout, then keyword args for specific timeouts
    return httpx.Timeout(
        10.0,  # Default timeout for all operations
        connect=5.0,  # Time to establish connection
        read=10.0,  # Time to read response
        write=5.0,  # Time to write request
        pool=5.0,  # Time to get connection from pool
    )


def create_httpx_client() -> httpx.Client:
    """
    Create an httpx.Client with standardized timeout configuration.

    Schedulers run in plain threads, so the client is synchronous.
    """
    return httpx.Client(timeout=get_httpx_timeout())
