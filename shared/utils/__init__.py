"""
TicketLink - Shared Utilities Package
=====================================

Logging, HTTP client, and retry helpers.
"""

from shared.utils.logging import get_logger, setup_logging
from shared.utils.http_client import ServiceClient
from shared.utils.retry import with_retry, RetryConfig

__all__ = [
    "get_logger",
    "setup_logging",
    "ServiceClient",
    "with_retry",
    "RetryConfig",
]
