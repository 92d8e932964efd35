# Clients subpackage - External API clients
from .anthropic import call_anthropic_api_with_retry, get_anthropic_client

__all__ = [
    "call_anthropic_api_with_retry",
    "get_anthropic_client",
]
