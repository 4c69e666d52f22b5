"""Edge functions gateway client."""

from .client import EdgeFunctionClient, EdgeFunctionResponse, get_edge_function_client

__all__ = [
    "EdgeFunctionClient",
    "EdgeFunctionResponse",
    "get_edge_function_client",
]
