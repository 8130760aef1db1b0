"""
Remote access to the battlebook backend.
"""

from .api_client import BackendClient

__all__ = ["BackendClient"]
