"""
HTTP API for Cellar Sync.

Exposes the derived views and the role-gated mutations over REST.
The caller's role is taken from the X-Role header.
"""

from .app import create_app

__all__ = ["create_app"]
