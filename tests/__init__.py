"""
Cellar Sync Test Suite.

This package contains:
- unit/: Unit tests (models, views, acl, config, stores)
- integration/: Sync engine + mutation service end to end, and the HTTP API
"""
