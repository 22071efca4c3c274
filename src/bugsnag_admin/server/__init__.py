"""Plugin API server

Hosts the plugin-scoped /api/v1 routes the admin clients talk to:
- Bugsnag credential test and catalogs (organizations, projects, collaborators)
- Persisted channel rules and user mappings (JSON key-value store)
"""

from bugsnag_admin.server.app import create_app

__all__ = ["create_app"]
