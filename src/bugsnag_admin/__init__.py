"""Bugsnag admin: configuration layer for the Bugsnag <-> Mattermost integration.

Maps Bugsnag projects to Mattermost channels (with per-rule filters) and
Mattermost users to Bugsnag collaborators, and keeps those mappings in
sync with the plugin's persisted store.
"""

__version__ = "0.1.0"
