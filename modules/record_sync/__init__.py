"""
Record Sync Module - Tracker ↔ Registry

Keeps the Tracker (task system) and the Registry (document/list system)
eventually consistent:
- Tracker webhooks mirror assignee/reviewer changes and deletions
- Registry notifications and a daily pass reconcile records into Tracker tasks
- A SQLite mapping store bridges the two ID spaces, keyed by content fingerprint
"""

__version__ = "0.1.0"
