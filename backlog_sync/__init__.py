"""
Trello Backlog Sync.

Keeps one proxy card per incomplete checklist item in a board's triage
lists, driven by Trello webhooks.
"""

__version__ = "1.0.0"
