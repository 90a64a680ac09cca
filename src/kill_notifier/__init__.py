"""
Kill Notifier - killmail enrichment and notification pipeline

Ingests raw killmail events, resolves display names, routes kills that
involve watched systems or characters to notification channels, and
delivers them to Discord.

Package structure:
    kill_notifier/
    ├── core/                   # Config, logging, errors, retry policy
    └── services/killmail/      # Pipeline stages
        └── notifications/      # Formatting and delivery
"""

__version__ = "1.0.0"
