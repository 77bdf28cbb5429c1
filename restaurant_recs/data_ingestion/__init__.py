"""
Data ingestion package.

Responsibilities:
- Read restaurant, user and review CSV exports.
- Normalize them into the canonical store schema.
- Load the cleaned rows into the relational entity store.
"""
