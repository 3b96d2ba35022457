"""
contact_loader
Streaming CSV contact importer with adaptive, retrying bulk upserts into PostgreSQL.
"""

__version__ = "0.1.0"
