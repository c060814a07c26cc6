"""
Database schema definition for Wanderer's SQLite datastore.
"""

from __future__ import annotations

from sqlalchemy import JSON, CheckConstraint, Column, Index, Integer, MetaData, Table, Text
from sqlalchemy.sql import func

# Using a standard naming convention for database objects
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Timestamps are stored as UTC text in this format so that lexical and
# chronological order agree.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

scraped_data_table = Table(
    "scraped_data",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("url", Text, nullable=False),
    Column("title", Text),
    Column("description", Text),
    Column("text", Text),
    Column("word_count", Integer, default=0),
    Column("link_count", Integer, default=0),
    Column("image_count", Integer, default=0),
    Column("headings", JSON),
    Column("products", JSON),
    Column("mode", Text, nullable=False),
    Column("depth", Integer, nullable=False, default=0),
    Column("parent_url", Text),
    Column("status", Text, nullable=False, default="success"),
    Column("status_code", Integer),
    Column("error_messages", JSON),
    Column("retry_count", Integer, default=0),
    Column("category", Text, nullable=False, default="general"),
    Column("collection_hint", Text),
    Column("timestamp", Text, nullable=False),
    Column("metadata", JSON),
    Column("created_at", Text, server_default=func.current_timestamp()),
    CheckConstraint("mode IN ('wander', 'strict')", name="mode"),
    CheckConstraint("status IN ('success', 'failed')", name="status"),
    CheckConstraint("depth >= 0", name="depth"),
)

# Indexes for the dedup lookup, per-mode reporting and collection routing
Index("ix_scraped_data_url_timestamp", scraped_data_table.c.url, scraped_data_table.c.timestamp)
Index("ix_scraped_data_mode_status", scraped_data_table.c.mode, scraped_data_table.c.status)
Index("ix_scraped_data_category_timestamp", scraped_data_table.c.category, scraped_data_table.c.timestamp)
Index("ix_scraped_data_mode_category", scraped_data_table.c.mode, scraped_data_table.c.category)
