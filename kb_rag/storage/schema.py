"""
Database Schema - SQLAlchemy Core tables used by the indexer and retriever

Mirrors the subset of the BookStack schema the core reads (entities,
entity_page_data, tags, search_terms) plus the kb_chunk table it owns.
Only kb_chunk is created by this package; the BookStack tables are declared
so queries can be built with SQLAlchemy Core and so tests can create them.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

PAGE_ENTITY_TYPE = "page"

entities = Table(
    "entities",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("type", String(191), nullable=False),
    Column("name", String(255), nullable=False),
    Column("updated_at", DateTime, nullable=True),
    Column("deleted_at", DateTime, nullable=True),
)

entity_page_data = Table(
    "entity_page_data",
    metadata,
    Column("page_id", Integer, primary_key=True),
    Column("text", Text, nullable=True),
    Column("draft", Boolean, nullable=False, default=False),
    Column("template", Boolean, nullable=False, default=False),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_id", Integer, nullable=False),
    Column("entity_type", String(191), nullable=False),
    Column("name", String(191), nullable=False),
    Column("value", String(191), nullable=True),
    Index("tags_entity_name_index", "entity_id", "entity_type", "name"),
)

search_terms = Table(
    "search_terms",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("term", String(180), nullable=False),
    Column("entity_type", String(100), nullable=False),
    Column("entity_id", Integer, nullable=False),
    Column("score", Integer, nullable=False),
    Index("search_terms_term_index", "term"),
)

kb_chunk = Table(
    "kb_chunk",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("page_id", Integer, nullable=False),
    Column("chunk_index", Integer, nullable=False),
    Column("chunk_type", String(50), nullable=True),
    Column("content", Text, nullable=False),
    # JSON-encoded list of floats
    Column("embedding", Text, nullable=True),
    Column("embedding_model", String(100), nullable=True),
    Column("source_updated_at", DateTime, nullable=True),
    Index("kb_chunk_page_index", "page_id", "chunk_index", unique=True),
)


def create_chunk_table(engine) -> None:
    """Create kb_chunk if it does not exist yet"""
    metadata.create_all(engine, tables=[kb_chunk])
