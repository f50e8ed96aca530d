from garment_forge.db.engine import get_database_url, get_engine
from garment_forge.db.memory import InMemoryDesignDatabase
from garment_forge.db.postgres import PostgresDesignDatabase

__all__ = [
    "InMemoryDesignDatabase",
    "PostgresDesignDatabase",
    "get_database_url",
    "get_engine",
]
