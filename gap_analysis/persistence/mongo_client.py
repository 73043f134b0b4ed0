"""
Mongo Client — raw database connection management.
Connects lazily on first use; indexes are created once per connection.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient as PyMongoClient
from pymongo.errors import PyMongoError

from gap_analysis.config import Settings, get_settings
from gap_analysis.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

DOCUMENTS = "documents"
DOCUMENT_CHUNKS = "document_chunks"
REQUIREMENTS = "requirements"
REQUIREMENT_SOURCES = "requirement_sources"
REQUIREMENT_MAPPINGS = "requirement_mappings"
REPORTS = "plan_analysis"
FINDINGS = "analysis_findings"


class MongoClient:
    """Thin wrapper around pymongo holding one client per process."""

    def __init__(self, settings: Optional[Settings] = None, client: Any = None):
        self.settings = settings or get_settings()
        self._client: Any = client
        self._db: Any = None

    def connect(self) -> None:
        """Establish the MongoDB connection and ensure indexes."""
        try:
            if self._client is None:
                self._client = PyMongoClient(self.settings.mongodb_uri)
            self._db = self._client[self.settings.mongodb_database]
            self._ensure_indexes()
            logger.info(f"Connected to MongoDB: {self.settings.mongodb_database}")
        except PyMongoError as exc:
            raise StoreUnavailableError(f"Cannot connect to MongoDB: {exc}") from exc

    def get_database(self) -> Any:
        """Return the database handle."""
        if self._db is None:
            self.connect()
        return self._db

    def _ensure_indexes(self) -> None:
        db = self._db
        db[DOCUMENT_CHUNKS].create_index([("document_id", ASCENDING), ("index", ASCENDING)])
        db[REQUIREMENT_SOURCES].create_index(
            [("requirement_id", ASCENDING), ("document_id", ASCENDING)], unique=True
        )
        db[REQUIREMENT_SOURCES].create_index([("document_id", ASCENDING)])
        db[REPORTS].create_index([("plan_id", ASCENDING), ("analyzed_at", DESCENDING), ("inserted_at", DESCENDING)])
        db[FINDINGS].create_index([("analysis_id", ASCENDING)])

    def close(self) -> None:
        """Close the connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")
