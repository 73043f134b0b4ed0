"""Persistence — store interfaces with in-memory and MongoDB implementations."""

from gap_analysis.persistence.base import DocumentStore, ReportStore, RequirementStore
from gap_analysis.persistence.memory_store import (
    InMemoryDocumentStore,
    InMemoryReportStore,
    InMemoryRequirementStore,
)
from gap_analysis.persistence.mongo_client import MongoClient
from gap_analysis.persistence.mongo_store import (
    MongoDocumentStore,
    MongoReportStore,
    MongoRequirementStore,
)

__all__ = [
    "DocumentStore",
    "ReportStore",
    "RequirementStore",
    "InMemoryDocumentStore",
    "InMemoryReportStore",
    "InMemoryRequirementStore",
    "MongoClient",
    "MongoDocumentStore",
    "MongoReportStore",
    "MongoRequirementStore",
]
