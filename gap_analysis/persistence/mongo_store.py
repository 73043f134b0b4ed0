"""
MongoDB-backed stores.

pymongo is synchronous, so every operation runs in a worker thread via
asyncio.to_thread.  Any PyMongoError becomes StoreUnavailableError.
Raw uploads live in GridFS, one bucket per document type.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import gridfs
from gridfs.errors import NoFile
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from gap_analysis.errors import DocumentNotFoundError, StoreUnavailableError
from gap_analysis.models.schemas import (
    AnalysisFinding,
    AnalysisReport,
    DocumentChunk,
    DocumentRecord,
    Requirement,
)
from gap_analysis.persistence.base import DocumentStore, ReportStore, RequirementStore
from gap_analysis.persistence.mongo_client import (
    DOCUMENT_CHUNKS,
    DOCUMENTS,
    FINDINGS,
    REPORTS,
    REQUIREMENT_MAPPINGS,
    REQUIREMENT_SOURCES,
    REQUIREMENTS,
    MongoClient,
)

logger = logging.getLogger(__name__)


async def _run(fn: Callable[..., Any], *args: Any) -> Any:
    try:
        return await asyncio.to_thread(fn, *args)
    except PyMongoError as exc:
        logger.error(f"MongoDB operation {getattr(fn, '__name__', fn)} failed: {exc}")
        raise StoreUnavailableError(f"MongoDB operation failed: {exc}") from exc


class _MongoStore:
    def __init__(self, client: MongoClient):
        self.client = client

    @property
    def db(self) -> Any:
        return self.client.get_database()


# ── Documents ────────────────────────────────────────────


class MongoDocumentStore(_MongoStore, DocumentStore):
    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        raw = await _run(self._find_document, document_id)
        if raw is None:
            return None
        return DocumentRecord(
            id=str(raw["_id"]),
            type=raw["type"],
            subtype=raw.get("subtype", ""),
            title=raw.get("title", ""),
            file_url=raw.get("file_url", ""),
            metadata=raw.get("metadata", {}),
        )

    async def get_document_chunks(self, document_id: str) -> list[DocumentChunk]:
        rows = await _run(self._find_chunks, document_id)
        return [
            DocumentChunk(content=r.get("content", ""), metadata=r.get("metadata", {}), index=r.get("index", 0))
            for r in rows
        ]

    async def download_raw_file(self, bucket: str, path: str) -> bytes:
        return await _run(self._read_file, bucket, path)

    def _find_document(self, document_id: str) -> Optional[dict]:
        return self.db[DOCUMENTS].find_one({"_id": document_id})

    def _find_chunks(self, document_id: str) -> list[dict]:
        cursor = self.db[DOCUMENT_CHUNKS].find({"document_id": document_id}).sort("index", ASCENDING)
        return list(cursor)

    def _read_file(self, bucket: str, path: str) -> bytes:
        fs = gridfs.GridFSBucket(self.db, bucket_name=bucket)
        try:
            with fs.open_download_stream_by_name(path) as stream:
                return stream.read()
        except NoFile as exc:
            raise DocumentNotFoundError(f"File not found: {bucket}/{path}") from exc


# ── Requirements ─────────────────────────────────────────


class MongoRequirementStore(_MongoStore, RequirementStore):
    async def insert_requirement(self, requirement: Requirement) -> str:
        await _run(self._insert, requirement)
        for document_id in requirement.source_document_ids:
            await self.link_requirement_to_source(requirement.id, document_id)
        return requirement.id

    async def link_requirement_to_source(self, requirement_id: str, document_id: str) -> None:
        await _run(self._link, requirement_id, document_id)

    async def get_requirements_for_documents(self, document_ids: list[str]) -> list[Requirement]:
        return await _run(self._find_for_documents, list(document_ids))

    async def delete_requirements_for_document(self, document_id: str) -> int:
        deleted = await _run(self._delete_for_document, document_id)
        logger.info(f"Deleted {deleted} requirements for document {document_id}")
        return deleted

    async def add_requirement_mapping(self, requirement_id: str, mapped_id: str, mapping_type: str) -> None:
        await _run(self._map, requirement_id, mapped_id, mapping_type)

    def _insert(self, requirement: Requirement) -> None:
        doc = requirement.model_dump(mode="json", exclude={"id", "source_document_ids"})
        doc["_id"] = requirement.id
        doc["created_at"] = datetime.now(timezone.utc)
        self.db[REQUIREMENTS].insert_one(doc)

    def _link(self, requirement_id: str, document_id: str) -> None:
        key = {"requirement_id": requirement_id, "document_id": document_id}
        self.db[REQUIREMENT_SOURCES].update_one(key, {"$setOnInsert": key}, upsert=True)

    def _find_for_documents(self, document_ids: list[str]) -> list[Requirement]:
        links = self.db[REQUIREMENT_SOURCES].find({"document_id": {"$in": document_ids}})
        requirement_ids = list(dict.fromkeys(link["requirement_id"] for link in links))
        if not requirement_ids:
            return []

        sources: dict[str, list[str]] = {}
        for link in self.db[REQUIREMENT_SOURCES].find({"requirement_id": {"$in": requirement_ids}}):
            sources.setdefault(link["requirement_id"], []).append(link["document_id"])

        rows = self.db[REQUIREMENTS].find({"_id": {"$in": requirement_ids}}).sort(
            [("created_at", ASCENDING), ("_id", ASCENDING)]
        )
        requirements = []
        for row in rows:
            req_id = row.pop("_id")
            row.pop("created_at", None)
            requirements.append(Requirement(id=req_id, source_document_ids=sources.get(req_id, []), **row))
        return requirements

    def _delete_for_document(self, document_id: str) -> int:
        linked = [
            link["requirement_id"]
            for link in self.db[REQUIREMENT_SOURCES].find({"document_id": document_id})
        ]
        self.db[REQUIREMENT_SOURCES].delete_many({"document_id": document_id})
        if not linked:
            return 0
        still_linked = set(
            self.db[REQUIREMENT_SOURCES].distinct("requirement_id", {"requirement_id": {"$in": linked}})
        )
        orphaned = [r for r in linked if r not in still_linked]
        if not orphaned:
            return 0
        result = self.db[REQUIREMENTS].delete_many({"_id": {"$in": orphaned}})
        self.db[REQUIREMENT_MAPPINGS].delete_many(
            {"$or": [{"requirement_id": {"$in": orphaned}}, {"mapped_id": {"$in": orphaned}}]}
        )
        return result.deleted_count

    def _map(self, requirement_id: str, mapped_id: str, mapping_type: str) -> None:
        key = {"requirement_id": requirement_id, "mapped_id": mapped_id, "mapping_type": mapping_type}
        self.db[REQUIREMENT_MAPPINGS].update_one(key, {"$setOnInsert": key}, upsert=True)


# ── Reports ──────────────────────────────────────────────


class MongoReportStore(_MongoStore, ReportStore):
    async def insert_report(self, report: AnalysisReport) -> str:
        await _run(self._insert_report, report)
        return report.analysis_id

    async def insert_findings(self, findings: list[AnalysisFinding]) -> None:
        if findings:
            await _run(self._insert_findings, findings)

    async def get_latest_report(self, plan_id: str) -> Optional[AnalysisReport]:
        raw = await _run(self._find_latest, plan_id)
        if raw is None:
            return None
        return AnalysisReport.model_validate(raw["analysis_data"])

    def _insert_report(self, report: AnalysisReport) -> None:
        self.db[REPORTS].insert_one(
            {
                "_id": report.analysis_id,
                "plan_id": report.plan_id,
                "analyzed_at": report.analyzed_at,
                "inserted_at": datetime.now(timezone.utc),
                "overall_score": report.overall_compliance_score,
                "quality_score": report.overall_quality_score,
                "missing_elements_count": report.summary.requirements_missing,
                "standards_used": report.reference_document_ids,
                "analysis_data": report.model_dump(mode="json"),
            }
        )

    def _insert_findings(self, findings: list[AnalysisFinding]) -> None:
        self.db[FINDINGS].insert_many([f.model_dump(mode="json") for f in findings])

    def _find_latest(self, plan_id: str) -> Optional[dict]:
        return self.db[REPORTS].find_one(
            {"plan_id": plan_id},
            sort=[("analyzed_at", DESCENDING), ("inserted_at", DESCENDING)],
        )
