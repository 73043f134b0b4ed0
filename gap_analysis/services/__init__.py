"""Services — chunking, parsing, file storage, LLM gateway, report building."""

from gap_analysis.services.chunking_service import chunk_document
from gap_analysis.services.file_service import FileService
from gap_analysis.services.llm_service import GenerationParams, GroqGateway, get_gateway
from gap_analysis.services.parsing_service import ParsingService
from gap_analysis.services.report_builder import build_findings, build_report
from gap_analysis.services.thinking_process import build_thinking_process

__all__ = [
    "chunk_document",
    "FileService",
    "GenerationParams",
    "GroqGateway",
    "get_gateway",
    "ParsingService",
    "build_findings",
    "build_report",
    "build_thinking_process",
]
