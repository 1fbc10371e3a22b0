"""FastAPI application for the hybrid document processing pipeline.

Provides endpoints for processing an uploaded document image, listing
the supported document types, and health checks.
"""

import shutil
from typing import Annotated

import torch
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from docpipe import __version__
from docpipe.errors import DocpipeError
from docpipe.models import DocumentType
from docpipe.pipeline import HybridDocumentProcessor, build_processor
from docpipe.utils.config import load_config
from docpipe.utils.logger import get_logger

from .schemas import (
    DocumentTypeInfo,
    DocumentTypesResponse,
    HealthResponse,
    ProcessResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Hybrid Document Processing API",
    description="Turn photographed receipts, invoices and identity documents "
    "into structured records",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/bmp",
    "application/octet-stream",
}

_processor: HybridDocumentProcessor | None = None


def _get_processor() -> HybridDocumentProcessor:
    """Build and initialize the shared processor on first use."""
    global _processor
    if _processor is None:
        processor = build_processor(load_config())
        processor.initialize()
        _processor = processor
    return _processor


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    tesseract = shutil.which("tesseract") is not None
    return HealthResponse(
        status="healthy" if tesseract else "degraded",
        version=__version__,
        tesseract_available=tesseract,
        gpu_available=torch.cuda.is_available(),
        issues=[] if tesseract else ["Tesseract executable not found"],
    )


@app.post("/process", response_model=ProcessResponse)
async def process_document(
    file: Annotated[UploadFile, File(...)],
    context: Annotated[bool, Query()] = True,
    extraction: Annotated[bool, Query()] = True,
    preprocessing: Annotated[bool, Query()] = True,
) -> ProcessResponse:
    """Run the full pipeline on an uploaded document image.

    Args:
        file: Uploaded image (PNG, JPEG, TIFF or BMP).
        context: Enable context understanding.
        extraction: Enable structured extraction.
        preprocessing: Enable image enhancement before OCR.

    Returns:
        Classification, structured record, validation and quality scores.
    """
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    try:
        processor = _get_processor()
    except DocpipeError as exc:
        logger.error("Processor unavailable: %s", exc)
        raise HTTPException(status_code=503, detail=exc.message) from exc

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    options = processor.options.model_copy(
        update={
            "enable_context_understanding": context,
            "enable_structured_extraction": extraction,
            "enable_preprocessing": preprocessing,
        }
    )
    result = processor.process_document(content, options)
    if result.failed:
        detail = "; ".join(result.quality_metrics.warnings) or "Processing failed"
        logger.error("Processing of %s failed: %s", file.filename, detail)
        raise HTTPException(status_code=422, detail=detail)

    return ProcessResponse.from_result(result)


@app.get("/document-types", response_model=DocumentTypesResponse)
async def list_document_types() -> DocumentTypesResponse:
    """List document types and the extractor each one is routed to."""
    registry = _get_processor().registry
    return DocumentTypesResponse(
        document_types=[
            DocumentTypeInfo(
                document_type=str(document_type),
                extractor=registry.get_extractor(document_type).name,
            )
            for document_type in DocumentType
        ]
    )
