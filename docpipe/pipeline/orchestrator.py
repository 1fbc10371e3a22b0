"""Hybrid document processing pipeline.

Sequences preprocessing, OCR, context understanding, structured
extraction and quality assessment for one image at a time::

    image -> OCR -> context (optional) -> extraction (optional) -> quality

OCR is a hard dependency. Context and extraction failures degrade to
rule-based fallbacks and are reported in ``metadata.degraded_stages``.
:meth:`HybridDocumentProcessor.process_document` never raises: any error
that escapes the fallbacks produces a zero-confidence result envelope.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from docpipe.context import ContextEngine, build_context_engine, detect_text_direction
from docpipe.errors import InitializationError, PipelineStageError
from docpipe.extraction import ExtractionStrategy, ExtractorRegistry
from docpipe.models import (
    ContextualResult,
    DocumentContext,
    DocumentType,
    GenericDocumentData,
    HybridProcessingResult,
    LayoutInfo,
    MultiExtractionResult,
    OCRResult,
    ProcessingMetadata,
    StageOutcome,
    StructuredData,
    ValidationResult,
)
from docpipe.ocr import OCRProvider, build_ocr_provider
from docpipe.preprocessing import ImagePreprocessor, ImageRef
from docpipe.quality import QualityAssurance
from docpipe.utils.config import AppConfig, ExtractionConfig, ProcessingOptions
from docpipe.utils.logger import get_logger

logger = get_logger(__name__)

ERROR_HASH = "error"
UNKNOWN_HASH = "unknown"

# (keywords, all_required, document type, confidence), first match wins.
BASIC_RULES: list[tuple[tuple[str, ...], bool, DocumentType, float]] = [
    (("receipt", "total", "change"), False, DocumentType.RECEIPT, 0.6),
    (("invoice", "bill to", "due date"), False, DocumentType.INVOICE, 0.6),
    (("passport", "nationality"), False, DocumentType.PASSPORT, 0.7),
    (("driver", "license"), True, DocumentType.DRIVERS_LICENSE, 0.7),
]
BASIC_CONFIDENCE = 0.5

Extraction = tuple[StructuredData, ValidationResult | None]


def basic_classify(text: str) -> tuple[DocumentType, float]:
    """Keyword-only classification used when context understanding is off."""
    lowered = text.lower()
    for keywords, all_required, document_type, confidence in BASIC_RULES:
        hits = [keyword in lowered for keyword in keywords]
        matched = all(hits) if all_required else any(hits)
        if matched:
            return document_type, confidence
    return DocumentType.UNKNOWN, BASIC_CONFIDENCE


def basic_contextual_result(ocr: OCRResult) -> ContextualResult:
    document_type, confidence = basic_classify(ocr.text)
    text = ocr.text.lower()
    layout = LayoutInfo(
        has_table="table" in text or len(ocr.text.split("\n")) > 10,
        has_header=True,
        has_footer=len(ocr.blocks) > 5,
        text_direction=detect_text_direction(ocr.text),
        confidence=BASIC_CONFIDENCE,
    )
    return ContextualResult(
        document_type=document_type,
        confidence=confidence,
        context=DocumentContext(layout=layout, confidence=confidence),
        raw_ocr=ocr,
        backend="basic",
    )


def generic_record(context: ContextualResult) -> GenericDocumentData:
    """Structured record built straight from the context, without a strategy."""
    return GenericDocumentData(
        title=str(context.document_type),
        content=context.raw_ocr.text,
        entities=context.context.entities,
        metadata={
            "document_type": str(context.document_type),
            "confidence": context.confidence,
            "detected_languages": list(context.raw_ocr.languages),
        },
    )


def error_message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


class HybridDocumentProcessor:
    """Runs the layered document understanding pipeline.

    Args:
        ocr_provider: Text extraction provider; a hard dependency.
        context_engine: Context engine; rule-based by default.
        registry: Extractor registry, shared with the caller.
        quality: Quality assurance engine.
        preprocessor: Image preprocessor supplying the content hash.
        options: Default per-document options.
        extraction: Extractor re-selection settings.
    """

    def __init__(
        self,
        ocr_provider: OCRProvider,
        context_engine: ContextEngine | None = None,
        registry: ExtractorRegistry | None = None,
        quality: QualityAssurance | None = None,
        preprocessor: ImagePreprocessor | None = None,
        options: ProcessingOptions | None = None,
        extraction: ExtractionConfig | None = None,
    ) -> None:
        self.ocr_provider = ocr_provider
        self.context_engine = context_engine or ContextEngine()
        self.registry = registry or ExtractorRegistry()
        self.quality = quality or QualityAssurance()
        self.preprocessor = preprocessor
        self.options = options or ProcessingOptions()
        self.extraction = extraction or ExtractionConfig()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Initialize all components concurrently.

        Raises:
            InitializationError: If the OCR provider fails to initialize.
                Failures of the other components are logged only.
        """
        if self._initialized:
            return

        start = time.perf_counter()
        tasks = {
            "ocr": self.ocr_provider.initialize,
            "context": self.context_engine.initialize,
            "registry": self.registry.initialize,
        }
        if self.preprocessor is not None:
            tasks["preprocessor"] = self.preprocessor.initialize

        with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
            futures = {name: pool.submit(task) for name, task in tasks.items()}

        for name, future in futures.items():
            exc = future.exception()
            if exc is None:
                continue
            if name == "ocr":
                raise InitializationError("OCR provider", error_message(exc)) from exc
            logger.warning("Failed to initialize %s: %s", name, exc)

        self._initialized = True
        logger.info(
            "Hybrid document processor initialized in %.0fms",
            (time.perf_counter() - start) * 1000,
        )

    def process_document(
        self, image_ref: ImageRef, options: ProcessingOptions | None = None
    ) -> HybridProcessingResult:
        """Process one image end to end.

        Args:
            image_ref: File path, encoded image bytes, or a decoded array.
            options: Overrides for the processor's default options.

        Returns:
            The result envelope. On failure its image hash is ``"error"``
            and all scores are zero.
        """
        opts = options or self.options
        start = time.perf_counter()
        stages: list[str] = []
        try:
            if not self._initialized:
                self.initialize()
            logger.info("Starting hybrid document processing")

            degraded: list[str] = []
            ocr_input, image_hash = self._preprocess(image_ref, opts, stages, degraded)

            stages.append("Starting OCR extraction")
            ocr = self.extract_text(ocr_input)
            stages.append(f"OCR completed with {ocr.confidence:.2f} confidence")

            return self._run_stages(ocr, opts, stages, degraded, start, image_hash)
        except Exception as exc:
            logger.exception("Error in document processing pipeline")
            return self._error_result(exc, stages, start)

    def process_ocr_result(
        self,
        ocr: OCRResult,
        options: ProcessingOptions | None = None,
        image_hash: str = UNKNOWN_HASH,
    ) -> HybridProcessingResult:
        """Run context, extraction and quality on an existing OCR result."""
        opts = options or self.options
        start = time.perf_counter()
        stages = ["Using provided OCR result"]
        try:
            if not self.registry.initialized:
                self.registry.initialize()
            return self._run_stages(ocr, opts, stages, [], start, image_hash)
        except Exception as exc:
            logger.exception("Error processing OCR result")
            return self._error_result(exc, stages, start)

    def extract_text(self, image_ref: ImageRef) -> OCRResult:
        """Run the OCR provider.

        Raises:
            PipelineStageError: If the provider fails; OCR has no fallback.
        """
        try:
            return self.ocr_provider.extract_text(image_ref)
        except Exception as exc:
            raise PipelineStageError("ocr", error_message(exc)) from exc

    def understand_context(self, ocr: OCRResult) -> ContextualResult:
        return self._context_stage(ocr).value

    def extract_structured_data(self, context: ContextualResult) -> StructuredData:
        return self._extraction_stage(context).value[0]

    def compare_extractors(self, context: ContextualResult) -> MultiExtractionResult:
        """Run alternative strategies and recommend one; never changes results."""
        if not self.registry.initialized:
            self.registry.initialize()
        return self.registry.extract_with_multiple_extractors(
            context, self.extraction.compare_threshold
        )

    def select_extractor(self, context: ContextualResult) -> ExtractionStrategy:
        if not self.extraction.reselect_low_confidence:
            return self.registry.get_extractor(context.document_type)
        strategy, _ = self.registry.get_best_extractor(
            context, self.extraction.reselect_threshold
        )
        return strategy

    def _preprocess(
        self,
        image_ref: ImageRef,
        opts: ProcessingOptions,
        stages: list[str],
        degraded: list[str],
    ) -> tuple[ImageRef, str]:
        if self.preprocessor is None:
            return image_ref, UNKNOWN_HASH
        try:
            prepared = self.preprocessor.preprocess_image(
                image_ref, enhance=opts.enable_preprocessing
            )
        except Exception as exc:
            logger.warning("Image preprocessing failed, using original image: %s", exc)
            stages.append("Preprocessing failed, using original image")
            degraded.append("preprocessing")
            return image_ref, UNKNOWN_HASH
        stages.append(f"Preprocessed {prepared.width}x{prepared.height} image")
        return prepared.image, prepared.content_hash

    def _context_stage(self, ocr: OCRResult) -> StageOutcome[ContextualResult]:
        try:
            return self.context_engine.analyze(ocr)
        except Exception as exc:
            logger.warning("Context understanding failed, using basic detection: %s", exc)
            return StageOutcome(basic_contextual_result(ocr), True, error_message(exc))

    def _extraction_stage(self, context: ContextualResult) -> StageOutcome[Extraction]:
        try:
            strategy = self.select_extractor(context)
            logger.info(
                "Extracting structured data for %s with %s extractor",
                context.document_type,
                strategy.name,
            )
            data = strategy.extract(context)
            return StageOutcome((data, strategy.validate(data)))
        except Exception as exc:
            logger.warning("Structured extraction failed, using generic record: %s", exc)
            return StageOutcome((generic_record(context), None), True, error_message(exc))

    def _run_stages(
        self,
        ocr: OCRResult,
        opts: ProcessingOptions,
        stages: list[str],
        degraded: list[str],
        start: float,
        image_hash: str,
    ) -> HybridProcessingResult:
        warnings: list[str] = []
        if ocr.confidence < opts.quality_threshold:
            warnings.append(f"Low OCR confidence: {ocr.confidence:.2f}")

        if opts.enable_context_understanding:
            stages.append("Starting context understanding")
            context_outcome = self._context_stage(ocr)
            context = context_outcome.value
            if context_outcome.fallback_used:
                degraded.append("context")
            stages.append(f"Context analysis completed: {context.document_type}")
        else:
            context = basic_contextual_result(ocr)
            stages.append("Used basic document type detection")

        validation: ValidationResult | None = None
        if opts.enable_structured_extraction:
            stages.append("Starting structured data extraction")
            extraction_outcome = self._extraction_stage(context)
            data, validation = extraction_outcome.value
            if extraction_outcome.fallback_used:
                degraded.append("extraction")
                stages.append("Structured extraction failed, used generic data structure")
            else:
                stages.append("Structured data extraction completed")
        else:
            data = generic_record(context)
            stages.append("Used generic data structure")

        metrics = self.quality.assess(ocr, context, data)

        elapsed_ms = (time.perf_counter() - start) * 1000
        stages.append(f"Total processing time: {elapsed_ms:.0f}ms")
        if elapsed_ms > opts.max_processing_time_ms:
            warnings.append(
                f"Processing exceeded time limit: {elapsed_ms:.0f} > "
                f"{opts.max_processing_time_ms}ms"
            )

        logger.info(
            "Document processing completed in %.0fms: %s (%.3f), quality %.3f",
            elapsed_ms,
            context.document_type,
            context.confidence,
            metrics.confidence,
        )
        return HybridProcessingResult(
            ocr_result=ocr,
            contextual_result=context,
            structured_data=data,
            quality_metrics=metrics,
            metadata=ProcessingMetadata(
                processing_time_ms=elapsed_ms,
                image_hash=image_hash,
                timestamp=datetime.now(timezone.utc).isoformat(),
                processing_stages=tuple(stages),
                warnings=tuple(warnings),
                degraded_stages=tuple(degraded),
            ),
            validation=validation,
        )

    def _error_result(
        self, exc: BaseException, stages: list[str], start: float
    ) -> HybridProcessingResult:
        message = error_message(exc)
        empty_ocr = OCRResult(text="", confidence=0.0, engine="none")
        context = ContextualResult(
            document_type=DocumentType.UNKNOWN,
            confidence=0.0,
            context=DocumentContext(layout=LayoutInfo(confidence=0.0)),
            raw_ocr=empty_ocr,
            backend="none",
        )
        return HybridProcessingResult(
            ocr_result=empty_ocr,
            contextual_result=context,
            structured_data=GenericDocumentData(
                title="Processing Failed", metadata={"error": message}
            ),
            quality_metrics=QualityAssurance.empty_metrics(f"Processing error: {message}"),
            metadata=ProcessingMetadata(
                processing_time_ms=(time.perf_counter() - start) * 1000,
                image_hash=ERROR_HASH,
                timestamp=datetime.now(timezone.utc).isoformat(),
                processing_stages=(*stages, f"Error: {message}"),
            ),
        )

    def processing_stats(self) -> dict[str, Any]:
        engines = getattr(self.ocr_provider, "available_engines", [self.ocr_provider.name])
        return {
            "initialized": self._initialized,
            "ocr_engines": list(engines),
            "context_engine": self.context_engine.initialized,
            "context_backend": getattr(self.context_engine.backend, "name", "rules"),
            "supported_document_types": [str(t) for t in self.registry.supported_types()],
            "extraction": self.registry.extraction_stats(),
            "preprocessing_cache": (
                self.preprocessor.cache_size() if self.preprocessor is not None else 0
            ),
        }

    def validate_configuration(self) -> dict[str, Any]:
        """Report problems that would degrade processing.

        Returns:
            ``{"is_valid": bool, "issues": [str, ...]}``.
        """
        issues: list[str] = []
        if not self._initialized:
            issues.append("Processor not initialized")
        if not getattr(self.ocr_provider, "available_engines", [self.ocr_provider.name]):
            issues.append("No OCR engines available")
        if not self.context_engine.initialized:
            issues.append("Context engine not initialized")
        if self.registry.initialized:
            failing = self.registry.validate_extractors()["failing"]
            issues.extend(f"Extractor cannot handle {name}" for name in failing)
        if not 0.0 <= self.options.quality_threshold <= 1.0:
            issues.append("Quality threshold must be between 0 and 1")
        if self.options.max_processing_time_ms <= 0:
            issues.append("Maximum processing time must be positive")
        return {"is_valid": not issues, "issues": issues}

    def clear_cache(self) -> None:
        if self.preprocessor is not None:
            self.preprocessor.clear_cache()
        logger.info("Processor caches cleared")


def build_processor(config: AppConfig | None = None) -> HybridDocumentProcessor:
    """Wire a processor from application configuration."""
    config = config or AppConfig()
    return HybridDocumentProcessor(
        ocr_provider=build_ocr_provider(config),
        context_engine=build_context_engine(config.context),
        registry=ExtractorRegistry(),
        quality=QualityAssurance(config.quality),
        preprocessor=ImagePreprocessor(config.preprocessing),
        options=config.processing,
        extraction=config.extraction,
    )
