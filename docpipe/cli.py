"""Command-line interface for document processing.

Subcommands process a single image to JSON, a folder of images to CSV,
print the quality report for one image, or start the API server.
"""

import argparse
import csv
import json
import sys
from pathlib import Path

from docpipe.api.schemas import ProcessResponse
from docpipe.pipeline import HybridDocumentProcessor, build_processor
from docpipe.quality import generate_quality_report
from docpipe.utils.config import load_config
from docpipe.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.bmp")
_CSV_COLUMNS = [
    "filename",
    "status",
    "document_type",
    "classification_confidence",
    "ocr_confidence",
    "quality_confidence",
    "is_valid",
    "processing_time_ms",
    "warnings",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory."""
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _create_processor(config_path: Path | None) -> HybridDocumentProcessor:
    config = load_config(config_path)
    setup_logging(config.log_level)
    processor = build_processor(config)
    processor.initialize()
    return processor


def extract_single(
    processor: HybridDocumentProcessor,
    file_path: Path,
    use_context: bool = True,
    use_extraction: bool = True,
) -> dict[str, object]:
    """Process one image and return the JSON-ready result.

    Args:
        processor: Initialized processor.
        file_path: Image to process.
        use_context: Enable context understanding.
        use_extraction: Enable structured extraction.

    Returns:
        Dictionary with the filename and the processing response.
    """
    options = processor.options.model_copy(
        update={
            "enable_context_understanding": use_context,
            "enable_structured_extraction": use_extraction,
        }
    )
    result = processor.process_document(file_path, options)
    return {
        "filename": file_path.name,
        **ProcessResponse.from_result(result).model_dump(mode="json"),
    }


def process_folder(
    processor: HybridDocumentProcessor,
    input_dir: Path,
    output_csv: Path,
    verbose: bool = False,
) -> dict[str, int]:
    """Process every image in a folder and export one CSV row per file.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))
    rows: list[dict[str, object]] = []
    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")
        result = processor.process_document(file_path)
        metrics = result.quality_metrics
        rows.append(
            {
                "filename": file_path.name,
                "status": "failed" if result.failed else "success",
                "document_type": str(result.contextual_result.document_type),
                "classification_confidence": round(result.contextual_result.confidence, 3),
                "ocr_confidence": round(result.ocr_result.confidence, 3),
                "quality_confidence": round(metrics.confidence, 3),
                "is_valid": result.validation.is_valid if result.validation else None,
                "processing_time_ms": round(result.metadata.processing_time_ms, 1),
                "warnings": " | ".join(metrics.warnings),
                "error": result.structured_data.metadata.get("error")
                if result.failed
                else None,
            }
        )

    _write_csv(rows, output_csv)
    failed = sum(1 for row in rows if row["status"] == "failed")
    summary = {"total": len(rows), "successful": len(rows) - failed, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
    logger.info("Results written to %s", output_path)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def quality_report(processor: HybridDocumentProcessor, file_path: Path) -> str:
    """Quality report for one image, followed by the extractor recommendation."""
    result = processor.process_document(file_path)
    report = generate_quality_report(result.quality_metrics)
    if result.failed:
        return report
    comparison = processor.compare_extractors(result.contextual_result)
    return (
        f"{report}\n\n=== EXTRACTOR RECOMMENDATION ===\n"
        f"Document type: {result.contextual_result.document_type} "
        f"({result.contextual_result.confidence:.2f})\n"
        f"{comparison.recommendation}"
    )


def serve(host: str, port: int, config_path: Path | None = None) -> None:
    """Start the FastAPI application with uvicorn."""
    import uvicorn

    from docpipe.api.app import app

    config = load_config(config_path)
    setup_logging(config.log_level)
    uvicorn.run(app, host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        prog="docpipe",
        description="Hybrid document processing pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("file", type=Path, help="Image file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    single_parser.add_argument(
        "--no-context", action="store_true", help="Use keyword-only classification"
    )
    single_parser.add_argument(
        "--no-extraction", action="store_true", help="Skip structured extraction"
    )

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with images")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    report_parser = subparsers.add_parser("report", help="Print a quality report")
    report_parser.add_argument("file", type=Path, help="Image file to process")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        serve(args.host, args.port, args.config)
        return

    target = args.input_dir if args.command == "batch" else args.file
    exists = target.is_dir() if args.command == "batch" else target.exists()
    if not exists:
        kind = "a directory" if args.command == "batch" else "an existing file"
        print(f"Error: {target} is not {kind}", file=sys.stderr)
        sys.exit(1)

    processor = _create_processor(args.config)

    if args.command == "batch":
        process_folder(processor, args.input_dir, args.output, args.verbose)
    elif args.command == "extract":
        result = extract_single(
            processor, args.file, not args.no_context, not args.no_extraction
        )
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        print(quality_report(processor, args.file))


if __name__ == "__main__":
    main()
