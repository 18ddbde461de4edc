from __future__ import annotations

import argparse
import json
import re
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import load_settings
from .errors import PreprocessError
from .logging_utils import add_logging_args, configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prepare SMS screenshots for OCR (quality, rotation, enhancement).")
    parser.add_argument("--file", required=True, help="Path to the input screenshot or photo.")
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory where JSON reports and processed images are saved (default: OUTPUT_DIR or output).",
    )
    parser.add_argument(
        "--save-processed",
        action="store_true",
        help="Also write the processed PNG next to the JSON report.",
    )
    parser.add_argument(
        "--ocr-engine",
        default=None,
        choices=["auto", "tesseract", "paddle", "easy", "none"],
        help="Override OCR engine for this run ('none' skips OCR).",
    )
    add_logging_args(parser)
    return parser


def _safe_stem(path: Path) -> str:
    stem = re.sub(r"[^A-Za-z0-9_.-]+", "_", path.stem).strip("._")
    return stem or "image"


def save_result_json(payload: dict[str, Any], input_file: str, output_dir: str) -> Path:
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    src = Path(input_file)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    out_path = out_dir / f"{_safe_stem(src)}_{timestamp}.json"
    out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return out_path


def main(argv: list[str] | None = None) -> None:
    from .ocr_backends import build_ocr_backend
    from .preprocessor import Preprocessor

    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.ocr_engine:
        settings = replace(settings, ocr_engine=args.ocr_engine)
    if args.output_dir:
        settings = replace(settings, output_dir=args.output_dir)

    configure_logging(log_level=args.log_level or settings.log_level, verbose=args.verbose, quiet=args.quiet)

    preprocessor = Preprocessor(settings)
    try:
        result = preprocessor.process(args.file)
    except PreprocessError as exc:
        raise SystemExit(f"Preprocessing failed: {exc}") from exc

    payload = result.to_dict()
    if args.save_processed:
        payload["processed_file"] = str(preprocessor.save_processed(result, settings.output_dir))

    if settings.ocr_engine != "none":
        try:
            backend = build_ocr_backend(settings)
        except (RuntimeError, ValueError) as exc:
            raise SystemExit(str(exc)) from exc
        payload["ocr"] = backend.run(result.final).to_dict()

    out_path = save_result_json(payload, input_file=args.file, output_dir=settings.output_dir)
    payload["output_file"] = str(out_path)
    print(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
