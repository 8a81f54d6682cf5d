from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from trail_import.config import get_ai_config
from trail_import.orchestrator import SmartImportOptions, hybrid_import, smart_import
from trail_import.samples import SAMPLE_FORMATS, generate_sample_format


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="trail-import", description="Import a course document into trails.")
    parser.add_argument("file", nargs="?", help="Path to the document to import")
    parser.add_argument("--ai", action="store_true", help="Use the AI parser when structure confidence is low")
    parser.add_argument("--hybrid", action="store_true", help="Run the code parser first and improve it with AI")
    parser.add_argument("--sample", choices=SAMPLE_FORMATS, help="Print a sample document in this format and exit")
    parser.add_argument("--verbose", action="store_true", help="Log import events to stderr")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    if args.sample:
        print(generate_sample_format(args.sample))
        return
    if not args.file:
        parser.error("a file is required unless --sample is given")

    path = Path(args.file)
    content = path.read_bytes()
    if args.hybrid:
        result = asyncio.run(hybrid_import(content, path.name, get_ai_config()))
    else:
        result = asyncio.run(smart_import(content, path.name, SmartImportOptions(use_ai=args.ai)))

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))

    if result.warnings:
        print("\nWarnings:")
        for warning in result.warnings:
            print(f"- {warning}")


if __name__ == "__main__":
    main()
