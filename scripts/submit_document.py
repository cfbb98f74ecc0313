"""Submit a document through the rate-limited client and print each outcome."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

sys.path.append(str(Path(__file__).resolve().parents[1]))

from adapters.crpt import CrptApi, SubmissionResult  # noqa: E402
from config import GateSettings  # noqa: E402
from documents import Document, sample_document  # noqa: E402
from utils.logging_setup import configure_logging, log_submission  # noqa: E402

logger = logging.getLogger("scripts.submit_document")


def load_document(path: str | None) -> Document:
    """Read a document JSON file, or return the sample document when no path is given."""
    if path is None:
        return sample_document()
    return Document.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))


def format_result(index: int, result: SubmissionResult) -> str:
    if result.ok:
        return f"#{index}: ok {result.body or ''}".rstrip()
    detail = f" ({result.detail})" if result.detail else ""
    return f"#{index}: {result.kind.value}{detail}"


async def submit_many(
    api: CrptApi, document: Any, signature: str, count: int
) -> list[SubmissionResult]:
    results = []
    for _ in range(count):
        result = await api.create_document(document, signature)
        log_submission(logger, result)
        results.append(result)
    return results


async def run(args: argparse.Namespace) -> int:
    settings = GateSettings.from_env()
    document = load_document(args.file)
    async with CrptApi.from_settings(settings) as api:
        results = await submit_many(api, document, args.signature, args.count)
    for index, result in enumerate(results, start=1):
        print(format_result(index, result))
    return 0 if all(result.ok for result in results) else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Submit a document to the creation endpoint")
    parser.add_argument("signature", help="Signature header value")
    parser.add_argument("--file", help="Path to a document JSON file (default: sample document)")
    parser.add_argument("--count", type=int, default=1, help="Number of submissions to attempt")
    args = parser.parse_args(argv)
    configure_logging("crpt-submit")
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
