import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from grounded_qa.errors import DocumentProcessingError
from grounded_qa.logging_utils import setup_logging
from grounded_qa.pipeline import DocumentQAService


def main() -> int:
    """Index a Markdown or plain-text document and persist its indexes."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("path", type=Path, help="Document to index")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--json-logs", action="store_true")
    args = parser.parse_args()

    setup_logging(args.log_level, json_logs=args.json_logs)
    service = DocumentQAService.from_settings()
    try:
        result = service.ingest(args.path.read_text(encoding="utf-8"), args.path.name)
    except DocumentProcessingError as exc:
        print(json.dumps({"error": type(exc).__name__, "message": str(exc)}), file=sys.stderr)
        return 1
    print(json.dumps(asdict(result), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
