import argparse
import json
import sys
from dataclasses import asdict

from grounded_qa.logging_utils import setup_logging
from grounded_qa.pipeline import DocumentQAService


def main() -> int:
    """Answer a question against the last indexed document."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("question")
    parser.add_argument("--show-candidates", type=int, default=0, help="Include the top N fused candidates")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    setup_logging(args.log_level)
    service = DocumentQAService.from_settings()
    if not service.load():
        print(json.dumps({"error": "no indexed document; run scripts/ingest_document.py first"}), file=sys.stderr)
        return 1

    result = service.query(args.question)
    payload = asdict(result)
    payload["candidates"] = payload["candidates"][: args.show_candidates]
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
