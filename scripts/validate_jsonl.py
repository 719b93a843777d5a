from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from studio_api.app.validator import validate_jsonl_file


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check a fine-tune JSONL file without uploading it."
    )
    parser.add_argument("path", type=Path, help="JSONL file to validate.")
    parser.add_argument(
        "--max-errors",
        type=int,
        default=50,
        help="Maximum number of error lines printed in human-readable mode.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON output instead of human-readable output.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if not args.path.exists():
        print(f"File not found: {args.path}", file=sys.stderr)
        return 2

    record = validate_jsonl_file(args.path)
    if args.json:
        print(
            json.dumps(
                {
                    "path": str(args.path),
                    "isValid": record.is_valid,
                    "totalLines": record.total_lines,
                    "errors": record.errors,
                },
                indent=2,
            )
        )
        return 0 if record.is_valid else 1

    print(f"Validated {args.path} total_lines={record.total_lines}")
    if record.is_valid:
        print("OK: file is ready for fine-tuning upload.")
        return 0

    print(f"FAILED: {len(record.errors)} error(s)")
    for message in record.errors[: args.max_errors]:
        print(f"  - {message}")
    hidden = len(record.errors) - args.max_errors
    if hidden > 0:
        print(f"  ... {hidden} more")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
