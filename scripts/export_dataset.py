from __future__ import annotations

import argparse
from pathlib import Path

from studio_api.app.dataset_tools import EXTENSIONS, export_dataset


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a fine-tune JSONL file to CSV, Excel, or plain text."
    )
    parser.add_argument("path", type=Path, help="Source JSONL file.")
    parser.add_argument(
        "--format",
        dest="fmt",
        choices=sorted(EXTENSIONS),
        default="csv",
        help="Output format.",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Directory for the exported file (defaults to the source directory).",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    content = args.path.read_text(encoding="utf-8")
    exported = export_dataset(content, args.fmt, source_filename=args.path.name)
    out_dir = args.out_dir or args.path.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / exported.filename
    target.write_bytes(exported.payload)
    print(f"Wrote {target} ({len(exported.payload)} bytes, format={args.fmt})")


if __name__ == "__main__":
    main()
