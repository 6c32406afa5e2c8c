from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

import msdoc2text
from msdoc2text.extractors.data_types import DocContent
from msdoc2text.extractors.serialization import serialize_extraction


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="msdoc2text",
        description="Extract the text of a Word 97-2003 .doc file to stdout (or JSON with --json).",
    )
    parser.add_argument(
        "path",
        type=Path,
        help="Path to the .doc file to extract.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit structured JSON (text regions and metadata) instead of plain text.",
    )
    parser.add_argument(
        "--legacy-codec",
        default="gbk",
        help="Codec tried for unmapped single-byte characters (default: gbk).",
    )
    return parser


def _serialize_full_text(results: list[DocContent]) -> str:
    return "\n\n".join(result.get_full_text().rstrip() for result in results).rstrip()


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit as exc:
        code = exc.code if isinstance(exc.code, int) else 1
        return code

    if unknown:
        unknown_str = " ".join(unknown)
        print(
            f"msdoc2text: warning: unsupported arguments: {unknown_str}",
            file=sys.stderr,
        )
        return 1

    try:
        options = msdoc2text.DecoderOptions(legacy_codec=args.legacy_codec)
        results = list(msdoc2text.read_file(args.path, options))
        if not results:
            raise RuntimeError(f"No extraction results for {args.path}")
        if args.json:
            payload = serialize_extraction(results[0])
            json.dump(payload, sys.stdout)
            sys.stdout.write("\n")
        else:
            sys.stdout.write(_serialize_full_text(results))
            sys.stdout.write("\n")
        return 0
    except Exception as exc:
        print(f"msdoc2text: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
