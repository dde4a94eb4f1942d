# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Command line entry point: python -m storesearch

    index FILE          bulk (re-)index a JSON array or JSON Lines file
    search QUERY        print ranked results as JSON
    remove PATH         drop the entry of one source document
    stats | clear
"""
import argparse
import json
import logging
import sys
from pathlib import Path

from .config import Config
from .engine import SearchEngine
from .errors import SearchEngineError
from .models import FieldSpec


def _read_documents(path: Path) -> list[dict]:
    text = path.read_text()
    stripped = text.lstrip()
    if stripped.startswith("["):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _parse_fields(raw: list[str] | None) -> list[FieldSpec] | None:
    """"name" or "name:weight" or "name:weight:exact"."""
    if not raw:
        return None
    specs = []
    for item in raw:
        parts = item.split(":")
        spec = {"name": parts[0]}
        if len(parts) > 1 and parts[1]:
            spec["weight"] = float(parts[1])
        if len(parts) > 2:
            spec["fuzzy_search"] = parts[2] != "exact"
        specs.append(FieldSpec(**spec))
    return specs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storesearch", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--config", type=Path, default=None, help="JSON overrides file")
    parser.add_argument("--collection", default=None, help="index collection name")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p_index = sub.add_parser("index", help="bulk index documents")
    p_index.add_argument("file", type=Path)
    p_index.add_argument("--field", action="append", dest="fields",
                         help="field to index, name[:weight[:exact]] (repeatable)")
    p_index.add_argument("--display", action="append", dest="display_keys",
                         help="key returned with results (repeatable, default: all)")

    p_search = sub.add_parser("search", help="search the index")
    p_search.add_argument("query")
    p_search.add_argument("--field", action="append", dest="fields",
                          help="field to search, name[:weight[:exact]] (repeatable)")
    p_search.add_argument("--only", default=None, help="search a single field")
    p_search.add_argument("--limit", type=int, default=None)
    p_search.add_argument("--threshold", type=float, default=None)

    p_remove = sub.add_parser("remove", help="remove one document's entry")
    p_remove.add_argument("path")

    sub.add_parser("stats", help="show index statistics")
    sub.add_parser("clear", help="drop every entry of the collection")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    config = Config.load(args.config)
    if args.collection:
        config = config.model_copy(update={"collection_name": args.collection})

    try:
        engine = SearchEngine(config)
        if args.command == "index":
            documents = _read_documents(args.file)
            result = engine.bulk_index(documents, _parse_fields(args.fields), args.display_keys)
            print(json.dumps(result, indent=2))
            return 0 if result["status"] == "success" else 1
        if args.command == "search":
            results = engine.search({
                "query_text": args.query,
                "limit": args.limit,
                "distance_threshold": args.threshold,
                "fields": _parse_fields(args.fields) or [],
                "single_field": args.only,
            })
            print(json.dumps([r.to_dict() for r in results], indent=2, default=str))
            return 0
        if args.command == "remove":
            print(json.dumps({"removed": engine.remove(args.path)}))
            return 0
        if args.command == "stats":
            print(json.dumps(engine.status, indent=2, default=str))
            return 0
        if args.command == "clear":
            engine.clear()
            print(json.dumps({"status": "cleared", "collection": config.collection_name}))
            return 0
    except SearchEngineError as e:
        logging.getLogger("storesearch").error("%s", e)
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
