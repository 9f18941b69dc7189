"""
KB Search - Query the knowledge base from the command line

Usage:
    kb-search "printer offline after update"
    kb-search --file ticket.txt --product printers --limit 10
    echo "vpn drops every hour" | kb-search --json
"""

import sys
import json
import argparse
import logging
from pathlib import Path

from kb_rag.exceptions import ConfigurationError, KBRagError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search the KB RAG knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kb-search "printer offline after update"
  kb-search --file ticket.txt --product printers
  kb-search "vpn drops" --disable-keywords --json
        """
    )
    parser.add_argument("query", nargs="?", help="Search text (or use --file / stdin)")
    parser.add_argument("--text", help="Search text")
    parser.add_argument("--file", help="Read search text from a file")
    parser.add_argument("--limit", type=int, help="Number of results (default: retrieval.top_k)")
    parser.add_argument("--audience", help="Audience tag (default: retrieval.default_audience)")
    parser.add_argument("--status", help="Status tag (default: retrieval.default_status)")
    parser.add_argument("--product", help="Product tag")
    parser.add_argument("--candidate-limit", type=int, help="Maximum chunks to rerank")
    parser.add_argument("--keyword-limit", type=int, help="Maximum keyword-matched pages")
    parser.add_argument("--term-limit", type=int, help="Maximum query terms")
    parser.add_argument(
        "--disable-keywords",
        action="store_true",
        help="Skip keyword narrowing and rerank all tag-matching chunks"
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--config", help="Path to .kb-rag.yml (default: search upwards)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def read_query(args) -> str:
    if args.text:
        return args.text
    if args.query:
        return args.query
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    return sys.stdin.read()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    text = read_query(args)
    if not text or not text.strip():
        print("Search text is required via argument, --text, --file, or stdin.", file=sys.stderr)
        return 1

    try:
        from kb_rag.config import load_config
        from kb_rag.indexing.embedder import create_embedder
        from kb_rag.models import SearchLimits
        from kb_rag.retrieval.pipeline import HybridSearch
        from kb_rag.storage import QueryExecutor

        config = load_config(args.config)
        retrieval = config.retrieval
        limits = SearchLimits(
            candidate_limit=args.candidate_limit or retrieval.candidate_limit,
            keyword_limit=args.keyword_limit or retrieval.keyword_limit,
            term_limit=args.term_limit or retrieval.term_limit,
            top_k=args.limit or retrieval.top_k,
        )

        executor = QueryExecutor.from_config(config.database)
        try:
            search = HybridSearch(executor, retrieval, embedder=create_embedder(config.embedding))
            results = search.search_text(
                text,
                filters=search.default_filters(args.audience, args.status, args.product),
                limits=limits,
                disable_keywords=args.disable_keywords,
            )
        finally:
            executor.dispose()

        if args.json:
            print(json.dumps([r.to_dict() for r in results], indent=2))
        else:
            print(search.format_results(results))
        return 0

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except KBRagError as e:
        print(f"Error during search: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
