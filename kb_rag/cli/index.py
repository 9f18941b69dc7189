"""
KB Index - (Re)index stale BookStack pages from the command line

Usage:
    kb-index
    kb-index --page-id 42 --overwrite
    kb-index --since 2024-01-01 --limit 100 --dry-run
"""

import sys
import argparse
import logging
from datetime import datetime

from kb_rag.exceptions import ConfigurationError, IndexingError, KBRagError


def _parse_since(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"--since expects an ISO date/time, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Index BookStack pages into the KB RAG chunk table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kb-index
  kb-index --page-id 42 --overwrite
  kb-index --since 2024-01-01 --limit 100
  kb-index --dry-run
        """
    )
    parser.add_argument("--page-id", type=int, help="Index a single page")
    parser.add_argument("--since", type=_parse_since, help="Only pages updated at or after this time")
    parser.add_argument("--limit", type=int, help="Maximum number of pages to index")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Re-index pages even when their chunks are current"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Chunk pages and report counts without writing anything"
    )
    parser.add_argument(
        "--create-table",
        action="store_true",
        help="Create the kb_chunk table if it does not exist"
    )
    parser.add_argument("--config", help="Path to .kb-rag.yml (default: search upwards)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        from kb_rag.config import load_config
        from kb_rag.indexing.embedder import create_embedder
        from kb_rag.indexing.indexer import KnowledgeBaseIndexer
        from kb_rag.notifications import create_notifier_from_config
        from kb_rag.storage import QueryExecutor, create_chunk_table

        config = load_config(args.config)
        embedder = create_embedder(config.embedding)
        executor = QueryExecutor.from_config(config.database)

        try:
            if args.create_table:
                create_chunk_table(executor.engine)

            indexer = KnowledgeBaseIndexer(
                executor=executor,
                embed_fn=embedder,
                embedding_model=config.embedding.model,
                config=config.indexing,
                notifier=create_notifier_from_config(config.notifications),
            )
            report = indexer.run(
                page_id=args.page_id,
                since=args.since,
                overwrite=args.overwrite,
                limit=args.limit,
                dry_run=args.dry_run,
                run_label=f"Indexing {config.project_name}",
            )
        finally:
            executor.dispose()

        summary = report.to_dict()
        print(
            f"\nIndexing complete: {summary['indexed']} indexed, "
            f"{summary['skipped_empty']} skipped, {summary['total_chunks']} chunks",
            file=sys.stderr
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except IndexingError as e:
        print(f"Indexing aborted at page {e.document_id}: {e.__cause__ or e}", file=sys.stderr)
        return 1
    except KBRagError as e:
        print(f"Error during indexing: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
