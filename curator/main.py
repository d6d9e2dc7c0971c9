"""
Paperless AI Curator - Main Entry Point

Command-line access to metadata consolidation, AI tagging and summaries.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict

from curator.config import load_config
from curator.consolidation import ConsolidationService, PeriodicReporter
from curator.llm import LLMClient
from curator.paperless_client import PaperlessClient
from curator.state import StateManager
from curator.summary import SummaryService
from curator.tagging import DocumentTagger

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_paperless_client(config: Dict[str, Any]) -> PaperlessClient:
    return PaperlessClient(
        config['paperless_api_base_url'],
        config['paperless_api_token'],
        timeout=config['request_timeout_seconds'],
        min_request_interval=config['min_request_interval_seconds'],
    )


def build_llm_client(config: Dict[str, Any]) -> LLMClient:
    return LLMClient(
        provider=config['llm_provider'],
        api_key=config['llm_api_key'],
        model=config['llm_model'],
    )


def run_find(args, config, paperless) -> int:
    service = ConsolidationService(paperless, config)
    groups = service.find_similar(args.kind, threshold=args.threshold,
                                  use_approximate=args.advanced or None)
    for group in groups:
        print(', '.join(f"{e.name} ({e.id}, {e.document_count} docs)" for e in group))
    logger.info(f"Found {len(groups)} groups of similar {args.kind}")
    return 0


def run_consolidate(args, config, paperless) -> int:
    service = ConsolidationService(paperless, config)

    reporter = None
    if config['enable_performance_monitoring']:
        reporter = PeriodicReporter(service.current_monitor,
                                    interval=config['monitoring_interval_seconds'])
        reporter.start()
    try:
        result = service.plan_and_merge(args.kind, threshold=args.threshold,
                                        use_approximate=args.advanced or None,
                                        dry_run=args.dry_run)
    finally:
        if reporter:
            reporter.stop()

    for detail in result['merge_details']:
        print(detail)
    for error in result['errors']:
        logger.error(error)
    return 0 if result['success'] else 1


def run_merge(args, config, paperless) -> int:
    service = ConsolidationService(paperless, config)
    result = service.consolidate(args.kind, args.primary, args.merge_ids, dry_run=args.dry_run)

    for detail in result['merge_details']:
        print(detail)
    for error in result['errors']:
        logger.error(error)
    if result['success']:
        logger.info(f"Updated {len(result['updated_documents'])} documents")
    return 0 if result['success'] else 1


def run_summarize(args, config, paperless) -> int:
    service = SummaryService(paperless, build_llm_client(config))
    result = service.batch_process_summaries(args.doc_ids)
    print(json.dumps(result, indent=2, default=str))
    return 0 if result['success'] else 1


def run_tag(args, config, paperless) -> int:
    state = StateManager(config['state_dir'])
    tagger = DocumentTagger(paperless, build_llm_client(config), config, state)
    if args.doc_id:
        result = tagger.tag_document(args.doc_id)
        print(json.dumps(result, indent=2, default=str))
        return 0 if result['success'] else 1

    result = tagger.process_new_documents(limit=args.limit)
    return 0 if result['failed'] == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Paperless AI Curator')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, help_text in (('find', 'List groups of similar entities'),
                            ('consolidate', 'Merge similar entities')):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--kind', default='tags',
                         choices=['tags', 'correspondents', 'document_types'],
                         help='Entity kind to consolidate')
        sub.add_argument('--threshold', type=float, help='Similarity threshold (0-1)')
        sub.add_argument('--advanced', action='store_true',
                         help='Use the indexed algorithm for large datasets')
        if name == 'consolidate':
            sub.add_argument('--dry-run', action='store_true',
                             help='Report merges without writing anything')

    sub = subparsers.add_parser('merge', help='Merge chosen entities into a primary one')
    sub.add_argument('--kind', default='tags',
                     choices=['tags', 'correspondents', 'document_types'],
                     help='Entity kind to merge')
    sub.add_argument('--primary', type=int, required=True, help='ID of the entity to keep')
    sub.add_argument('merge_ids', type=int, nargs='+', help='IDs of the entities to merge into it')
    sub.add_argument('--dry-run', action='store_true',
                     help='Report the merge without writing anything')

    sub = subparsers.add_parser('summarize', help='Summarize documents into notes')
    sub.add_argument('doc_ids', type=int, nargs='+', help='Document IDs')

    sub = subparsers.add_parser('tag', help='Apply AI metadata to documents')
    sub.add_argument('--doc-id', type=int, help='Tag a single document by ID')
    sub.add_argument('--limit', type=int, help='Maximum number of documents to tag')

    return parser


COMMANDS = {
    'find': run_find,
    'consolidate': run_consolidate,
    'merge': run_merge,
    'summarize': run_summarize,
    'tag': run_tag,
}


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    config = load_config()

    if not config['paperless_api_token']:
        logger.error("PAPERLESS_API_TOKEN not set")
        sys.exit(1)

    paperless = build_paperless_client(config)
    sys.exit(COMMANDS[args.command](args, config, paperless))


if __name__ == '__main__':
    main()
