"""
Command-Line Interface for the News Article Agent

Provides CLI commands for:
- Article ingestion (single URL or file of URLs)
- Question answering (or single-article summaries for queries with a URL)
- Running the HTTP server
- Running the Kafka listener
- System statistics
"""

import sys
import signal
import argparse
import logging
from pathlib import Path

from .config import KAFKA_MODES, ConfigValidationError
from .errors import NewsAgentError
from .main_pipeline import NewsAgent


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def cmd_ingest(args):
    """Handle the ingest command."""
    agent = NewsAgent()

    if args.url:
        print(f"Ingesting article from: {args.url}")
        try:
            article = agent.ingest_article(args.url)
        except NewsAgentError as e:
            print(f"✗ Failed to ingest article: {e}")
            sys.exit(1)

        print("✓ Successfully ingested article")
        print(f"  Title: {article.title}")
        print(f"  Date: {article.date}")

    elif args.file:
        if not Path(args.file).exists():
            print(f"✗ Error: File not found: {args.file}")
            sys.exit(1)

        print(f"Ingesting articles from: {args.file}")
        results = agent.ingest_from_file(args.file, delay=args.delay, show_progress=True)

        print(f"\n{'='*60}")
        print("Ingestion Summary:")
        print(f"  Total URLs: {results['total']}")
        print(f"  Successful: {results['successful']}")
        print(f"  Failed: {results['failed']}")
        print(f"  Processing time: {results['processing_time']:.2f}s")
        print(f"{'='*60}")

        if results['failed'] > 0:
            print("\nFailed URLs:")
            for detail in results['details']:
                if not detail['success']:
                    print(f"  - {detail['url']}: {detail.get('error', 'Unknown error')}")
            sys.exit(1)

    else:
        print("✗ Error: Either --url or --file must be specified")
        sys.exit(1)


def cmd_ask(args):
    """Handle the ask command."""
    agent = NewsAgent()
    if args.top_k is not None:
        try:
            agent.config.update(top_k_default=args.top_k)
        except ConfigValidationError as e:
            print(f"✗ Error: {e}")
            sys.exit(1)
        agent.retriever.top_k = args.top_k
        agent.rag_service.top_k = args.top_k

    print(f"Question: {args.question}")
    print()

    try:
        result = agent.handle_query(args.question)
    except NewsAgentError as e:
        print(f"✗ Error: {e}")
        sys.exit(1)

    print("Answer:")
    print(result.answer)
    print()

    if not args.no_sources and result.sources:
        print("Sources:")
        for i, source in enumerate(result.sources, 1):
            print(f"  [{i}] {source.title}")
            print(f"      {source.url} ({source.date})")


def cmd_serve(args):
    """Handle the serve command."""
    from .api.server import run_server

    run_server(NewsAgent(), host=args.host, port=args.port)


def cmd_consume(args):
    """Handle the consume command."""
    from .messaging.consumer import ArticleConsumer

    agent = NewsAgent()
    listener = ArticleConsumer.from_config(agent, mode=args.mode)

    # SIGTERM behaves like Ctrl-C so the consumer closes cleanly
    signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        listener.run()
    except KeyboardInterrupt:
        listener.stop()
    print(f"Consumer stopped: {listener.stats}")


def cmd_stats(args):
    """Handle the stats command."""
    agent = NewsAgent()
    stats = agent.get_stats()
    vector_stats = stats['vector_store_stats']
    cache_stats = stats['cache_stats']

    print("="*60)
    print("System Statistics")
    print("="*60)
    print(f"Stored articles: {vector_stats['total_vectors']}")
    print(f"Embedding dimension: {vector_stats['dimension']}")
    print(f"Index path: {vector_stats['index_path']}")
    print(f"Chat model: {stats['chat_model']}")
    print(f"Embedding model: {stats['embedding_model']}")
    print(f"Embedding cache hit rate: {cache_stats['hit_rate']:.1%}")
    print("="*60)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='news-agent',
        description='News Article Agent - RAG over scraped news articles'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Ingest command
    ingest_parser = subparsers.add_parser('ingest', help='Ingest articles into the vector store')
    ingest_group = ingest_parser.add_mutually_exclusive_group()
    ingest_group.add_argument('--url', help='Single article URL')
    ingest_group.add_argument('--file', help='File with one URL per line')
    ingest_parser.add_argument('--delay', type=float, default=1.0,
                               help='Delay between requests in seconds (default: 1.0)')
    ingest_parser.set_defaults(func=cmd_ingest)

    # Ask command
    ask_parser = subparsers.add_parser('ask', help='Ask a question or summarize a linked article')
    ask_parser.add_argument('question', help='Question, optionally containing an article URL')
    ask_parser.add_argument('--top-k', type=int, default=None, help='Number of articles to retrieve')
    ask_parser.add_argument('--no-sources', action='store_true', help='Hide cited sources')
    ask_parser.set_defaults(func=cmd_ask)

    # Serve command
    serve_parser = subparsers.add_parser('serve', help='Run the HTTP server')
    serve_parser.add_argument('--host', default=None, help='Bind address (default: HOST)')
    serve_parser.add_argument('--port', type=int, default=None, help='Port (default: PORT)')
    serve_parser.set_defaults(func=cmd_serve)

    # Consume command
    consume_parser = subparsers.add_parser('consume', help='Run the Kafka listener')
    consume_parser.add_argument('--mode', choices=KAFKA_MODES, default=None,
                                help='Message handling mode (default: KAFKA_MODE)')
    consume_parser.set_defaults(func=cmd_consume)

    # Stats command
    stats_parser = subparsers.add_parser('stats', help='Show system statistics')
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    args.func(args)


if __name__ == '__main__':
    main()
