#!/usr/bin/env python3
"""
Readwise EPUB Tool
Fetches the Readwise Reader inbox, groups the documents into batches and
renders each batch into an EPUB with percollate.
"""

import os
import sys
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv, dotenv_values

from data_fetcher import create_data_fetcher, ReaderAPIError, ReaderDataFetcher
from data_parser import PageFormatError
from grouping import group, DEFAULT_WORD_THRESHOLD
from models import Batch
from output_namer import OutputNamer
from renderer import (
    DEFAULT_AUTHOR,
    DEFAULT_RENDER_COMMAND,
    DryRunRenderer,
    PercollateRenderer,
    RenderOutcome,
    prepare_output_dir,
)
from storage import save_raw_json
from url_canonicalizer import canonicalize, drop_mailto_items

TOKEN_ENV_VAR = "READWISE_EPUB_READER_TOKEN"
CONFIG_FILE_KEYS = (TOKEN_ENV_VAR, "reader_token")


def default_config_path() -> str:
    config_home = os.getenv("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config"
    )
    return os.path.join(config_home, "readwise-epub", "config.env")


class ReaderAuthenticator:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or default_config_path()
        self.access_token = None
        self.session = None

    def _token_from_config_file(self) -> Optional[str]:
        if not os.path.isfile(self.config_path):
            return None
        values = dotenv_values(self.config_path)
        for key in CONFIG_FILE_KEYS:
            if values.get(key):
                return values[key]
        return None

    def load_credentials(self) -> bool:
        token = os.getenv(TOKEN_ENV_VAR)
        if not token or not token.strip():
            token = self._token_from_config_file()
        if not token or not token.strip():
            self.access_token = None
            self.session = None
            return False
        self.access_token = token.strip()
        self.session = requests.Session()
        return True

    def get_session(self) -> Optional[requests.Session]:
        return self.session


def setup_authentication(config_path: Optional[str] = None) -> Optional[ReaderAuthenticator]:
    authenticator = ReaderAuthenticator(config_path)
    if authenticator.load_credentials():
        return authenticator
    return None


logger = logging.getLogger(__name__)


class DumpError(Exception):
    """Raised when the fetched-documents snapshot cannot be written."""


@dataclass
class ExportSettings:
    location: str = "new"
    output_dir: str = "epubs"
    dump_path: str = "all_uris.json"
    word_threshold: int = DEFAULT_WORD_THRESHOLD
    requests_per_minute: int = 20
    renderer_command: str = DEFAULT_RENDER_COMMAND
    author: str = DEFAULT_AUTHOR
    timeout: Optional[float] = 30
    config_path: Optional[str] = None
    dry_run: bool = False


def build_batches(
    fetcher: ReaderDataFetcher,
    probe_session: requests.Session,
    base_query: Dict[str, str],
    dump_path: str,
    word_threshold: int = DEFAULT_WORD_THRESHOLD,
    timeout: Optional[float] = 30,
) -> List[Batch]:
    """
    Fetch, snapshot, filter, canonicalize and group the documents.

    Raises:
        ReaderAPIError, PageFormatError: if fetching fails
        DumpError: if the snapshot cannot be written
    """
    items = fetcher.fetch_all(base_query)

    logger.info(f"💾 Saving {len(items):,} documents to {dump_path}")
    if not save_raw_json([item.to_dict() for item in items], dump_path):
        raise DumpError(f"Could not write {dump_path}")

    items = drop_mailto_items(items)
    logger.info(f"🔗 Resolving redirects for {len(items):,} documents...")
    canonicalize(items, probe_session, timeout=timeout)

    return group(items, word_threshold)


def render_batches(batches: List[Batch], renderer, namer: OutputNamer) -> List[RenderOutcome]:
    """Name and render each batch in order. A failed batch does not stop the rest."""
    logger.info(f"Creating {len(batches)} groups of articles")
    outcomes = []
    for batch in batches:
        identity = namer.name(batch)
        logger.info(f"📦 Creating {identity.filename} from {len(batch.items)} articles")
        outcomes.append(renderer.render(identity, batch.urls))
    return outcomes


def export_epubs(settings: ExportSettings) -> int:
    """
    Run the whole export. Returns a process exit status.
    """
    authenticator = setup_authentication(settings.config_path)
    if not authenticator:
        logger.error(
            f"No reader token found. Set {TOKEN_ENV_VAR} or add it to "
            f"{settings.config_path or default_config_path()}"
        )
        return 1
    fetcher = create_data_fetcher(
        authenticator,
        requests_per_window=settings.requests_per_minute,
        window_seconds=60.0,
        timeout=settings.timeout,
    )
    if not fetcher:
        logger.error("Failed to create data fetcher. Exiting.")
        return 1

    logger.info(f"🚀 Fetching Reader documents (location: {settings.location})...")
    try:
        with requests.Session() as probe_session:
            batches = build_batches(
                fetcher,
                probe_session,
                {"location": settings.location},
                settings.dump_path,
                word_threshold=settings.word_threshold,
                timeout=settings.timeout,
            )
    except (ReaderAPIError, PageFormatError) as e:
        logger.error(f"❌ Error fetching documents: {e}")
        return 1
    except DumpError as e:
        logger.error(f"❌ {e}")
        return 1

    if settings.dry_run:
        renderer = DryRunRenderer()
    else:
        prepare_output_dir(settings.output_dir)
        renderer = PercollateRenderer(
            output_dir=settings.output_dir,
            command=settings.renderer_command,
            author=settings.author,
        )
    namer = OutputNamer(settings.output_dir)
    outcomes = render_batches(batches, renderer, namer)

    failed = [outcome for outcome in outcomes if not outcome.ok]
    print("\n" + "=" * 60)
    print("📊 EXPORT SUMMARY")
    print("=" * 60)
    print(f"📁 Output directory: {settings.output_dir}")
    print(f"   Books created: {len(outcomes) - len(failed)}")
    print(f"   Documents: {sum(len(batch.items) for batch in batches):,}")
    if failed:
        print(f"\n❌ Failed books: {len(failed)}")
        for outcome in failed:
            print(f"   {outcome.filename}: {outcome.error}")
    else:
        print("\n✅ Export completed successfully!")
    print("=" * 60)
    return 1 if failed else 0


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Readwise Reader to EPUB Tool")
    parser.add_argument("--location", default="new",
                        help="Reader location to export (default: new)")
    parser.add_argument("--output-dir", default="epubs",
                        help="Directory for generated EPUB files (default: epubs)")
    parser.add_argument("--dump-path", default="all_uris.json",
                        help="Where to write the fetched documents snapshot (default: all_uris.json)")
    parser.add_argument("--word-threshold", type=int, default=DEFAULT_WORD_THRESHOLD,
                        help=f"Words per dated book (default: {DEFAULT_WORD_THRESHOLD})")
    parser.add_argument("--requests-per-minute", type=int, default=20,
                        help="Reader API request budget (default: 20)")
    parser.add_argument("--renderer", default=DEFAULT_RENDER_COMMAND,
                        help=f"Renderer executable (default: {DEFAULT_RENDER_COMMAND})")
    parser.add_argument("--author", default=DEFAULT_AUTHOR,
                        help=f"Author shown on every book (default: {DEFAULT_AUTHOR})")
    parser.add_argument("--timeout", type=float, default=30,
                        help="HTTP timeout in seconds (default: 30)")
    parser.add_argument("--config", default=None,
                        help="Path to a dotenv-style config file holding the reader token")
    parser.add_argument("--dry-run", action="store_true",
                        help="Group and name books without running the renderer")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.requests_per_minute <= 0:
        parser.error("--requests-per-minute must be positive")

    load_dotenv()

    settings = ExportSettings(
        location=args.location,
        output_dir=args.output_dir,
        dump_path=args.dump_path,
        word_threshold=args.word_threshold,
        requests_per_minute=args.requests_per_minute,
        renderer_command=args.renderer,
        author=args.author,
        timeout=args.timeout,
        config_path=args.config,
        dry_run=args.dry_run,
    )
    try:
        status = export_epubs(settings)
    except KeyboardInterrupt:
        logger.info("⏹️  Export interrupted by user")
        sys.exit(130)
    sys.exit(status)


if __name__ == "__main__":
    main()
