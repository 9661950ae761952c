from __future__ import annotations
import sys
from argparse import (
    ArgumentParser,
    ArgumentDefaultsHelpFormatter,
    RawTextHelpFormatter,
)
from pathlib import Path
from . import __version__
from .config import Config
from .errors import PlaycasterError
from .orchestrator import Orchestrator
from .utils.logging import setup_logging
from .utils.cli import positive_int, ensure_dependencies, http_url

logger = setup_logging(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 3


class HelpFormatter(ArgumentDefaultsHelpFormatter, RawTextHelpFormatter):
    pass


def get_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="playcaster",
        description=(
            "Playcaster - Turn any playlist into a podcast feed\n\n"
            "Examples:\n"
            "  playcaster feeds/news.rss https://pods.example.com "
            "--playlist-url 'https://www.youtube.com/playlist?list=...'\n"
            "  playcaster feeds/news.rss https://pods.example.com\n"
            "  playcaster feeds/news.rss https://pods.example.com --no-write-feed\n"
            "  playcaster feeds/news.rss https://pods.example.com -- --cookies cookies.txt\n"
            "\nArguments after -- are passed verbatim to yt-dlp.\n"
        ),
        formatter_class=HelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"Playcaster {__version__}",
        help="Show version and exit.",
    )
    parser.add_argument(
        "feed_file",
        type=Path,
        help="Path to the channel's RSS feed file. Media is stored beside it in a folder named after the file.",
    )
    parser.add_argument(
        "base_url",
        type=http_url,
        help="Base URL of the server which will serve the feed items.",
    )
    parser.add_argument(
        "--playlist-url",
        type=http_url,
        help="Playlist URL to download videos from.\n"
        "Required when creating a new feed, or if the feed's link element doesn't point to a playlist URL.",
    )
    parser.add_argument(
        "--limit",
        type=positive_int,
        help="Maximum number of videos to enumerate from the playlist. Defaults to the configured limit.",
    )
    parser.add_argument(
        "--keep",
        type=positive_int,
        help="Maximum number of episodes to keep. Older episodes no longer in the playlist are\n"
        "removed along with their media. Must be at least --limit. Default keeps everything.",
    )
    parser.add_argument(
        "--workers",
        type=positive_int,
        help="Number of parallel downloads to run.",
    )
    parser.add_argument(
        "--no-write-feed",
        action="store_true",
        help="Do not write the updated feed to disk; print it to the terminal instead.",
    )
    parser.add_argument(
        "--no-pretty",
        action="store_true",
        help="Write terse XML rather than the default pretty-printed version.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of leaving out episodes whose media could not be downloaded.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console output. Errors are still written to the log file.",
    )
    return parser


def parse_args(argv: list[str] | None = None):
    """Parse ``argv``, passing everything after the first ``--`` to yt-dlp."""
    argv = sys.argv[1:] if argv is None else list(argv)
    passthrough: list[str] = []
    if "--" in argv:
        split = argv.index("--")
        argv, passthrough = argv[:split], argv[split + 1 :]
    args = get_parser().parse_args(argv)
    args.downloader_arguments = passthrough
    return args


def get_sync_settings(args, config: Config) -> tuple[int | None, int | None, int]:
    limit = args.limit or config.data.get("limit")
    keep = args.keep or config.data.get("keep")
    workers = args.workers or config.data.get("workers", 1)
    if keep is not None and limit is not None and keep < limit:
        logger.error(f"--keep ({keep}) must be greater than or equal to --limit ({limit})")
        raise SystemExit(EXIT_FATAL)
    return limit, keep, workers


def build_orchestrator(args, config: Config) -> Orchestrator:
    limit, keep, workers = get_sync_settings(args, config)
    orchestrator = Orchestrator(
        feed_file=args.feed_file,
        base_url=args.base_url,
        playlist_url=args.playlist_url,
        downloader_args=args.downloader_arguments,
        config=config,
    )
    orchestrator.limit = limit
    orchestrator.keep = keep
    orchestrator.max_workers = workers
    orchestrator.write_feed = not args.no_write_feed
    orchestrator.verbose = not args.quiet and not args.no_write_feed
    if args.no_pretty:
        orchestrator.pretty = False
    if args.strict:
        orchestrator.on_incomplete = "error"
    return orchestrator


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = Config()
    ensure_dependencies(config.data.get("downloader", "yt-dlp"))
    orchestrator = build_orchestrator(args, config)
    verbose = orchestrator.verbose

    if verbose:
        print("Updating channel... (this can take a pretty long time)")
    try:
        report = orchestrator.run()
    except KeyboardInterrupt:
        if verbose:
            print("\nCancelled by user.")
        logger.info(f"Sync of {args.feed_file} cancelled by user.")
        return 130
    except PlaycasterError as e:
        logger.error(f"Failed syncing {args.feed_file}: {e}", exc_info=True)
        if not args.quiet:
            print(f"Error: {e}")
        return EXIT_FATAL

    if report.failed:
        msg = f"Failed to download {len(report.failed)} episodes: {', '.join(report.failed)}"
        logger.warning(msg)
        if not args.quiet:
            print(msg)
        return EXIT_PARTIAL

    if verbose:
        print(f"Done! {len(report.new)} new episodes.")
    return EXIT_OK
