from __future__ import annotations
import mimetypes
import sys
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor, as_completed, Future
from dataclasses import dataclass, field
from datetime import datetime
from threading import Event, current_thread, main_thread
from signal import getsignal, signal, SIGINT, SIGTERM
from typing import List, Sequence, TextIO
from tqdm import tqdm
from .ytdlp_integration.extractor import PlaylistExtractor
from .ytdlp_integration.downloader import MediaDownloader
from .config import Config
from .errors import DownloadError
from .feed import load, save
from .models import Channel, Episode
from .sync import MergeResult, SyncEngine, invocation_time
from .utils.logging import setup_logging
from .utils.path_utils import media_dir_for

logger = setup_logging(__name__)

DEFAULT_MIME_TYPE = "video/mp4"


@dataclass(slots=True)
class SyncReport:
    new: List[Episode] = field(default_factory=list)
    pruned: List[Episode] = field(default_factory=list)
    downloaded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    feed: bytes = b""

    @property
    def partial(self) -> bool:
        return bool(self.failed)


class Orchestrator:
    def __init__(
        self,
        feed_file: Path,
        base_url: str,
        playlist_url: str | None = None,
        downloader_args: Sequence[str] = (),
        config: Config | None = None,
    ):
        self.feed_file = Path(feed_file)
        self.base_url = base_url
        self.playlist_url = playlist_url
        self.downloader_args = list(downloader_args)
        self.config = config or Config()
        self.media_dir = media_dir_for(self.feed_file)
        self._set_default_attributes()

    def _set_default_attributes(self) -> None:
        data = self.config.data
        self.limit: int | None = data.get("limit")
        self.keep: int | None = data.get("keep")
        self.max_workers: int = data.get("workers", 1)
        self.media_format: str = data.get("format")
        self.pretty: bool = data.get("pretty", True)
        self.on_incomplete: str = data.get("on_incomplete", "skip")
        self.download_attempts: int = data.get("download_attempts", 3)
        self.extract_timeout: float | None = data.get("extract_timeout")
        self.executable: str = data.get("downloader", "yt-dlp")
        self.write_feed: bool = True
        self.output: TextIO = sys.stdout
        self.verbose: bool = True

    def _get_extractor(self, playlist_url: str) -> PlaylistExtractor:
        return PlaylistExtractor(
            playlist_url,
            limit=self.limit,
            downloader_args=self.downloader_args,
            executable=self.executable,
            timeout=self.extract_timeout,
        )

    def _get_downloader(self) -> MediaDownloader:
        return MediaDownloader(
            self.media_dir,
            media_format=self.media_format,
            downloader_args=self.downloader_args,
            executable=self.executable,
            max_attempts=self.download_attempts,
            verbose=self.verbose,
        )

    def _download_batch(
        self,
        downloader: MediaDownloader,
        episodes: list[Episode],
        cancel_event: Event,
    ) -> tuple[list[str], list[str], bool]:
        downloaded: list[str] = []
        failed: list[str] = []
        cancelled = False

        def _on_signal(signum, frame):
            logger.info(f"Signal {signum} received. Setting cancellation event.")
            cancel_event.set()

        # Signal handlers can only be installed from the main thread
        handle_signals = current_thread() is main_thread()
        if handle_signals:
            old_sigint = getsignal(SIGINT)
            old_sigterm = getsignal(SIGTERM)
            signal(SIGINT, _on_signal)
            signal(SIGTERM, _on_signal)

        executor = ThreadPoolExecutor(max_workers=max(self.max_workers, 1))
        pbar = tqdm(
            total=len(episodes),
            desc="Downloading",
            unit="episode",
            leave=True,
            disable=not self.verbose,
        )
        try:
            futures: dict[Future, Episode] = {
                executor.submit(downloader.fetch, episode, cancel_event): episode
                for episode in episodes
            }
            for finished in as_completed(futures):
                episode = futures[finished]
                try:
                    finished.result()
                    downloaded.append(episode.id)
                except DownloadError as e:
                    logger.warning(str(e))
                    failed.append(episode.id)
                except Exception as e:
                    logger.error(
                        f"Error in download task for {episode.id}: {e}", exc_info=True
                    )
                    failed.append(episode.id)
                pbar.update(1)
        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt detected during download batch.")
            cancel_event.set()
        finally:
            pbar.close()
            if handle_signals:
                signal(SIGINT, old_sigint)
                signal(SIGTERM, old_sigterm)
            cancelled = cancel_event.is_set()
            executor.shutdown(wait=not cancelled, cancel_futures=cancelled)

        # Report in channel order, not completion order
        order = {e.id: i for i, e in enumerate(episodes)}
        downloaded.sort(key=order.__getitem__)
        failed.sort(key=order.__getitem__)
        return downloaded, failed, cancelled

    def _resolve_media(self, downloader: MediaDownloader, episode: Episode) -> bool:
        """Fill in enclosure metadata from the file on disk, if there is one."""
        path = downloader.locate(episode.id)
        if path is None:
            return False
        episode.media_path = f"{self.media_dir.name}/{path.name}"
        episode.enclosure_length = path.stat().st_size
        episode.enclosure_type = mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
        return True

    def _pending(
        self, downloader: MediaDownloader, channel: Channel, result: MergeResult
    ) -> list[Episode]:
        # Only episodes still listed upstream can be fetched again
        listed = set(result.listed)
        return [
            e
            for e in channel.episodes
            if e.id in listed and downloader.locate(e.id) is None
        ]

    def _download_media(self, channel: Channel, result: MergeResult) -> tuple[list[str], list[str]]:
        downloader = self._get_downloader()
        pending = self._pending(downloader, channel, result)
        downloaded: list[str] = []
        failed: list[str] = []

        if pending:
            logger.info(f"{len(pending)} episodes pending download.")
            if self.verbose:
                print(f"{len(pending)} episodes pending download.")
            downloaded, failed, cancelled = self._download_batch(
                downloader, pending, Event()
            )
            if cancelled:
                logger.info("Download process cancelled by user.")
                raise KeyboardInterrupt

        for episode in channel.episodes:
            self._resolve_media(downloader, episode)
        for episode_id in failed:
            logger.warning(f"Media for {episode_id} is unavailable; episode left incomplete")
        return downloaded, failed

    def _remove_media(self, episodes: list[Episode]) -> None:
        for episode in episodes:
            if not episode.media_path:
                continue
            path = self.feed_file.parent / episode.media_path
            try:
                path.unlink(missing_ok=True)
                logger.info(f"Removed media for pruned episode {episode.id}: {path}")
            except OSError as e:
                logger.warning(f"Failed to remove {path}: {e}")

    def run(self, now: datetime | None = None) -> SyncReport:
        """Sync the feed once.

        Any fatal error propagates before the feed is written, leaving the
        existing file as it was.
        """
        now = invocation_time(now)
        channel = load(self.feed_file, self.playlist_url, self.base_url)
        if self.base_url:
            channel.base_url = self.base_url

        engine = SyncEngine(keep=self.keep)
        result = engine.sync(channel, self._get_extractor(channel.link), now)
        downloaded, failed = self._download_media(channel, result)

        destination = self.feed_file if self.write_feed else self.output
        data = save(
            channel,
            destination,
            pretty=self.pretty,
            on_incomplete=self.on_incomplete,
        )
        if self.write_feed:
            self._remove_media(result.pruned)

        report = SyncReport(
            new=result.new,
            pruned=result.pruned,
            downloaded=downloaded,
            failed=failed,
            feed=data,
        )
        logger.info(
            f"Sync finished for {self.feed_file}: {len(report.new)} new, "
            f"{len(report.downloaded)} downloaded, {len(report.failed)} failed"
        )
        return report
