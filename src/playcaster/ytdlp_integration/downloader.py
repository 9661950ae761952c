from __future__ import annotations
import re
from subprocess import Popen, PIPE, TimeoutExpired
from time import sleep
from pathlib import Path
from threading import Event
from typing import Sequence
from ..config import DEFAULT_FORMAT
from ..errors import DownloadError
from ..models import Episode
from ..utils.logging import setup_logging

logger = setup_logging(__name__)

PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")
# Written beside the media by --write-thumbnail, --write-subs and friends
SIDECAR_SUFFIXES = (
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".vtt",
    ".srt",
    ".ass",
    ".lrc",
    ".json",
    ".description",
    ".xml",
    ".url",
    ".webloc",
    ".desktop",
)
# Per-format streams left behind when merging into the final container fails
FRAGMENT_RE = re.compile(r"\.f\d+\.")


class MediaDownloader:
    def __init__(
        self,
        media_dir: Path,
        media_format: str | None = DEFAULT_FORMAT,
        downloader_args: Sequence[str] = (),
        executable: str = "yt-dlp",
        max_attempts: int = 3,
        verbose: bool = True,
    ):
        self.media_dir = media_dir
        self.media_format = media_format
        self.downloader_args = list(downloader_args)
        self.executable = executable
        self.max_attempts = max(max_attempts, 1)
        self.verbose = verbose
        self.media_dir.mkdir(parents=True, exist_ok=True)

    def _is_media(self, path: Path, episode_id: str) -> bool:
        # Only "<id>.<ext>" itself; "<id>.en.vtt" or "<id>.f137.mp4" are not media
        return (
            path.is_file()
            and path.name == episode_id + path.suffix
            and path.suffix.lower() not in SIDECAR_SUFFIXES
            and path.suffix not in PARTIAL_SUFFIXES
        )

    def locate(self, episode_id: str) -> Path | None:
        """Find the finished media file for an episode, if any."""
        for p in sorted(self.media_dir.glob(f"{episode_id}.*")):
            if self._is_media(p, episode_id):
                return p
        return None

    def _is_leftover(self, path: Path, episode_id: str) -> bool:
        name = path.name[len(episode_id) :]
        return name.endswith(PARTIAL_SUFFIXES) or FRAGMENT_RE.match(name) is not None

    def _cleanup_partials(self, episode_id: str) -> None:
        for p in self.media_dir.glob(f"{episode_id}.*"):
            if self._is_leftover(p, episode_id):
                try:
                    p.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Failed to remove partial file {p}: {e}")

    def _build_cmd(self, episode: Episode) -> list[str]:
        cmd = [
            self.executable,
            "--no-progress",
            "--no-overwrites",
            "--no-playlist",
            "--output",
            str(self.media_dir / "%(id)s.%(ext)s"),
        ]
        if self.media_format:
            cmd.extend(["--format", self.media_format])
        cmd.extend(self.downloader_args)
        cmd.extend(["--", episode.link or episode.id])
        return cmd

    def download(self, episode: Episode, cancel_event: Event | None = None) -> bool:
        cmd = self._build_cmd(episode)
        backoff_factor = 2.0

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event and cancel_event.is_set():
                logger.info(f"Download cancelled for {episode.id}")
                self._cleanup_partials(episode.id)
                return False

            proc: Popen | None = None
            try:
                logger.info(
                    f"Attempt {attempt}/{self.max_attempts} to download {episode.id}"
                )
                proc = Popen(cmd, stdout=PIPE, stderr=PIPE, text=True)
                while True:
                    try:
                        out, err = proc.communicate(timeout=0.5)
                        break
                    except TimeoutExpired:
                        if cancel_event and cancel_event.is_set():
                            logger.info(
                                f"Cancellation detected for {episode.id}. Terminating process."
                            )
                            proc.terminate()
                            try:
                                proc.wait(timeout=5)
                            except TimeoutExpired:
                                proc.kill()
                            self._cleanup_partials(episode.id)
                            return False

                if self.verbose and out:
                    logger.info(f"STDOUT: {out.strip()}")

                if proc.returncode == 0:
                    logger.info(f"Successfully downloaded {episode.id}")
                    return True
                logger.error(
                    f"Download failed for {episode.id} with exit code {proc.returncode}.\n"
                    f"STDERR:\n{err}"
                )

            except FileNotFoundError:
                logger.error(
                    f"{self.executable} command not found. Please ensure it is installed and in your PATH."
                )
                break
            except OSError as e:
                logger.error(
                    f"Exception during download of {episode.id}: {e}", exc_info=True
                )
            finally:
                if proc and proc.poll() is None:
                    logger.warning(f"Force killing process for {episode.id}.")
                    proc.kill()

            self._cleanup_partials(episode.id)
            if attempt < self.max_attempts and (
                cancel_event is None or not cancel_event.is_set()
            ):
                sleep(backoff_factor**attempt)

        logger.error(f"Failed to download {episode.id} after {self.max_attempts} attempts.")
        return False

    def fetch(self, episode: Episode, cancel_event: Event | None = None) -> Path:
        """Download ``episode`` and return the resulting file.

        Raises :class:`DownloadError` if the tool fails or leaves no file.
        """
        if not self.download(episode, cancel_event):
            raise DownloadError(f"Could not download {episode.id}")
        path = self.locate(episode.id)
        if path is None:
            raise DownloadError(
                f"{self.executable} reported success for {episode.id} but wrote no file"
            )
        return path
