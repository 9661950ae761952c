from __future__ import annotations
from subprocess import Popen, PIPE, TimeoutExpired
from datetime import datetime, timezone
from json import loads as _json_loads, JSONDecodeError
from re import compile as _re_compile
from typing import Iterator, Sequence
from ..errors import ExtractionError
from ..models import Playlist, PlaylistEntry
from ..utils.logging import setup_logging

logger = setup_logging(__name__)

# Characters lxml refuses to serialize; YouTube descriptions do contain them
_XML_INVALID = _re_compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def clean_text(value) -> str | None:
    if not isinstance(value, str):
        return None
    return _XML_INVALID.sub("", value)


def parse_duration(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


def parse_upload_date(value) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Ignoring unparseable upload date: {value!r}")
        return None


class PlaylistExtractor:
    def __init__(
        self,
        playlist_url: str,
        limit: int | None = None,
        downloader_args: Sequence[str] = (),
        executable: str = "yt-dlp",
        timeout: float | None = 600,
    ):
        self.playlist_url = playlist_url
        self.limit = limit
        self.downloader_args = list(downloader_args)
        self.executable = executable
        self.timeout = timeout

    def _build_cmd(self) -> list[str]:
        cmd = [self.executable, "--dump-single-json", "--no-warnings"]
        if self.limit:
            cmd.extend(["--playlist-end", str(self.limit)])
        cmd.extend(self.downloader_args)
        cmd.append(self.playlist_url)
        return cmd

    def _run(self) -> str:
        cmd = self._build_cmd()
        logger.info(f"Enumerating playlist {self.playlist_url}")
        proc: Popen | None = None
        try:
            proc = Popen(cmd, stdout=PIPE, stderr=PIPE, text=True)
            out, err = proc.communicate(timeout=self.timeout)
        except KeyboardInterrupt:
            logger.info("Playlist extraction interrupted by user.")
            if proc:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except TimeoutExpired:
                    proc.kill()
            raise
        except TimeoutExpired:
            logger.error(f"{self.executable} timed out enumerating {self.playlist_url}.")
            raise ExtractionError(
                f"Timed out after {self.timeout}s enumerating {self.playlist_url}"
            )
        except FileNotFoundError:
            logger.error(
                f"{self.executable} command not found. Please ensure it is installed and in your PATH."
            )
            raise ExtractionError(f"{self.executable} not found.")
        finally:
            if proc and proc.poll() is None:
                proc.kill()

        for line in (err or "").splitlines():
            if line.strip():
                logger.debug(f"{self.executable} STDERR: {line.strip()}")

        if proc.returncode != 0:
            error_msg = (
                f"{self.executable} failed for {self.playlist_url}. "
                f"Return code: {proc.returncode}.\nSTDERR:\n{err}"
            )
            logger.error(error_msg)
            raise ExtractionError(error_msg)
        return out

    def _parse(self, out: str) -> Playlist:
        try:
            data = _json_loads(out)
        except JSONDecodeError as e:
            raise ExtractionError(f"Unparseable output for {self.playlist_url}: {e}")

        if not isinstance(data, dict):
            raise ExtractionError(
                f"Expected a JSON object for {self.playlist_url}, got {type(data).__name__}"
            )
        raw_entries = data.get("entries")
        if raw_entries is None:
            raise ExtractionError(
                f"{self.playlist_url} points to a single video, not a playlist."
            )
        if not isinstance(raw_entries, list):
            raise ExtractionError(f"'entries' is not a list for {self.playlist_url}")

        entries: list[PlaylistEntry] = []
        seen: set[str] = set()
        for raw in raw_entries:
            if raw is None:
                # yt-dlp emits null for unavailable videos
                logger.warning(f"Skipping unavailable entry in {self.playlist_url}")
                continue
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                raise ExtractionError(
                    f"Playlist entry without an id in {self.playlist_url}: {raw!r:.200}"
                )
            entry_id = str(raw["id"])
            if entry_id in seen:
                logger.info(f"Dropping duplicate entry {entry_id}")
                continue
            seen.add(entry_id)
            entries.append(
                PlaylistEntry(
                    id=entry_id,
                    title=clean_text(raw.get("title")) or entry_id,
                    description=clean_text(raw.get("description")) or None,
                    upload_date=parse_upload_date(raw.get("upload_date")),
                    duration=parse_duration(raw.get("duration")),
                    thumbnail=clean_text(raw.get("thumbnail")),
                    url=clean_text(raw.get("webpage_url") or raw.get("url")),
                )
            )

        logger.info(f"Extracted {len(entries)} entries for {self.playlist_url}.")
        return Playlist(
            title=clean_text(data.get("title")),
            url=clean_text(data.get("webpage_url")) or self.playlist_url,
            entries=entries,
        )

    def extract(self) -> Playlist:
        return self._parse(self._run())

    def iter_entries(self) -> Iterator[PlaylistEntry]:
        yield from self.extract()
