from __future__ import annotations
import io
import threading
from datetime import timedelta
from pathlib import Path

import pytest
from lxml import etree

import playcaster.orchestrator as orch
from playcaster.config import Config
from playcaster.errors import (
    DegeneratePlaylistError,
    IncompleteEpisodeError,
    MalformedFeedError,
)
from playcaster.ytdlp_integration.downloader import MediaDownloader

from conftest import BASE_URL, NOW, PLAYLIST_URL, FakeExtractor, make_entry


class FakeDownloader(MediaDownloader):
    fail: set[str] = set()
    calls: list[str] = []

    def download(self, episode, cancel_event=None) -> bool:
        FakeDownloader.calls.append(episode.id)
        if episode.id in FakeDownloader.fail:
            return False
        (self.media_dir / f"{episode.id}.mp4").write_bytes(b"\0" * 2048)
        return True


@pytest.fixture
def env(monkeypatch, tmp_path: Path):
    FakeDownloader.fail = set()
    FakeDownloader.calls = []
    state = {"extractor": FakeExtractor([make_entry("a"), make_entry("b")])}
    monkeypatch.setattr(orch, "PlaylistExtractor", lambda *a, **k: state["extractor"])
    monkeypatch.setattr(orch, "MediaDownloader", FakeDownloader)
    state["config"] = Config(tmp_path / "config")
    state["feed"] = tmp_path / "feeds" / "news.rss"
    state["feed"].parent.mkdir()
    return state


def make_orchestrator(env, playlist_url=PLAYLIST_URL) -> orch.Orchestrator:
    o = orch.Orchestrator(
        feed_file=env["feed"],
        base_url=BASE_URL,
        playlist_url=playlist_url,
        config=env["config"],
    )
    o.verbose = False
    return o


def guids(data: bytes) -> list[str]:
    return [i.findtext("guid") for i in etree.fromstring(data).iter("item")]


def test_first_run_creates_feed_and_media(env):
    report = make_orchestrator(env).run(now=NOW)

    feed = env["feed"]
    assert feed.exists()
    assert guids(feed.read_bytes()) == ["a", "b"]
    assert [e.id for e in report.new] == ["a", "b"]
    assert report.downloaded == ["a", "b"]
    assert not report.partial
    assert (feed.parent / "news" / "a.mp4").exists()

    item = etree.fromstring(feed.read_bytes()).find("channel/item")
    enclosure = item.find("enclosure")
    assert enclosure.get("url") == f"{BASE_URL}/news/a.mp4"
    assert enclosure.get("length") == "2048"
    assert enclosure.get("type") == "video/mp4"
    assert etree.fromstring(feed.read_bytes()).findtext("channel/title") == "Test Playlist"


def test_second_run_with_same_playlist_is_idempotent(env):
    make_orchestrator(env).run(now=NOW)
    first = env["feed"].read_bytes()
    FakeDownloader.calls = []

    report = make_orchestrator(env, playlist_url=None).run(now=NOW + timedelta(days=1))

    assert env["feed"].read_bytes() == first
    assert report.new == []
    assert FakeDownloader.calls == []


def test_new_upstream_entry_is_prepended(env):
    make_orchestrator(env).run(now=NOW)
    env["extractor"] = FakeExtractor([make_entry("c"), make_entry("a"), make_entry("b")])

    later = NOW + timedelta(days=1)
    report = make_orchestrator(env).run(now=later)

    assert guids(env["feed"].read_bytes()) == ["c", "a", "b"]
    assert report.downloaded == ["c"]
    dates = {
        i.findtext("guid"): i.findtext("pubDate")
        for i in etree.fromstring(env["feed"].read_bytes()).iter("item")
    }
    assert dates["a"] == dates["b"] == "Fri, 01 Mar 2024 12:30:00 +0000"
    assert dates["c"] == "Sat, 02 Mar 2024 12:30:00 +0000"


def test_failed_download_does_not_block_the_feed(env):
    FakeDownloader.fail = {"b"}
    report = make_orchestrator(env).run(now=NOW)

    assert report.partial
    assert report.failed == ["b"]
    assert guids(env["feed"].read_bytes()) == ["a"]


def test_failed_episode_is_retried_next_run(env):
    FakeDownloader.fail = {"b"}
    make_orchestrator(env).run(now=NOW)
    FakeDownloader.fail = set()

    report = make_orchestrator(env).run(now=NOW + timedelta(hours=1))

    assert [e.id for e in report.new] == ["b"]
    assert guids(env["feed"].read_bytes()) == ["b", "a"]


def test_missing_media_for_listed_episode_is_downloaded_again(env):
    make_orchestrator(env).run(now=NOW)
    (env["feed"].parent / "news" / "a.mp4").unlink()
    FakeDownloader.calls = []

    report = make_orchestrator(env).run(now=NOW + timedelta(hours=1))

    assert FakeDownloader.calls == ["a"]
    assert report.new == []


def test_unmerged_format_stream_is_downloaded_again(env):
    media = env["feed"].parent / "news"
    media.mkdir()
    (media / "a.f137.mp4").write_bytes(b"x")
    (media / "a.jpg").write_bytes(b"x")

    make_orchestrator(env).run(now=NOW)

    assert FakeDownloader.calls == ["a", "b"]
    enclosure = etree.fromstring(env["feed"].read_bytes()).find("channel/item/enclosure")
    assert enclosure.get("url") == f"{BASE_URL}/news/a.mp4"
    assert enclosure.get("length") == "2048"
    assert enclosure.get("type") == "video/mp4"


def test_strict_mode_keeps_previous_feed(env):
    make_orchestrator(env).run(now=NOW)
    before = env["feed"].read_bytes()
    env["extractor"] = FakeExtractor([make_entry("c"), make_entry("a"), make_entry("b")])
    FakeDownloader.fail = {"c"}

    o = make_orchestrator(env)
    o.on_incomplete = "error"
    with pytest.raises(IncompleteEpisodeError):
        o.run(now=NOW + timedelta(hours=1))

    assert env["feed"].read_bytes() == before


def test_degenerate_playlist_writes_nothing(env):
    env["extractor"] = FakeExtractor([make_entry("Videos", duration=0), make_entry("Shorts", duration=0)])
    with pytest.raises(DegeneratePlaylistError):
        make_orchestrator(env).run(now=NOW)

    assert not env["feed"].exists()
    assert FakeDownloader.calls == []


def test_malformed_feed_aborts_before_extraction(env):
    env["feed"].write_text("<rss><channel>", encoding="utf-8")
    with pytest.raises(MalformedFeedError):
        make_orchestrator(env).run(now=NOW)

    assert env["extractor"].calls == 0
    assert env["feed"].read_text(encoding="utf-8") == "<rss><channel>"


def test_no_write_feed_prints_instead(env):
    o = make_orchestrator(env)
    o.write_feed = False
    o.output = io.StringIO()

    report = o.run(now=NOW)

    assert not env["feed"].exists()
    assert o.output.getvalue() == report.feed.decode("utf-8")
    assert guids(report.feed) == ["a", "b"]


def test_keep_removes_pruned_media(env):
    make_orchestrator(env).run(now=NOW)
    env["extractor"] = FakeExtractor([make_entry("c")])

    o = make_orchestrator(env)
    o.keep = 2
    report = o.run(now=NOW + timedelta(hours=1))

    assert [e.id for e in report.pruned] == ["b"]
    assert guids(env["feed"].read_bytes()) == ["c", "a"]
    assert not (env["feed"].parent / "news" / "b.mp4").exists()
    assert (env["feed"].parent / "news" / "a.mp4").exists()


def test_run_from_worker_thread(env):
    outcome = {}

    def target():
        try:
            outcome["report"] = make_orchestrator(env).run(now=NOW)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=target)
    worker.start()
    worker.join()

    assert "error" not in outcome
    assert outcome["report"].downloaded == ["a", "b"]
    assert guids(env["feed"].read_bytes()) == ["a", "b"]
