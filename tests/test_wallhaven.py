"""Tests for the wallhaven client, OS collaborators and the CLI."""

from __future__ import annotations

import io
import subprocess
from pathlib import Path

import numpy as np
import pytest
import requests
from PIL import Image
from typer.testing import CliRunner

from color_wallpaper import cli
from color_wallpaper.color_utils import Color, average_color
from color_wallpaper.config import WallhavenConfig
from color_wallpaper.errors import SetterError, SourceError, WallpaperError
from color_wallpaper.pipeline import score_staged
from color_wallpaper.system import detect_resolution, prepare_images_dir, set_wallpaper
from color_wallpaper.wallhaven import (
    WallhavenClient,
    parse_full_image_url,
    parse_search_page,
    random_seed,
)

# -- Fixtures ----------------------------------------------------------

SEARCH_HTML = """
<section class="thumb-listing-page">
  <header class="thumb-listing-page-header">
    <h2>Page <span class="thumb-listing-page-num">2</span> / 37</h2>
  </header>
  <ul>
    <li><figure class="thumb">
      <img data-src="https://th.wallhaven.cc/small/ab/abc123.jpg" src="">
      <a class="preview" href="https://wallhaven.cc/w/abc123"></a>
    </figure></li>
    <li><figure class="thumb">
      <img data-src="https://th.wallhaven.cc/small/de/def456.jpg" src="">
      <a class="preview" href="https://wallhaven.cc/w/def456"></a>
    </figure></li>
    <li><figure class="thumb">
      <img src="">
      <a class="preview" href="https://wallhaven.cc/w/nosrc"></a>
    </figure></li>
  </ul>
</section>
"""

FIRST_PAGE_HTML = """
<section class="thumb-listing-page"><ul>
  <li><figure class="thumb">
    <img data-src="https://th.wallhaven.cc/small/zz/zz0001.jpg">
    <a class="preview" href="https://wallhaven.cc/w/zz0001"></a>
  </figure></li>
</ul></section>
"""

PREVIEW_HTML = """
<main><section id="showcase">
  <img id="wallpaper" src="//w.wallhaven.cc/full/ab/wallhaven-abc123.jpg">
</section></main>
"""


def _png_bytes(rgb: tuple[int, int, int]) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (6, 4), rgb).save(buf, format="PNG")
    return buf.getvalue()


class FakeResponse:
    def __init__(self, url: str, text: str = "", content: bytes = b"", status: int = 200) -> None:
        self.url = url
        self.text = text
        self.content = content or text.encode()
        self.status_code = status
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error for {self.url}")

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; routes URLs to canned responses."""

    def __init__(self, routes: dict[str, FakeResponse]) -> None:
        self.routes = routes
        self.headers: dict[str, str] = {}
        self.calls: list[tuple[str, dict]] = []

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append((url, kwargs))
        if url not in self.routes:
            raise requests.ConnectionError(f"no route to {url}")
        response = self.routes[url]
        if "params" in kwargs:
            # echo the page into the URL, as requests does with params
            response = FakeResponse(
                f"{url}?page={kwargs['params']['page']}",
                text=response.text,
                status=response.status_code,
            )
        return response


@pytest.fixture
def config() -> WallhavenConfig:
    return WallhavenConfig(base_url="https://wh.test", resolution="1920x1080")


# -- HTML parsing ------------------------------------------------------

class TestParsing:
    def test_thumbs(self) -> None:
        page = parse_search_page(SEARCH_HTML)
        assert len(page.thumbs) == 3
        assert page.thumbs[0].thumbnail_url == "https://th.wallhaven.cc/small/ab/abc123.jpg"
        assert page.thumbs[1].preview_url == "https://wallhaven.cc/w/def456"

    def test_thumb_without_data_src(self) -> None:
        page = parse_search_page(SEARCH_HTML)
        assert page.thumbs[2].thumbnail_url is None
        assert page.thumbs[2].preview_url == "https://wallhaven.cc/w/nosrc"

    def test_page_header(self) -> None:
        page = parse_search_page(SEARCH_HTML)
        assert page.current_page == 2
        assert page.total_pages == 37

    def test_first_page_has_no_header(self) -> None:
        page = parse_search_page(FIRST_PAGE_HTML)
        assert len(page.thumbs) == 1
        assert page.total_pages is None

    def test_no_thumbs(self) -> None:
        assert parse_search_page("<html></html>").thumbs == []

    def test_full_image_protocol_relative(self) -> None:
        url = parse_full_image_url(PREVIEW_HTML)
        assert url == "https://w.wallhaven.cc/full/ab/wallhaven-abc123.jpg"

    def test_full_image_missing(self) -> None:
        assert parse_full_image_url("<main></main>") is None

    def test_random_seed(self) -> None:
        assert len(random_seed()) == 16
        assert len(random_seed(length=4)) == 4


# -- Client ------------------------------------------------------------

class TestClient:
    def test_search_request(self, config: WallhavenConfig) -> None:
        session = FakeSession({"https://wh.test/search": FakeResponse("", text=SEARCH_HTML)})
        client = WallhavenClient(config, session=session, seed="s33d")
        page = client.fetch_search_page(1)

        assert len(page.thumbs) == 3
        url, kwargs = session.calls[0]
        assert url == "https://wh.test/search"
        assert kwargs["params"]["page"] == 1
        assert kwargs["params"]["resolutions"] == "1920x1080"
        assert kwargs["params"]["seed"] == "s33d"
        assert kwargs["headers"]["X-Requested-With"] == "XMLHttpRequest"
        assert "Referer" not in kwargs["headers"]
        assert session.headers["User-Agent"] == config.user_agent

    def test_referer_carried_between_searches(self, config: WallhavenConfig) -> None:
        session = FakeSession({"https://wh.test/search": FakeResponse("", text=SEARCH_HTML)})
        client = WallhavenClient(config, session=session)
        client.fetch_search_page(1)
        client.fetch_search_page(2)
        _, kwargs = session.calls[1]
        assert kwargs["headers"]["Referer"] == "https://wh.test/search?page=1"

    def test_http_error_is_fatal(self, config: WallhavenConfig) -> None:
        session = FakeSession({
            "https://wh.test/search": FakeResponse("", text="busy", status=429),
        })
        with pytest.raises(SourceError):
            WallhavenClient(config, session=session).fetch_search_page(1)

    def test_connection_error_is_fatal(self, config: WallhavenConfig) -> None:
        with pytest.raises(SourceError):
            WallhavenClient(config, session=FakeSession({})).fetch_search_page(1)

    def test_fetch_image(self, config: WallhavenConfig) -> None:
        url = "https://th.wallhaven.cc/small/ab/abc123.jpg"
        session = FakeSession({url: FakeResponse(url, content=_png_bytes((9, 8, 7)))})
        pixels = WallhavenClient(config, session=session).fetch_image(url)
        assert pixels.shape == (4, 6, 4)
        assert average_color(pixels) == Color(9, 8, 7, 255)

    def test_resolve_full_image(self, config: WallhavenConfig) -> None:
        url = "https://wallhaven.cc/w/abc123"
        session = FakeSession({url: FakeResponse(url, text=PREVIEW_HTML)})
        src = WallhavenClient(config, session=session).resolve_full_image(url)
        assert src.startswith("https://w.wallhaven.cc/full/")

    def test_resolve_full_image_missing(self, config: WallhavenConfig) -> None:
        url = "https://wallhaven.cc/w/gone"
        session = FakeSession({url: FakeResponse(url, text="<p>removed</p>")})
        with pytest.raises(SourceError):
            WallhavenClient(config, session=session).resolve_full_image(url)

    def test_download(self, config: WallhavenConfig, tmp_path: Path) -> None:
        url = "https://w.wallhaven.cc/full/ab/wallhaven-abc123.png"
        data = _png_bytes((1, 2, 3))
        response = FakeResponse(url, content=data)
        client = WallhavenClient(config, session=FakeSession({url: response}))
        path = client.download(url, tmp_path)
        assert path == tmp_path / "wallhaven-abc123.png"
        assert path.read_bytes() == data
        assert response.closed

    def test_interrupted_download_leaves_no_file(
        self, config: WallhavenConfig, tmp_path: Path,
    ) -> None:
        url = "https://w.wallhaven.cc/full/ab/wallhaven-abc123.png"

        class DroppedResponse(FakeResponse):
            def iter_content(self, chunk_size: int = 1):
                yield b"\x89PNG"
                raise requests.ConnectionError("connection reset")

        response = DroppedResponse(url)
        client = WallhavenClient(config, session=FakeSession({url: response}))
        with pytest.raises(SourceError):
            client.download(url, tmp_path)
        assert not (tmp_path / "wallhaven-abc123.png").exists()
        assert response.closed


# -- OS collaborators --------------------------------------------------

class TestSystem:
    def test_set_wallpaper_runs_command(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = []

        def fake_run(argv, **kwargs):
            seen.append(argv)
            return subprocess.CompletedProcess(argv, 0, "", "")

        monkeypatch.setattr(subprocess, "run", fake_run)
        set_wallpaper("/tmp/a.png", ("feh", "--bg-fill"))
        assert seen == [["feh", "--bg-fill", "/tmp/a.png"]]

    def test_set_wallpaper_failure(self) -> None:
        with pytest.raises(SetterError):
            set_wallpaper("/tmp/a.png", ("false",))

    def test_set_wallpaper_missing_command(self) -> None:
        with pytest.raises(SetterError):
            set_wallpaper("/tmp/a.png", ("no-such-wallpaper-setter-xyz",))

    def test_detect_resolution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        out = "screen #0:\n  dimensions:    2560x1440 pixels (677x381 millimeters)\n"
        monkeypatch.setattr(
            subprocess, "run",
            lambda argv, **kw: subprocess.CompletedProcess(argv, 0, out, ""),
        )
        assert detect_resolution() == "2560x1440"

    def test_detect_resolution_unparseable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            subprocess, "run",
            lambda argv, **kw: subprocess.CompletedProcess(argv, 0, "nothing", ""),
        )
        with pytest.raises(WallpaperError):
            detect_resolution()

    def test_prepare_images_dir(self, tmp_path: Path) -> None:
        path = prepare_images_dir(tmp_path / "Images", "1920x1080")
        assert path.is_dir()
        assert prepare_images_dir(tmp_path / "Images", "1920x1080") == path


# -- CLI ---------------------------------------------------------------

runner = CliRunner()


@pytest.fixture
def wallpapers(tmp_path: Path) -> Path:
    root = tmp_path / "walls"
    root.mkdir()
    for name, rgb in [("red", (255, 0, 0)), ("green", (0, 255, 0)), ("blue", (0, 0, 255))]:
        Image.new("RGB", (10, 10), rgb).save(root / f"{name}.png")
    return root


@pytest.fixture
def set_calls(monkeypatch: pytest.MonkeyPatch) -> list:
    calls: list = []
    monkeypatch.setattr(cli, "set_wallpaper", lambda path, command: calls.append((path, command)))
    return calls


class FakeWallhaven:
    """Records what the CLI asks of a monkeypatched WallhavenClient."""

    thumbs = {"abc123": (250, 0, 0), "def456": (0, 0, 250)}

    def __init__(self) -> None:
        self.pages: list[int] = []
        self.fetched: list[str] = []

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = self

        def fetch_search_page(self, page):
            fake.pages.append(page)
            return parse_search_page(SEARCH_HTML)

        def fetch_image(self, url):
            fake.fetched.append(url)
            key = url.rsplit("/", 1)[-1].split(".")[0]
            if key not in fake.thumbs:
                raise SourceError("not found")
            data = _png_bytes(fake.thumbs[key])
            return np.asarray(Image.open(io.BytesIO(data)).convert("RGBA"))

        def resolve_full_image(self, preview_url):
            return f"https://w.wallhaven.cc/full/{preview_url.rsplit('/', 1)[-1]}.png"

        def download(self, url, dest_dir):
            dest = Path(dest_dir) / url.rsplit("/", 1)[-1]
            dest.write_bytes(b"img")
            return dest

        monkeypatch.setattr(cli.WallhavenClient, "fetch_search_page", fetch_search_page)
        monkeypatch.setattr(cli.WallhavenClient, "fetch_image", fetch_image)
        monkeypatch.setattr(cli.WallhavenClient, "resolve_full_image", resolve_full_image)
        monkeypatch.setattr(cli.WallhavenClient, "download", download)


@pytest.fixture
def fake_wallhaven(monkeypatch: pytest.MonkeyPatch) -> FakeWallhaven:
    fake = FakeWallhaven()
    fake.install(monkeypatch)
    return fake


def _wallhaven_args(tmp_path: Path, *args: str) -> list[str]:
    return ["wallhaven", *args, "--resolution", "1920x1080", "--images-dir", str(tmp_path)]


class TestCli:
    def test_directory_closest(self, wallpapers: Path, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["directory", str(wallpapers), "#00ee00"])
        assert result.exit_code == 0, result.output
        assert len(set_calls) == 1
        assert Path(set_calls[0][0]).name == "green.png"
        assert set_calls[0][1] == ("fbsetbg", "-t")

    def test_directory_random(self, wallpapers: Path, set_calls: list) -> None:
        result = runner.invoke(
            cli.app, ["directory", str(wallpapers), "--random", "--setter", "feh --bg-fill"],
        )
        assert result.exit_code == 0, result.output
        assert Path(set_calls[0][0]).parent == wallpapers
        assert set_calls[0][1] == ("feh", "--bg-fill")

    def test_directory_empty(self, tmp_path: Path, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["directory", str(tmp_path), "ffffff"])
        assert result.exit_code == 0
        assert set_calls == []

    def test_directory_missing_color(self, wallpapers: Path, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["directory", str(wallpapers)])
        assert result.exit_code == 2
        assert set_calls == []

    def test_directory_bad_color(self, wallpapers: Path, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["directory", str(wallpapers), "#12zz56"])
        assert result.exit_code == 2

    def test_directory_not_a_directory(self, tmp_path: Path, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["directory", str(tmp_path / "missing"), "ffffff"])
        assert result.exit_code == 2

    def test_directory_undecodable_images(self, tmp_path: Path, set_calls: list) -> None:
        (tmp_path / "broken.png").write_bytes(b"nope")
        result = runner.invoke(cli.app, ["directory", str(tmp_path), "ffffff"])
        assert result.exit_code == 1
        assert set_calls == []

    def test_wallhaven_non_positive_threshold(self, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["wallhaven", "--threshold", "0", "ffffff"])
        assert result.exit_code == 2
        assert set_calls == []


    def test_wallhaven_nan_threshold(self, set_calls: list) -> None:
        result = runner.invoke(cli.app, ["wallhaven", "--threshold", "nan", "ffffff"])
        assert result.exit_code == 2
        assert set_calls == []

    def test_wallhaven_end_to_end(
        self, fake_wallhaven: FakeWallhaven, tmp_path: Path, set_calls: list,
    ) -> None:
        result = runner.invoke(
            cli.app, _wallhaven_args(tmp_path, "0000ff", "--threshold", "10"),
        )
        assert result.exit_code == 0, result.output
        assert fake_wallhaven.pages == [1]
        assert set_calls[0][0] == tmp_path / "1920x1080" / "def456.png"

    def test_wallhaven_random_skips_scoring(
        self, fake_wallhaven: FakeWallhaven, tmp_path: Path, set_calls: list,
    ) -> None:
        result = runner.invoke(cli.app, _wallhaven_args(tmp_path, "-r"))
        assert result.exit_code == 0, result.output
        assert fake_wallhaven.fetched == []
        assert fake_wallhaven.pages == [1]
        assert len(set_calls) == 1
        assert set_calls[0][0] == tmp_path / "1920x1080" / "abc123.png"

    def test_wallhaven_random_ignores_threshold(
        self, fake_wallhaven: FakeWallhaven, tmp_path: Path, set_calls: list,
    ) -> None:
        result = runner.invoke(cli.app, _wallhaven_args(tmp_path, "-r", "-t", "0"))
        assert result.exit_code == 0, result.output
        assert len(set_calls) == 1

    def test_wallhaven_falls_back_to_closest(
        self,
        fake_wallhaven: FakeWallhaven,
        tmp_path: Path,
        set_calls: list,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # red thumb is 50 away, nothing within 1
        result = runner.invoke(
            cli.app, _wallhaven_args(tmp_path, "c80000", "-t", "1", "--last-page", "2"),
        )
        assert result.exit_code == 0, result.output
        assert fake_wallhaven.pages == [1, 2]
        assert "picking the closest one" in caplog.text
        assert set_calls[0][0] == tmp_path / "1920x1080" / "abc123.png"

    def test_random_flag_wins_over_colour(
        self, wallpapers: Path, set_calls: list, caplog: pytest.LogCaptureFixture,
    ) -> None:
        result = runner.invoke(cli.app, ["directory", str(wallpapers), "ff0000", "--random"])
        assert result.exit_code == 0, result.output
        assert "Randomness flag wins" in caplog.text
        assert len(set_calls) == 1

    def test_directory_max_items(
        self, wallpapers: Path, set_calls: list, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        sizes: list[int] = []

        def counting_scorer(candidates, **kwargs):
            sizes.append(len(candidates))
            return score_staged(candidates, **kwargs)

        monkeypatch.setattr(cli, "score_staged", counting_scorer)
        result = runner.invoke(
            cli.app, ["directory", str(wallpapers), "ffffff", "--max-items", "1", "--seed", "3"],
        )
        assert result.exit_code == 0, result.output
        assert sizes == [1]
        assert len(set_calls) == 1
        assert Path(set_calls[0][0]).parent == wallpapers
