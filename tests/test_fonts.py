import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

from pinforge.fonts import FontRegistry
from pinforge.fonts.registry import GOOGLE_FONTS_LICENSES, google_font_filenames


def make_registry(cache_dir, allow_downloads=True):
    return FontRegistry(fonts_dir=None, cache_dir=str(cache_dir), allow_downloads=allow_downloads, system_font_dirs=[])


def font_response(status_code=200, content=b"not really a font"):
    return mock.Mock(status_code=status_code, content=content)


def test_unusable_cache_dir_falls_back_to_generic(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    registry = make_registry(blocker / "cache")

    with mock.patch("pinforge.fonts.registry.requests.get", return_value=font_response()) as get:
        handle = registry.resolve("Some Custom Face", font_url="https://cdn.example/fonts/face.ttf")
        calls = get.call_count
        again = registry.resolve("Some Custom Face", font_url="https://cdn.example/fonts/face.ttf")

    assert handle.is_fallback
    assert handle.generic == "sans-serif"
    assert again.is_fallback
    # failures are remembered for the rest of the run
    assert get.call_count == calls


def test_cache_write_is_atomic(tmp_path):
    registry = make_registry(tmp_path / "cache")
    path = registry._write_cache("Lobster-Regular.ttf", b"abc")

    assert path == str(tmp_path / "cache" / "Lobster-Regular.ttf")
    with open(path, "rb") as f:
        assert f.read() == b"abc"
    assert os.listdir(tmp_path / "cache") == ["Lobster-Regular.ttf"]


def test_undeletable_corrupt_cache_file_is_not_fatal(tmp_path):
    cache = tmp_path / "cache"
    cache.mkdir()
    for filename in google_font_filenames("Lobster", "normal", "normal"):
        (cache / filename).write_bytes(b"garbage")
    registry = make_registry(cache, allow_downloads=False)

    with mock.patch("pinforge.fonts.registry.os.remove", side_effect=PermissionError("read-only")):
        handle = registry.resolve("Lobster")

    assert handle.is_fallback
    assert handle.generic == "cursive"


def test_concurrent_rows_download_a_family_once(tmp_path):
    registry = make_registry(tmp_path / "cache")
    urls = []
    lock = threading.Lock()

    def slow_get(url, timeout):
        with lock:
            urls.append(url)
        time.sleep(0.02)
        return font_response(status_code=404, content=b"")

    with mock.patch("pinforge.fonts.registry.requests.get", side_effect=slow_get):
        with ThreadPoolExecutor(max_workers=6) as executor:
            handles = list(executor.map(lambda _: registry.resolve("Lobster"), range(6)))

    assert all(h.is_fallback for h in handles)
    candidates = len(GOOGLE_FONTS_LICENSES) * len(google_font_filenames("Lobster", "normal", "normal"))
    assert len(urls) == candidates
    assert len(set(urls)) == candidates
