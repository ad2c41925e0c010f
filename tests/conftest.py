import base64
from io import BytesIO

import pytest
from PIL import Image

from pinforge.clients import ImageFetcher, MemoryCache
from pinforge.errors import ConfigurationError, DistributedStateError
from pinforge.fonts import FontRegistry
from pinforge.models import Campaign, ShapeElement, Template
from pinforge.render import HeadlessRenderer
from pinforge.services import LockService, ProgressService


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeStore:
    """Stands in for SupabaseClient."""

    def __init__(self, campaigns: list[Campaign] | None = None):
        self.campaigns = {c.id: c for c in campaigns or []}
        self.updates: list[tuple[str, dict]] = []
        self.pins: list[dict] = []

    def load_campaign(self, campaign_id: str) -> Campaign:
        if campaign_id not in self.campaigns:
            raise ConfigurationError(f"Campaign {campaign_id} not found")
        return self.campaigns[campaign_id]

    def update_campaign(self, campaign_id: str, fields: dict):
        self.updates.append((campaign_id, dict(fields)))

    def insert_generated_pins(self, pins: list[dict]) -> list[dict]:
        self.pins.extend(pins)
        return pins

    def statuses(self) -> list[str]:
        return [fields["status"] for _, fields in self.updates if "status" in fields]


class FakeStorage:
    """Stands in for PinStorage. Rows in `fail_rows` raise on upload."""

    def __init__(self, fail_rows: set[int] | None = None):
        self.fail_rows = fail_rows or set()
        self.uploads: dict[int, bytes] = {}

    def upload_pin(self, campaign_id: str, pin_index: int, data: bytes) -> str:
        if pin_index in self.fail_rows:
            raise RuntimeError(f"Upload failed for pin {pin_index}")
        self.uploads[pin_index] = data
        return f"https://cdn.example.com/pins/{campaign_id}/pin_{pin_index}.jpg"


class BrokenCache:
    """A cache backend whose every command fails."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise DistributedStateError(f"{name} unavailable")
        return _fail


@pytest.fixture
def png_data_uri():
    """Builds a data: URI holding a solid-color PNG."""
    def _make(color=(0, 200, 0, 255), size=(10, 10)) -> str:
        buffer = BytesIO()
        Image.new("RGBA", size, color).save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def offline_fonts():
    return FontRegistry(fonts_dir=None, cache_dir=None, allow_downloads=False, system_font_dirs=[])


@pytest.fixture
def renderer(offline_fonts):
    return HeadlessRenderer(font_registry=offline_fonts, image_fetcher=ImageFetcher())


@pytest.fixture
def square_template():
    return Template(
        id="t1",
        name="Square",
        width=100,
        height=100,
        background_color="#ffffff",
        elements=[ShapeElement(id="box", x=10, y=10, width=50, height=50, fill="#ff0000")],
    )


@pytest.fixture
def campaign(square_template):
    return Campaign(
        id="c1",
        user_id="u1",
        name="Spring pins",
        templates=[square_template],
        rows=[{"title": f"Pin {i}"} for i in range(5)],
        field_mapping={"title": "title"},
    )


@pytest.fixture
def progress(cache):
    return ProgressService(cache)


@pytest.fixture
def locks(cache):
    return LockService(cache)


@pytest.fixture
def store(campaign):
    return FakeStore([campaign])


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def failing_storage():
    return FakeStorage(fail_rows={2})


@pytest.fixture
def broken_cache():
    return BrokenCache()
