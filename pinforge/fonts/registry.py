"""Font registry for headless rendering.

Resolution order for a family/weight/style:
    1. Already registered in this registry
    2. Bundled fonts directory
    3. Explicit font URL (custom uploaded fonts)
    4. Google Fonts repository download, cached on disk
    5. Generic family class (sans-serif / serif / monospace / cursive)

A registry is an instance owned by a renderer, not module state, so tests
and workers each get their own.
"""

import glob
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Callable

import requests
from PIL import ImageFont

from ..config import FONT_CACHE_DIR, FONTS_DIR

logger = logging.getLogger(__name__)

GOOGLE_FONTS_BASE = "https://github.com/google/fonts/raw/main"
GOOGLE_FONTS_LICENSES = ("ofl", "apache", "ufl")

# Never downloaded: the render host either has them or they map to a generic class
SYSTEM_FONTS = {
    "arial", "helvetica", "times new roman", "courier new", "verdana",
    "georgia", "sans-serif", "serif", "monospace", "cursive",
}

BUNDLED_FAMILIES = {
    "Roboto-Regular.ttf": "Roboto",
    "Roboto-Bold.ttf": "Roboto",
    "OpenSans-Regular.ttf": "Open Sans",
    "OpenSans-Bold.ttf": "Open Sans",
    "Poppins-Regular.ttf": "Poppins",
    "Poppins-Bold.ttf": "Poppins",
    "Montserrat-Regular.ttf": "Montserrat",
    "Montserrat-Bold.ttf": "Montserrat",
    "Inter-Regular.ttf": "Inter",
    "Inter-Bold.ttf": "Inter",
}

WEIGHT_SUFFIXES = {
    "100": "-Thin",
    "300": "-Light",
    "500": "-Medium",
    "700": "-Bold",
    "bold": "-Bold",
    "900": "-Black",
}

# Candidate files for each generic class, searched in the system font dirs
GENERIC_FONT_FILES = {
    "sans-serif": ["DejaVuSans", "LiberationSans", "Arial", "Helvetica", "FreeSans"],
    "serif": ["DejaVuSerif", "LiberationSerif", "Times New Roman", "Times", "FreeSerif"],
    "monospace": ["DejaVuSansMono", "LiberationMono", "Courier New", "FreeMono"],
    "cursive": ["ComicNeue", "Comic Sans MS", "DejaVuSans"],
}

SYSTEM_FONT_DIRS = [
    "/usr/share/fonts",
    "/usr/local/share/fonts",
    "/Library/Fonts",
    "/System/Library/Fonts",
    "C:\\Windows\\Fonts",
]

_MONO_HINTS = ("mono", "code", "courier", "consol", "menlo", "typewriter")
_CURSIVE_HINTS = ("script", "hand", "brush", "cursive", "pacifico", "dancing", "lobster", "comic", "caveat", "satisfy")
_SERIF_HINTS = ("times", "georgia", "garamond", "playfair", "merriweather", "lora", "baskerville", "didot", "bodoni", "slab", "cambria", "serif")


def generic_family(family: str) -> str:
    """Closest generic class for a family name. Defaults to sans-serif."""
    name = family.lower()
    if any(hint in name for hint in _MONO_HINTS):
        return "monospace"
    if any(hint in name for hint in _CURSIVE_HINTS):
        return "cursive"
    if "sans" not in name and any(hint in name for hint in _SERIF_HINTS):
        return "serif"
    return "sans-serif"


def normalize_weight(weight: int | str | None) -> str:
    """'bold'/700 -> 'bold', 400/'normal'/None -> 'normal', other numeric weights kept."""
    if weight is None or weight in ("normal", "400", 400):
        return "normal"
    if weight in ("bold", "700", 700):
        return "bold"
    return str(weight)


def normalize_style(style: str | None) -> str:
    return "italic" if style and "italic" in style else "normal"


def base_family(family: str | None) -> str:
    """First entry of a CSS font stack, unquoted."""
    if not family:
        return "sans-serif"
    return family.split(",")[0].strip().strip("\"'") or "sans-serif"


def google_font_filenames(family: str, weight: str, style: str) -> list[str]:
    """Candidate file names in the google/fonts repository."""
    suffix = WEIGHT_SUFFIXES.get(weight, "-Regular")
    if style == "italic":
        suffix = "-Italic" if suffix == "-Regular" else suffix + "Italic"
    compact = re.sub(r"\s+", "", family)
    names = [f"{compact}{suffix}.ttf", f"{family}{suffix}.ttf", f"{compact.lower()}{suffix}.ttf"]
    return list(dict.fromkeys(names))


@dataclass
class FontHandle:
    """A concrete font file (or Pillow's built-in font) for one family variant."""
    family: str
    weight: str = "normal"
    style: str = "normal"
    path: str | None = None
    generic: str | None = None
    _sizes: dict[int, ImageFont.ImageFont] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_fallback(self) -> bool:
        return self.generic is not None

    def font(self, size: int) -> ImageFont.ImageFont:
        """Pillow font at an integer pixel size, cached per size."""
        size = max(1, int(size))
        with self._lock:
            cached = self._sizes.get(size)
            if cached is not None:
                return cached
            if self.path:
                loaded = ImageFont.truetype(self.path, size)
            else:
                loaded = ImageFont.load_default(size=size)
            self._sizes[size] = loaded
            return loaded


class FontRegistry:
    """Process-local font registration cache for one rendering worker."""

    def __init__(
        self,
        fonts_dir: str | None = FONTS_DIR,
        cache_dir: str | None = FONT_CACHE_DIR,
        allow_downloads: bool = True,
        custom_font_lookup: Callable[[str], str | None] | None = None,
        system_font_dirs: list[str] | None = None,
    ):
        self.fonts_dir = fonts_dir
        self.cache_dir = cache_dir
        self.allow_downloads = allow_downloads
        self.custom_font_lookup = custom_font_lookup
        self.system_font_dirs = SYSTEM_FONT_DIRS if system_font_dirs is None else system_font_dirs
        self._registered: dict[str, FontHandle] = {}
        self._failed: set[str] = set()
        self._generic: dict[tuple[str, str, str], FontHandle] = {}
        self._lock = threading.RLock()
        self._download_locks: dict[str, threading.Lock] = {}
        self._bundled_loaded = False

    # ------------------------------------------------------------------
    # Registration

    def register(self, path: str, family: str, weight: str = "normal", style: str = "normal") -> FontHandle:
        """Register a font file under family-weight-style."""
        handle = FontHandle(family=family, weight=weight, style=style, path=path)
        with self._lock:
            self._registered[f"{family}-{weight}-{style}"] = handle
        return handle

    def is_registered(self, family: str, weight: str = "normal", style: str = "normal") -> bool:
        with self._lock:
            return f"{family}-{weight}-{style}" in self._registered or f"{family}-url" in self._registered

    def registered_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._registered)

    def reset(self):
        """Forget every registration (bundled fonts are re-scanned on next use)."""
        with self._lock:
            self._registered.clear()
            self._failed.clear()
            self._generic.clear()
            self._bundled_loaded = False

    def load_bundled_fonts(self) -> int:
        """Register every .ttf/.otf in the bundled fonts directory. Returns count registered."""
        with self._lock:
            if self._bundled_loaded:
                return 0
            self._bundled_loaded = True

        if not self.fonts_dir or not os.path.isdir(self.fonts_dir):
            return 0

        count = 0
        for filename in sorted(os.listdir(self.fonts_dir)):
            if not filename.lower().endswith((".ttf", ".otf")):
                continue
            family = BUNDLED_FAMILIES.get(filename) or re.sub(
                r"[-_](Regular|Bold|Italic|BoldItalic)?\.(ttf|otf)$", "", filename, flags=re.IGNORECASE
            )
            lowered = filename.lower()
            weight = "bold" if "bold" in lowered else "normal"
            style = "italic" if "italic" in lowered else "normal"
            if self.is_registered(family, weight, style):
                continue
            self.register(os.path.join(self.fonts_dir, filename), family, weight, style)
            count += 1

        logger.info(f"Registered {count} bundled fonts from {self.fonts_dir}")
        return count

    # ------------------------------------------------------------------
    # Resolution

    def resolve(
        self,
        family: str | None,
        weight: int | str | None = None,
        style: str | None = None,
        font_url: str | None = None,
    ) -> FontHandle:
        """
        Concrete font for a family variant. Never raises: any failure ends in a
        generic-class fallback.
        """
        name = base_family(family)
        weight_key = normalize_weight(weight)
        style_key = normalize_style(style)
        self.load_bundled_fonts()

        with self._lock:
            for key in (f"{name}-{weight_key}-{style_key}", f"{name}-url"):
                if key in self._registered:
                    return self._registered[key]
            regular = self._registered.get(f"{name}-normal-{style_key}")

        if font_url:
            handle = self._load_from_url(font_url, name)
            if handle:
                return handle

        if name.lower() not in SYSTEM_FONTS and self.custom_font_lookup:
            try:
                url = self.custom_font_lookup(name)
            except Exception as e:
                logger.warning(f"Custom font lookup failed for {name}: {e}")
                url = None
            if url:
                handle = self._load_from_url(url, name)
                if handle:
                    return handle

        if name.lower() not in SYSTEM_FONTS:
            handle = self._download_google_font(name, weight_key, style_key)
            if handle:
                return handle
            if weight_key != "normal" and regular is None:
                regular = self._download_google_font(name, "normal", style_key)

        if regular is not None:
            # regular face beats a generic class; Pillow cannot synthesize bold
            return regular

        generic = generic_family(name)
        logger.info(f"Font fallback: {name!r} -> {generic}")
        return self.generic_font(generic, weight_key, style_key)

    def generic_font(self, generic: str, weight: str = "normal", style: str = "normal") -> FontHandle:
        """Best local file for a generic class, else Pillow's built-in font."""
        key = (generic, weight, style)
        with self._lock:
            if key in self._generic:
                return self._generic[key]

        path = self._find_system_font(generic, weight, style)
        handle = FontHandle(family=generic, weight=weight, style=style, path=path, generic=generic)
        with self._lock:
            self._generic[key] = handle
        return handle

    def _find_system_font(self, generic: str, weight: str, style: str) -> str | None:
        suffixes = [""]
        if weight == "bold" and style == "italic":
            suffixes = ["-BoldOblique", "-BoldItalic", " Bold Italic", ""]
        elif weight == "bold":
            suffixes = ["-Bold", " Bold", ""]
        elif style == "italic":
            suffixes = ["-Oblique", "-Italic", " Italic", ""]

        for directory in self.system_font_dirs:
            if not os.path.isdir(directory):
                continue
            for stem in GENERIC_FONT_FILES.get(generic, GENERIC_FONT_FILES["sans-serif"]):
                for suffix in suffixes:
                    for ext in (".ttf", ".otf"):
                        pattern = os.path.join(directory, "**", f"{stem}{suffix}{ext}")
                        matches = glob.glob(pattern, recursive=True)
                        if not matches and not suffix:
                            matches = glob.glob(os.path.join(directory, "**", f"{stem}-Regular{ext}"), recursive=True)
                        if matches:
                            return sorted(matches)[0]
        return None

    # ------------------------------------------------------------------
    # Remote sources

    def _fetch(self, url: str) -> bytes | None:
        try:
            response = requests.get(url, timeout=30)
        except requests.RequestException as e:
            logger.debug(f"Font fetch failed {url}: {e}")
            return None
        if response.status_code != 200 or not response.content:
            return None
        return response.content

    def _download_lock(self, key: str) -> threading.Lock:
        """One lock per font key, so concurrent rows never share a half-written file."""
        with self._lock:
            return self._download_locks.setdefault(key, threading.Lock())

    def _write_cache(self, filename: str, data: bytes) -> str | None:
        """Write a downloaded font into the cache dir atomically. None when the disk refuses."""
        path = os.path.join(self.cache_dir, filename)
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, suffix=".part")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_path, path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            logger.warning(f"Could not cache font {filename} in {self.cache_dir}: {e}")
            return None
        return path

    def _load_from_url(self, url: str, family: str) -> FontHandle | None:
        """Download a custom font file and register it as family-url."""
        key = f"{family}-url"
        if not self.allow_downloads or not self.cache_dir:
            with self._lock:
                return self._registered.get(key)

        with self._download_lock(key):
            with self._lock:
                if key in self._registered:
                    return self._registered[key]
                if key in self._failed:
                    return None

            ext = ".otf" if url.lower().split("?")[0].endswith(".otf") else ".ttf"
            filename = f"{re.sub(r'[^A-Za-z0-9]+', '_', family)}-custom{ext}"
            path = os.path.join(self.cache_dir, filename)
            if not os.path.exists(path):
                data = self._fetch(url)
                if data is None:
                    logger.warning(f"Could not download custom font {family} from {url}")
                    path = None
                else:
                    path = self._write_cache(filename, data)

            handle = self._validated_handle(path, family, "normal", "normal") if path else None
            with self._lock:
                if handle:
                    self._registered[key] = handle
                else:
                    self._failed.add(key)
            return handle

    def _download_google_font(self, family: str, weight: str, style: str) -> FontHandle | None:
        """Fetch a family variant from the google/fonts repository, using the disk cache first."""
        key = f"{family}-{weight}-{style}"
        if not self.cache_dir:
            return None

        with self._download_lock(key):
            with self._lock:
                if key in self._registered:
                    return self._registered[key]
                if key in self._failed:
                    return None

            filenames = google_font_filenames(family, weight, style)

            for filename in filenames:
                cached = os.path.join(self.cache_dir, filename)
                if os.path.exists(cached):
                    handle = self._validated_handle(cached, family, weight, style)
                    if handle:
                        return self._remember(key, handle)
                    logger.warning(f"Corrupt cached font {cached}, deleting")
                    try:
                        os.remove(cached)
                    except OSError as e:
                        logger.warning(f"Could not delete {cached}: {e}")

            if not self.allow_downloads:
                with self._lock:
                    self._failed.add(key)
                return None

            repo_dir = re.sub(r"\s+", "", family).lower()
            for license_dir in GOOGLE_FONTS_LICENSES:
                for filename in filenames:
                    data = self._fetch(f"{GOOGLE_FONTS_BASE}/{license_dir}/{repo_dir}/{filename}")
                    if data is None:
                        continue
                    cached = self._write_cache(filename, data)
                    if cached is None:
                        # cache dir is unusable for every candidate
                        with self._lock:
                            self._failed.add(key)
                        return None
                    handle = self._validated_handle(cached, family, weight, style)
                    if handle:
                        logger.info(f"Downloaded {family} ({weight}, {style}) from {license_dir}")
                        return self._remember(key, handle)

            logger.warning(f"Failed to download {family}; tried {', '.join(filenames)}")
            with self._lock:
                self._failed.add(key)
            return None

    def _remember(self, key: str, handle: FontHandle) -> FontHandle:
        with self._lock:
            self._registered[key] = handle
        return handle

    def _validated_handle(self, path: str, family: str, weight: str, style: str) -> FontHandle | None:
        """Handle for a font file that FreeType can actually open."""
        try:
            ImageFont.truetype(path, 12)
        except OSError as e:
            logger.warning(f"Unreadable font file {path}: {e}")
            return None
        return FontHandle(family=family, weight=weight, style=style, path=path)
