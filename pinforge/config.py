import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

# Service credentials - loaded from .env
KV_REST_API_URL = os.getenv("KV_REST_API_URL")
KV_REST_API_TOKEN = os.getenv("KV_REST_API_TOKEN")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
S3_ENDPOINT = os.getenv("S3_ENDPOINT")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
S3_BUCKET = os.getenv("S3_BUCKET")
S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")
QUEUE_URL = os.getenv("QUEUE_URL")

# Fonts
FONTS_DIR = os.getenv("FONTS_DIR", os.path.join(os.path.dirname(os.path.dirname(__file__)), "fonts"))
FONT_CACHE_DIR = os.getenv("FONT_CACHE_DIR", os.path.join(tempfile.gettempdir(), "font-cache"))

# Batch tuning
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "2"))
BATCH_DELAY_SECONDS = float(os.getenv("BATCH_DELAY_SECONDS", "0.1"))
EVENT_BATCH_ROWS = int(os.getenv("EVENT_BATCH_ROWS", "75"))
JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "85"))
IMAGE_FAILURE_FAILS_ROW = os.getenv("IMAGE_FAILURE_FAILS_ROW", "false").lower() in ("1", "true", "yes")

# Distributed state (seconds)
LOCK_TTL_SECONDS = int(os.getenv("LOCK_TTL_SECONDS", "300"))
PROGRESS_TTL_SECONDS = int(os.getenv("PROGRESS_TTL_SECONDS", "86400"))
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "300"))
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "3600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Supabase tables
TABLE_CAMPAIGNS = "campaigns"
TABLE_TEMPLATES = "templates"
TABLE_GENERATED_PINS = "generated_pins"
TABLE_CUSTOM_FONTS = "custom_fonts"
