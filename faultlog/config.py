import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name, default):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# --- STOCKAGE ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./faultlog.db")
STORAGE_KEY = os.getenv("STORAGE_KEY", "construction_fault_reports_v17")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- CANTIERI ---
SITES = [
    "A6", "Altamura", "Borgonovo", "Rovigo",
    "Serrotti EST", "Stomeo", "Stornarella", "Uta",
    "Villacidro 1", "Villacidro 2",
]
ALL = "all"

# Some historical builds accepted a blank creation comment; the closing comment is always mandatory.
REQUIRE_CREATION_COMMENT = _flag("REQUIRE_CREATION_COMMENT", "true")

# --- GPS ---
DEFAULT_LAT = 41.8719
DEFAULT_LNG = 12.5674
GPS_SAMPLE_COUNT = int(os.getenv("GPS_SAMPLE_COUNT", "5"))
GPS_TIMEOUT_MS = int(os.getenv("GPS_TIMEOUT_MS", "10000"))

MAP_LINK_TEMPLATE = os.getenv("MAP_LINK_TEMPLATE", "https://maps.google.com/?q={lat:.6f},{lng:.6f}")

# --- PHOTOS ---
PHOTO_MAX_DIMENSION = 1600
CLOSING_PHOTO_MAX_DIMENSION = 1200
PHOTO_QUALITY_HIGH = 90
PHOTO_QUALITY_LOW = 70
PHOTO_SIZE_THRESHOLD = 2 * 1024 * 1024

# --- CARTE ---
MARKER_COLOR_OPEN = "#f97316"
MARKER_COLOR_COMPLETED = "#22c55e"
