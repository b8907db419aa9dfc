from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/gtfs_editor.db")

# Rows fetched per round-trip when a store query is iterated lazily
QUERY_CHUNK_SIZE: int = int(os.getenv("QUERY_CHUNK_SIZE", "500"))

# GTFS Static import
GTFS_STATIC_URL: str = os.getenv("GTFS_STATIC_URL", "")
GTFS_DOWNLOAD_TIMEOUT_SECONDS: float = float(os.getenv("GTFS_DOWNLOAD_TIMEOUT_SECONDS", "60"))

# Export
EXPORT_FILENAME: str = os.getenv("EXPORT_FILENAME", "gtfs-modified.zip")

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
INGEST_API_KEY: str = os.getenv("INGEST_API_KEY", "")  # empty → ingest endpoint is open
