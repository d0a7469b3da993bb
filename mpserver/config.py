"""Server configuration."""
from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Data paths
    project_root: Path = Path(__file__).parent.parent
    data_dir: Path = project_root / "data"
    data_file: Path = data_dir / "penguin_data.json"

    # Series preparation
    smoothing_window: int = 21
    series_length: int = 24 * 60 * 7  # one week at minute resolution

    # Artifact cache
    cache_backend: str = "redis"  # "redis" or "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0
    cache_prefix: str = "mpserver:artifact:"
    retention_period: int = 5 * 60  # seconds
    max_blob_bytes: int = 1024 * 1024

    # Matrix profile computation
    mp_concurrency: int = 2
    numba_threading_layer: str = "workqueue"  # "workqueue", "omp" or "tbb"
    engine_workers: int = 4
    request_timeout: float = 60.0
    discord_exclusion_factor: float = 0.5

    # API settings
    api_title: str = "Matrix Profile API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    session_cookie: str = "mysession"
    cors_origins: list = ["http://localhost:8080"]
    log_level: str = "INFO"

    class Config:
        env_prefix = "MPSERVER_"


settings = Settings()
