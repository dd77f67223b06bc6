import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path.cwd() / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

MAX_IMAGE_BYTES = 5 * 1024 * 1024


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Return the app.yaml path, overridable with PICTOBOX_CONFIG."""
    override = os.environ.get("PICTOBOX_CONFIG")
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = config_path or get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./pictobox.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False


class SessionConfig(BaseModel):
    """Session cookie configuration."""

    cookie_name: str = "session"
    max_age: int = 86400
    cookie_domain: str | None = None


class SupabaseConfig(BaseModel):
    """Supabase Storage REST endpoint and credential."""

    url: str = ""
    service_key: str = ""
    cache_control: str = "3600"


class S3Config(BaseModel):
    """S3-compatible bucket configuration."""

    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    prefix: str = ""
    public_url: str | None = None


class StorageConfig(BaseModel):
    """Object storage for persisted images.

    ``backend`` is ``supabase``, ``s3``, ``local`` or a ``module:ClassName``
    import path. A single bucket is used for every owner.
    """

    backend: str = "supabase"
    bucket: str = "custom-pictograms"
    max_upload_size: int = MAX_IMAGE_BYTES
    fetch_timeout: float = 30.0
    local_path: str = "./storage"
    local_base_url: str = ""
    supabase: SupabaseConfig = SupabaseConfig()
    s3: S3Config = S3Config()


class ClassifierConfig(BaseModel):
    """Known delivery locations of ephemeral generator output."""

    ephemeral_hosts: list[str] = ["replicate.delivery"]
    ephemeral_path_patterns: list[str] = [r"^/api/v1/predictions/[^/]+/output"]


class GeneratorConfig(BaseModel):
    """Text-to-image generation backend."""

    api_token: str = ""
    api_base: str = "https://api.replicate.com/v1"
    model: str = "black-forest-labs/flux-schnell"
    aspect_ratio: str = "1:1"
    output_format: str = "png"
    max_prompt_length: int = 500
    timeout: float = 60.0
    poll_interval: float = 1.0
    max_polls: int = 60
    style_template: str = (
        "{prompt}, highly detailed ink line art, vintage storybook illustration style, "
        "meticulous cross-hatching for shading, cream-colored paper background, "
        "clean outlines, whimsical atmosphere, monochromatic with warm tones."
    )


class TranslatorConfig(BaseModel):
    """Best-effort prompt translation."""

    enabled: bool = True
    endpoint: str = "https://translate.googleapis.com/translate_a/single"
    source_language: str = "auto"
    target_language: str = "en"
    timeout: float = 10.0


class IconsConfig(BaseModel):
    """Iconify API access."""

    api_base: str = "https://api.iconify.design"
    collections: list[str] = ["mdi", "heroicons", "lucide", "carbon", "tabler"]
    search_limit: int = 20
    timeout: float = 10.0


class MigrationConfig(BaseModel):
    """Offline image migration job."""

    batch_size: int = 10


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    debug: bool = False
    secret_key: str | None = None

    # Sections (loaded from app.yaml)
    db: DatabaseConfig = DatabaseConfig()
    session: SessionConfig = SessionConfig()
    storage: StorageConfig = StorageConfig()
    classifier: ClassifierConfig = ClassifierConfig()
    generator: GeneratorConfig = GeneratorConfig()
    translator: TranslatorConfig = TranslatorConfig()
    icons: IconsConfig = IconsConfig()
    migration: MigrationConfig = MigrationConfig()


_SECTIONS: dict[str, type[BaseModel]] = {
    "db": DatabaseConfig,
    "session": SessionConfig,
    "storage": StorageConfig,
    "classifier": ClassifierConfig,
    "generator": GeneratorConfig,
    "translator": TranslatorConfig,
    "icons": IconsConfig,
    "migration": MigrationConfig,
}


def build_settings(app_config: dict | None = None) -> Settings:
    """Create settings from .env and merge the parsed app.yaml sections."""
    base_settings = Settings()
    if not app_config:
        return base_settings

    updates = {}
    for name, model in _SECTIONS.items():
        if name in app_config:
            updates[name] = model(**(app_config[name] or {}))

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml once per process."""
    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return build_settings()

    return build_settings(app_config)
