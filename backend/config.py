"""
Application configuration with Docker secrets support.

Secrets are read using the _read_secret() pattern:
  1. Direct env var (e.g., SUPABASE_SERVICE_ROLE_KEY)
  2. File-based env var (e.g., SUPABASE_SERVICE_ROLE_KEY_FILE → reads file path)
  3. Raises ValueError if neither is set

Provider API keys are optional: a deployment only needs the key of the
provider it actually uses, so they are read with _read_optional_secret().
"""

import os
import logging

logger = logging.getLogger(__name__)


def _read_secret(env_var: str, file_env_var: str | None = None) -> str:
    """Read a secret from env var or Docker secrets file.

    Args:
        env_var: Direct environment variable name (e.g., SUPABASE_JWT_SECRET)
        file_env_var: File path env var name (e.g., SUPABASE_JWT_SECRET_FILE).
                      If None, defaults to env_var + '_FILE'.

    Returns:
        The secret value.

    Raises:
        ValueError: If neither source provides a value.
    """
    if file_env_var is None:
        file_env_var = f"{env_var}_FILE"

    # Priority 1: Direct env var
    value = os.environ.get(env_var)
    if value:
        return value

    # Priority 2: File-based (Docker secrets pattern)
    file_path = os.environ.get(file_env_var)
    if file_path:
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
            if value:
                return value
        except FileNotFoundError:
            logger.error(f"Secret file not found: {file_path} (from {file_env_var})")
        except PermissionError:
            logger.error(f"Permission denied reading: {file_path} (from {file_env_var})")

    raise ValueError(
        f"Secret not configured. Set {env_var} env var or {file_env_var} pointing to a file."
    )


def _read_optional_secret(*env_vars: str) -> str | None:
    """Return the first configured secret among env_vars, or None."""
    for env_var in env_vars:
        try:
            return _read_secret(env_var)
        except ValueError:
            continue
    return None


class Settings:
    """Application settings loaded from environment and Docker secrets."""

    def __init__(self):
        # Database
        self.database_url = self._build_database_url()

        # Secrets (loaded lazily on first access via properties)
        self._supabase_service_role_key: str | None = None
        self._supabase_jwt_secret: str | None = None

        # Object storage
        self.supabase_url = os.environ.get("SUPABASE_URL", "http://localhost:54321").rstrip("/")
        self.storage_bucket = os.environ.get("SUPABASE_STORAGE_BUCKET", "course-assets")
        self.max_upload_mb = int(os.environ.get("MAX_UPLOAD_MB", "40"))
        self.signed_url_ttl_seconds = int(os.environ.get("SIGNED_URL_TTL_SECONDS", "60"))

        # Identity provider tokens
        self.jwt_audience = os.environ.get("SUPABASE_JWT_AUDIENCE", "authenticated")

        # AI providers
        self.ai_provider = os.environ.get("AI_PROVIDER", "").strip().lower() or None
        self.openai_default_model = os.environ.get("OPENAI_DEFAULT_MODEL") or None
        self.qwen_default_model = os.environ.get("QWEN_DEFAULT_MODEL") or None
        self.gemini_default_model = os.environ.get("GEMINI_DEFAULT_MODEL") or None
        self.qwen_base_url = (
            os.environ.get("QWEN_BASE_URL")
            or os.environ.get("DASHSCOPE_BASE_URL")
            or "https://dashscope.aliyuncs.com/compatible-mode/v1"
        )

        # Downloads
        self.free_download_grant = int(os.environ.get("FREE_DOWNLOAD_GRANT", "3"))
        self.paid_download_cents = int(os.environ.get("PAID_DOWNLOAD_CENTS", "100"))

        self.cors_origins = [
            origin.strip()
            for origin in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]

    def _build_database_url(self) -> str:
        """Build async database URL with password from secrets."""
        base_url = os.environ.get(
            "DATABASE_URL", "postgresql+asyncpg://mockexam@postgres:5432/mockexam"
        )
        try:
            password = _read_secret("POSTGRES_PASSWORD")
            # Insert password into URL: postgresql+asyncpg://user@host → user:pass@host
            if "://" in base_url and "@" in base_url:
                scheme_user, rest = base_url.split("@", 1)
                if ":" not in scheme_user.split("://")[1]:
                    # No password in URL yet, add it
                    base_url = f"{scheme_user}:{password}@{rest}"
        except ValueError:
            logger.warning("POSTGRES_PASSWORD not set, using DATABASE_URL as-is")
        return base_url

    @property
    def supabase_service_role_key(self) -> str:
        if self._supabase_service_role_key is None:
            self._supabase_service_role_key = _read_secret("SUPABASE_SERVICE_ROLE_KEY")
        return self._supabase_service_role_key

    @property
    def supabase_jwt_secret(self) -> str:
        if self._supabase_jwt_secret is None:
            self._supabase_jwt_secret = _read_secret("SUPABASE_JWT_SECRET")
        return self._supabase_jwt_secret

    @property
    def openai_api_key(self) -> str | None:
        return _read_optional_secret("OPENAI_API_KEY")

    @property
    def qwen_api_key(self) -> str | None:
        return _read_optional_secret("QWEN_API_KEY", "DASHSCOPE_API_KEY")

    @property
    def gemini_api_key(self) -> str | None:
        return _read_optional_secret("GEMINI_API_KEY")


settings = Settings()
