from dataclasses import dataclass
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Env vars win; locally you can use backend/.env.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment-provisioned credential (the user can override it at runtime)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-preview-09-2025"
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # Scan pacing (cosmetic progress + demo mode)
    PROGRESS_INTERVAL_SECONDS: float = 0.05
    PROGRESS_STEP: int = 2
    PROGRESS_CEILING: int = 90
    DEMO_DELAY_SECONDS: float = 2.0
    SETTLE_DELAY_SECONDS: float = 0.5

    # Local JPEG used as the "camera" when a scan request carries no image.
    # Empty means no camera: such scans run in demo mode.
    CAPTURE_FILE: str = ""

    LOG_LEVEL: str = "INFO"

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"


# ✅ MUST EXIST: other modules import this
settings = Settings()


CredentialSource = Literal["user", "environment"]


@dataclass(frozen=True)
class Credential:
    value: str
    source: CredentialSource

    @property
    def user_supplied(self) -> bool:
        return self.source == "user"

    def __repr__(self) -> str:
        # never print the secret itself
        return f"Credential(source={self.source!r})"


def resolve_credential(user_key: Optional[str], default_key: Optional[str] = None) -> Optional[Credential]:
    """
    User-entered key beats the environment default.
    Blank strings count as "not provided"; no key at all returns None.
    """
    user = (user_key or "").strip()
    if user:
        return Credential(value=user, source="user")

    if default_key is None:
        default_key = settings.GEMINI_API_KEY
    env = (default_key or "").strip()
    if env:
        return Credential(value=env, source="environment")

    return None
