import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional, FrozenSet, Tuple

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Plans
    DEFAULT_PLAN_SLUG: str = "free"
    PLAN_WILDCARD_FEATURE: str = "all"

    # Roles seeded into every new team (first one is the protected admin role)
    DEFAULT_ROLES: str = "admin,member,user"
    ADMIN_ROLE_NAME: str = "admin"

    # Checks that pass without a team context (comma-separated)
    TEAM_INDEPENDENT_PERMISSIONS: str = "view_profile,update_profile,list_workspaces"

    # Invitations
    INVITE_TTL_DAYS: int = 7
    INVITE_TOKEN_LENGTH: int = 32

    # Identity (HS256 bearer tokens; falls back to X-User-Id when unset)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None

    # Owner notifications (fire-and-forget webhook)
    NOTIFY_WEBHOOK_URL: Optional[str] = None
    NOTIFY_TIMEOUT_SECONDS: float = 3.0

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def team_independent_permissions(self) -> FrozenSet[str]:
        return frozenset(p.strip() for p in self.TEAM_INDEPENDENT_PERMISSIONS.split(",") if p.strip())

    def default_roles(self) -> Tuple[str, ...]:
        names = [r.strip() for r in self.DEFAULT_ROLES.split(",") if r.strip()]
        if self.ADMIN_ROLE_NAME not in names:
            names.insert(0, self.ADMIN_ROLE_NAME)
        return tuple(names)

settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("teamgate")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
