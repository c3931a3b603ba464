from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Acting identity as seen by the authorization core."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    is_superuser: bool = False
    current_team_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @staticmethod
    def normalized_display_name(user_id: str, display_name: Optional[str] = None) -> str:
        if display_name and display_name.strip():
            return display_name.strip()
        # Deterministic fallback handle
        import hashlib
        h = hashlib.sha1(user_id.encode("utf-8")).hexdigest()
        return f"@u_{h[-6:]}"
