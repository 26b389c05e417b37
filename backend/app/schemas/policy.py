from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class PolicyUpdate(BaseModel):
    """Partial policy update. Extra keys are kept so the store can reject them by name."""

    model_config = ConfigDict(extra="allow", strict=True)

    registration_mode: str | None = None
    registration_default_role: str | None = None
    editor_can_publish: bool | None = None
    dashboard_default_visibility: str | None = None
    dashboard_public_listing_enabled: bool | None = None
    execution_mode: str | None = None
