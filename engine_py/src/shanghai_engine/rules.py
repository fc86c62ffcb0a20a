"""
Game settings configuration and validation.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import BUY_MODE_SEQUENTIAL, BUY_MODE_SIMULTANEOUS


class GameSettings(BaseModel):
    """Per-game settings chosen by the host when the game starts."""

    buy_mode: Literal['sequential', 'simultaneous'] = Field(
        default=BUY_MODE_SEQUENTIAL,
        description="Whether buy rights are offered one seat at a time or to everyone at once"
    )
    buy_time_limit: int = Field(
        default=10,
        ge=1,
        le=120,
        description="Seconds a buy window stays open before it resolves on its own"
    )

    @field_validator('buy_mode', mode='before')
    @classmethod
    def normalize_buy_mode(cls, v):
        """Accept any casing for the buy mode."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_simultaneous(self) -> bool:
        return self.buy_mode == BUY_MODE_SIMULTANEOUS


# Default configuration instance
default_settings = GameSettings()


def create_settings(overrides: Optional[Dict[str, Any]] = None) -> GameSettings:
    """
    Create GameSettings from optional overrides.

    Unknown keys are ignored and missing keys fall back to defaults.

    Raises:
        pydantic.ValidationError: If a known key has an invalid value
    """
    config_dict = default_settings.model_dump()
    for key, value in (overrides or {}).items():
        if key in config_dict and value is not None:
            config_dict[key] = value
    return GameSettings(**config_dict)
