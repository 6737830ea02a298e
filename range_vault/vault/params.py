from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from range_vault.core.config import get_strategy_config
from range_vault.core.constants import GLOBAL_DIVISOR


class StrategyParams(BaseModel):
    """Governed knobs of the vault strategy. Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    twap_duration: int = Field(default=60, description="TWAP window in seconds")
    max_twap_deviation: int = Field(
        default=100, description="Max |spot tick - TWAP tick| tolerated"
    )
    tick_range_multiplier: int = Field(
        default=10, description="Half-width of the range in tick spacings"
    )
    price_impact_ppm: int = Field(
        default=10_000, description="Max rebalance swap price impact (1e6 = 100%)"
    )
    protocol_fee_ppm: int = Field(
        default=100_000, description="Protocol cut of harvested fees (1e6 = 100%)"
    )
    max_total_supply: int = Field(
        default=10**27, description="Cap on outstanding vault shares"
    )

    @model_validator(mode="after")
    def _validate_ranges(self) -> StrategyParams:
        if self.twap_duration <= 0:
            raise ValueError("twap_duration must be positive")
        if self.max_twap_deviation < 0:
            raise ValueError("max_twap_deviation must be >= 0")
        if self.tick_range_multiplier <= 0:
            raise ValueError("tick_range_multiplier must be positive")
        # halving must leave a non-zero tolerance
        if not 2 <= self.price_impact_ppm < GLOBAL_DIVISOR:
            raise ValueError("price_impact_ppm must be in [2, 1_000_000)")
        if not 0 <= self.protocol_fee_ppm < GLOBAL_DIVISOR:
            raise ValueError("protocol_fee_ppm must be in [0, 1_000_000)")
        if self.max_total_supply <= 0:
            raise ValueError("max_total_supply must be positive")
        return self

    @classmethod
    def from_config(cls, overrides: dict[str, Any] | None = None) -> StrategyParams:
        """Defaults, overlaid with ``CONFIG["vault"]["strategy"]``, overlaid with ``overrides``."""
        return cls(**{**get_strategy_config(), **(overrides or {})})
