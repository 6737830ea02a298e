from __future__ import annotations

from abc import ABC
from typing import Any

from loguru import logger

from range_vault.core.utils.addresses import derive_address, ensure_address


class BaseAdapter(ABC):
    """Common shape of the collaborators the vault talks to (pools, readers)."""

    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        address: str | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.address = (
            ensure_address(address) if address else derive_address(f"adapter:{name}")
        )
        self.logger = logger.bind(adapter=self.__class__.__name__, address=self.address)
