"""Observable records emitted by the vault.

Nothing inside the engine consumes these; they exist for off-chain monitoring.
Each model carries a ``type`` literal so a stream of them can be parsed back
through :data:`VaultEvent`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Literal, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    vault: str


E = TypeVar("E", bound=_Event)


class Initialized(_Event):
    type: Literal["initialized"] = "initialized"
    tick_lower: int
    tick_upper: int
    universal_multiplier: int


class Deposit(_Event):
    type: Literal["deposit"] = "deposit"
    sender: str
    to: str
    shares: int
    amount0: int
    amount1: int


class Withdraw(_Event):
    type: Literal["withdraw"] = "withdraw"
    sender: str
    to: str
    shares: int
    amount0: int
    amount1: int


class CollectFees(_Event):
    type: Literal["collect_fees"] = "collect_fees"
    fees0: int
    fees1: int
    protocol_fees0: int
    protocol_fees1: int
    users_fees0: int
    users_fees1: int


class Snapshot(_Event):
    type: Literal["snapshot"] = "snapshot"
    balance0: int
    balance1: int


class Rerange(_Event):
    type: Literal["rerange"] = "rerange"
    caller: str
    tick_lower: int
    tick_upper: int
    amount0: int
    amount1: int


class RewardPaid(_Event):
    type: Literal["reward_paid"] = "reward_paid"
    account: str
    amount0: int
    amount1: int


class ProtocolFeesPaid(_Event):
    type: Literal["protocol_fees_paid"] = "protocol_fees_paid"
    recipient: str
    amount0: int
    amount1: int


class GovernanceProposed(_Event):
    type: Literal["governance_proposed"] = "governance_proposed"
    governance: str
    pending: str


class GovernanceAccepted(_Event):
    type: Literal["governance_accepted"] = "governance_accepted"
    previous: str
    governance: str


VaultEvent = Annotated[
    Initialized
    | Deposit
    | Withdraw
    | CollectFees
    | Snapshot
    | Rerange
    | RewardPaid
    | ProtocolFeesPaid
    | GovernanceProposed
    | GovernanceAccepted,
    Field(discriminator="type"),
]

Subscriber = Callable[[_Event], None]


class EventLog:
    """Append-only event record with fan-out to subscribers."""

    def __init__(self, source: str):
        self.source = source
        self.events: list[_Event] = []
        self._subscribers: list[Subscriber] = []
        self.logger = logger.bind(vault=source)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: _Event) -> None:
        self.events.append(event)
        self.logger.info(f"{event.type} {event.model_dump(exclude={'type', 'vault'})}")
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001
                self.logger.error(f"Event subscriber failed on {event.type}: {exc}")

    def of_type(self, kind: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, kind)]
