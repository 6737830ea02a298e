from __future__ import annotations

from range_vault.core.errors import UnauthorizedError
from range_vault.core.utils.addresses import ensure_address
from range_vault.vault.events import EventLog, GovernanceAccepted, GovernanceProposed


class Governance:
    """Owner of privileged vault operations, handed over in two steps.

    The current owner proposes a successor; ownership moves only once the
    successor accepts, so a typo cannot lock the vault.
    """

    def __init__(self, governance: str, *, events: EventLog | None = None):
        self.governance = ensure_address(governance)
        self.pending_governance: str | None = None
        self.events = events

    def only_governance(self, caller: str) -> None:
        if ensure_address(caller) != self.governance:
            raise UnauthorizedError(f"{caller} is not governance")

    def set_governance(self, caller: str, pending: str) -> None:
        self.only_governance(caller)
        self.pending_governance = ensure_address(pending)
        self._emit(
            GovernanceProposed(
                vault=self._source, governance=self.governance, pending=self.pending_governance
            )
        )

    def accept_governance(self, caller: str) -> None:
        caller = ensure_address(caller)
        if self.pending_governance is None or caller != self.pending_governance:
            raise UnauthorizedError(f"{caller} is not the pending governance")
        previous = self.governance
        self.governance = caller
        self.pending_governance = None
        self._emit(GovernanceAccepted(vault=self._source, previous=previous, governance=caller))

    @property
    def _source(self) -> str:
        return self.events.source if self.events is not None else ""

    def _emit(self, event) -> None:
        if self.events is not None:
            self.events.emit(event)
