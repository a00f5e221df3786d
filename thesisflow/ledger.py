"""Append-only status history for applications and their theses.

Every status mutation on a ThesisApplication or on the Thesis created from
it is recorded as one ThesisApplicationStatusHistory row keyed by the
application id. Rows are only ever inserted; nothing in this package
updates or deletes them.

Listeners can subscribe to appended entries (for audit or notifications).
Listener failures are logged and never reach the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from dateutil.parser import isoparse

from thesisflow.models import ThesisApplicationStatusHistory, utcnow
from thesisflow.repository import Repositories
from thesisflow.types import LedgerStatus, parse_ledger_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """One recorded status transition.

    Attributes:
        id: Row id in the ledger table
        thesis_application_id: Application the transition belongs to
        old_status: Status before the transition (None for a first row)
        new_status: Status after the transition
        change_date: UTC timestamp of the transition
        note: Optional free-text annotation
    """
    id: int
    thesis_application_id: int
    old_status: Optional[LedgerStatus]
    new_status: LedgerStatus
    change_date: datetime
    note: Optional[str] = None

    def __post_init__(self):
        # Normalize raw strings to their vocabulary
        object.__setattr__(self, "old_status", parse_ledger_status(self.old_status))
        object.__setattr__(self, "new_status", parse_ledger_status(self.new_status))

    @classmethod
    def from_row(cls, row: ThesisApplicationStatusHistory) -> "LedgerEntry":
        return cls(
            id=row.id,
            thesis_application_id=row.thesis_application_id,
            old_status=parse_ledger_status(row.old_status),
            new_status=parse_ledger_status(row.new_status),
            change_date=row.change_date,
            note=row.note,
        )

    def matches(self, old: LedgerStatus, new: LedgerStatus) -> bool:
        """True when this entry records exactly the ``old -> new`` transition."""
        return self.old_status == old and self.new_status == new

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary for serialization.

        Timestamp is formatted as ISO 8601 string.
        """
        result: Dict[str, Any] = {
            "id": self.id,
            "thesisApplicationId": self.thesis_application_id,
            "oldStatus": self.old_status.value if self.old_status is not None else None,
            "newStatus": self.new_status.value,
            "changeDate": self.change_date.isoformat(),
        }
        if self.note is not None:
            result["note"] = self.note
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        """Create LedgerEntry from dictionary (camelCase keys)."""
        return cls(
            id=data["id"],
            thesis_application_id=data["thesisApplicationId"],
            old_status=parse_ledger_status(data.get("oldStatus")),
            new_status=parse_ledger_status(data["newStatus"]),
            change_date=isoparse(data["changeDate"]),
            note=data.get("note"),
        )


LedgerListener = Callable[[LedgerEntry], None]
"""Called synchronously with each appended entry."""


class LedgerEmitter:
    """Dispatches appended ledger entries to registered listeners.

    - Status-specific subscriptions (keyed by the entry's new status)
    - Wildcard subscriptions
    - Listeners called in registration order, failures isolated
    """

    def __init__(self):
        self._listeners: Dict[LedgerStatus, List[LedgerListener]] = {}
        self._any_listeners: List[LedgerListener] = []

    def on(self, status: LedgerStatus, listener: LedgerListener) -> None:
        self._listeners.setdefault(status, []).append(listener)

    def on_any(self, listener: LedgerListener) -> None:
        self._any_listeners.append(listener)

    def off(self, status: LedgerStatus, listener: LedgerListener) -> None:
        if status in self._listeners and listener in self._listeners[status]:
            self._listeners[status].remove(listener)

    def off_any(self, listener: LedgerListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, entry: LedgerEntry) -> None:
        listeners = list(self._listeners.get(entry.new_status, [])) + list(self._any_listeners)
        for listener in listeners:
            try:
                listener(entry)
            except Exception:
                logger.exception(
                    "Ledger listener failed for application %s (%s -> %s)",
                    entry.thesis_application_id,
                    entry.old_status.value if entry.old_status is not None else None,
                    entry.new_status.value,
                )

    def clear(self) -> None:
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, status: Optional[LedgerStatus] = None) -> int:
        if status is not None:
            return len(self._listeners.get(status, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


class StatusLedger:
    """Writer and reader of the status history table.

    Attributes:
        repos: Repositories bound to the current transaction
        emitter: Optional emitter notified after each append
    """

    def __init__(self, repos: Repositories, emitter: Optional[LedgerEmitter] = None):
        self.repos = repos
        self.emitter = emitter

    def append(
        self,
        thesis_application_id: int,
        old_status: Union[str, LedgerStatus, None],
        new_status: Union[str, LedgerStatus],
        note: Optional[str] = None,
    ) -> LedgerEntry:
        """Record one transition.

        Raises:
            ValueError: If a status is unknown, or old and new statuses come
                from different vocabularies
        """
        old = parse_ledger_status(old_status)
        new = parse_ledger_status(new_status)
        if new is None:
            raise ValueError("Ledger entries require a new status")
        if old is not None and type(old) is not type(new):
            raise ValueError(
                f"Ledger entry mixes status vocabularies: '{old.value}' -> '{new.value}'"
            )

        row = self.repos.status_history.create(
            thesis_application_id=thesis_application_id,
            old_status=old.value if old is not None else None,
            new_status=new.value,
            note=note,
            change_date=utcnow(),
        )
        entry = LedgerEntry.from_row(row)
        logger.info(
            "Status change on application %s: %s -> %s",
            thesis_application_id,
            old.value if old is not None else None,
            new.value,
        )
        if self.emitter is not None:
            self.emitter.emit(entry)
        return entry

    def history(self, thesis_application_id: int) -> List[LedgerEntry]:
        """All entries for an application, oldest first."""
        rows = self.repos.status_history.find_all(
            thesis_application_id=thesis_application_id,
            order_by=ThesisApplicationStatusHistory.id,
        )
        return [LedgerEntry.from_row(row) for row in rows]

    def latest(self, thesis_application_id: int) -> Optional[LedgerEntry]:
        row = self.repos.status_history.find_one(
            thesis_application_id=thesis_application_id,
            order_by=ThesisApplicationStatusHistory.id.desc(),
        )
        return LedgerEntry.from_row(row) if row is not None else None


__all__ = [
    "LedgerEntry",
    "LedgerListener",
    "LedgerEmitter",
    "StatusLedger",
]
