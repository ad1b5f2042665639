"""Counters collected during a sync pass."""

from dataclasses import dataclass, fields
from enum import Enum


class ItemOutcome(str, Enum):
    """What happened to one item handed to a reconciler."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SKIPPED = "SKIPPED"
    NO_CATEGORY = "NO_CATEGORY"


@dataclass
class SyncStats:
    """Counts for one pass.

    ``processed`` counts items handled without an error, whatever the
    outcome. ``no_category`` is an identity-resolution miss and is kept
    apart from ``errors``. ``abandoned`` counts items left unprocessed by a
    chunk that ran out of time.
    """

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    no_category: int = 0
    errors: int = 0
    abandoned: int = 0

    def record(self, outcome: ItemOutcome) -> None:
        self.processed += 1
        if outcome == ItemOutcome.CREATED:
            self.created += 1
        elif outcome == ItemOutcome.UPDATED:
            self.updated += 1
        elif outcome == ItemOutcome.NO_CATEGORY:
            self.no_category += 1
        else:
            self.skipped += 1

    def record_error(self) -> None:
        self.errors += 1

    def merge(self, other: "SyncStats") -> "SyncStats":
        """Add another pass's counts into this one."""
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def summary(self) -> str:
        """Human-readable run message."""
        parts = [
            f"Processed {self.processed}",
            f"created {self.created}",
            f"updated {self.updated}",
        ]
        if self.skipped:
            parts.append(f"skipped {self.skipped}")
        if self.no_category:
            parts.append(f"no category: {self.no_category}")
        if self.abandoned:
            parts.append(f"abandoned {self.abandoned}")
        message = ", ".join(parts)
        if self.errors:
            message += f". Completed with {self.errors} errors"
        return message
