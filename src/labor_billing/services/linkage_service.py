"""Linkage of time entries to the documents that consumed them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from labor_billing.calculators.types import Side
from labor_billing.exceptions import LinkageConflictError
from labor_billing.services.ports import LinkageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkageResult:
    """Entries linked to one document."""

    side: Side
    document_id: UUID
    linked_entry_ids: tuple[UUID, ...]

    @property
    def count(self) -> int:
        return len(self.linked_entry_ids)


class LinkageCommitter:
    """Marks time entries as billed on one side.

    Key invariants:
    1. Only the entry ids captured when the document was built are linked
    2. A ref that is already set is never overwritten (Unbilled -> Billed is terminal)
    3. Any conflict fails the whole document; the caller's unit of work rolls back
    4. Invoice and vendor bill refs are independent
    """

    def __init__(self, store: LinkageStore):
        self.store = store

    async def commit(
        self, document_id: UUID, entry_ids: Sequence[UUID], side: Side
    ) -> LinkageResult:
        """Link entries to a document.

        Raises:
            ValueError: If there are no entries to link
            LinkageConflictError: If any entry is already linked on this side
        """
        ids = tuple(dict.fromkeys(entry_ids))
        if not ids:
            raise ValueError(f"No entries to link to {side.value} {document_id}")

        outcome = await self.store.set_entry_refs(ids, document_id, side)
        if outcome.conflicting_ids:
            logger.warning(
                "Linkage conflict for %s %s: %d of %d entries already billed",
                side.value,
                document_id,
                len(outcome.conflicting_ids),
                len(ids),
            )
            raise LinkageConflictError(side, document_id, outcome.conflicting_ids)

        logger.debug("Linked %d entries to %s %s", len(ids), side.value, document_id)
        return LinkageResult(side=side, document_id=document_id, linked_entry_ids=ids)
