"""
Capacity fold: reduce per-filter capacity lists into one scalar per document.

Runs after the query returns. Filter ids are matched case-insensitively and
node entries are flattened across the selected filters, which a plain store
predicate cannot express.

Side effect: `fold` writes the sum onto the document's capacity field
(`capacityPerSprint` for sprint capacity, `capacity` for kanban capacity).
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

# Filter keys carrying the fold inputs; never sent to the store as predicates
ADDITIONAL_FILTER_NODE_ID = "additionalFilterCapacityList.nodeCapacityList.additionalFilterId"
ADDITIONAL_FILTER_ID = "additionalFilterCapacityList.filterId"

FOLD_FILTER_KEYS = (ADDITIONAL_FILTER_NODE_ID, ADDITIONAL_FILTER_ID)

D = TypeVar("D")


class CapacityFoldEngine:
    """Sums node capacities of the allowed filters onto the parent document.

    Documents are expected to expose `additional_filter_capacity_list` (entries
    with `filter_id` and `node_capacity_list`, nodes with
    `additional_filter_id` and `additional_filter_capacity`) and a class-level
    `capacity_field` naming the scalar to write.
    """

    def fold(
        self,
        document: Any,
        allowed_filter_ids: Optional[Iterable[str]],
        allowed_node_ids: Optional[Iterable[str]],
    ) -> float:
        entries = getattr(document, "additional_filter_capacity_list", None)
        if not entries:
            total = 0.0
        else:
            filter_keys = {f.upper() for f in (allowed_filter_ids or ()) if f is not None}
            node_ids = set(allowed_node_ids or ())
            total = math.fsum(
                float(node.additional_filter_capacity or 0.0)
                for entry in entries
                if entry.filter_id is not None and entry.filter_id.upper() in filter_keys
                for node in (entry.node_capacity_list or ())
                if node.additional_filter_id in node_ids
            )
        setattr(document, document.capacity_field, total)
        return total

    def fold_all(self, documents: Sequence[D], filters: Mapping[str, Any]) -> List[D]:
        """Enrich every document using the fold keys of a repository filter map.

        Does nothing when the node-id key is absent, matching the query-side
        contract where those keys are optional.
        """
        if ADDITIONAL_FILTER_NODE_ID not in filters:
            return list(documents)
        node_ids = filters.get(ADDITIONAL_FILTER_NODE_ID) or ()
        filter_ids = filters.get(ADDITIONAL_FILTER_ID) or ()
        for document in documents:
            self.fold(document, filter_ids, node_ids)
        logger.debug(f"Folded capacity for {len(documents)} documents")
        return list(documents)


capacity_fold_engine = CapacityFoldEngine()
