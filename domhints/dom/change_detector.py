"""
Per-target change tracking across fusion passes.

Each target keeps the identity set of its previous indexed nodes and its
previous displayable-node count, so a new pass can report what appeared
without serializing anything.
"""

import logging
import time
from dataclasses import dataclass, field

from domhints.dom.serializer.serializer import child_slots, displays_itself
from domhints.dom.views import BuildStats, DOMSelectorMap, DOMTreeArena, EnhancedDOMTreeNode

logger = logging.getLogger(__name__)


@dataclass
class _TargetHistory:
	element_hashes: set[int] = field(default_factory=set)
	displayable_count: int = 0
	stats: BuildStats | None = None


def count_displayable(arena: DOMTreeArena) -> int:
	"""Nodes the serializer gives a line of their own: indexed nodes, visible scroll containers and meaningful text.

	Walks the tree the way the serializer does, so text inside a collapsed
	custom-element shadow tree is not counted.
	"""
	root = arena.root
	if root is None:
		return 0
	count = 0
	stack: list[tuple[EnhancedDOMTreeNode, bool]] = [(root, False)]
	while stack:
		node, collapsed = stack.pop()
		if displays_itself(node, collapsed):
			count += 1
		stack.extend(child_slots(node, collapsed))
	return count


class ChangeDetector:
	def __init__(self) -> None:
		self._history: dict[str, _TargetHistory] = {}

	def detect(
		self,
		target_id: str,
		arena: DOMTreeArena,
		selector_map: DOMSelectorMap,
		timestamp: float | None = None,
	) -> tuple[BuildStats, set[int]]:
		"""Diff this pass against the previous one for `target_id` and record it as the new baseline.

		Returns the build stats and the hashes of indexed nodes that had no match
		in the previous pass. Indexed nodes of the previous pass with no match now
		are reported as removed. On the first pass every indexed node counts as new
		in the stats, but no hashes are returned since there is nothing to compare to.
		"""
		history = self._history.get(target_id)
		current_hashes = {node.element_hash for node in selector_map.values()}
		displayable = count_displayable(arena)

		removed_count = unchanged_count = 0
		if history is None:
			new_count = len(current_hashes)
			new_hashes: set[int] = set()
			count_change = displayable
		else:
			new_hashes = current_hashes - history.element_hashes
			new_count = len(new_hashes)
			removed_count = len(history.element_hashes - current_hashes)
			unchanged_count = len(current_hashes & history.element_hashes)
			count_change = displayable - history.displayable_count

		stats = BuildStats(
			target_id=target_id,
			new_nodes_count=new_count,
			simplified_nodes_count=displayable,
			simplified_nodes_count_change=count_change,
			timestamp=timestamp if timestamp is not None else time.time(),
			removed_nodes_count=removed_count,
			unchanged_nodes_count=unchanged_count,
		)
		self._history[target_id] = _TargetHistory(element_hashes=current_hashes, displayable_count=displayable, stats=stats)

		logger.debug(
			f'🔁 {target_id[-4:]}: {stats.new_nodes_count} new, {removed_count} removed, '
			f'{count_change:+d} displayed ({displayable} total)'
		)
		return stats, new_hashes

	def last_stats(self, target_id: str) -> BuildStats | None:
		history = self._history.get(target_id)
		return history.stats if history else None

	def is_stale(self, target_id: str, mutation_ts: float | None) -> bool:
		"""True when no build exists, or the page mutated after the last one."""
		stats = self.last_stats(target_id)
		if stats is None:
			return True
		if mutation_ts is None:
			return False
		return mutation_ts > stats.timestamp

	def reset(self, target_id: str | None = None) -> None:
		if target_id is None:
			self._history.clear()
		else:
			self._history.pop(target_id, None)
