import logging

from domhints.dom.views import DOMSelectorMap, DOMTreeArena

logger = logging.getLogger(__name__)


class SelectorMapBuilder:
	"""Assigns dense element indices, starting at 1, in traversal order."""

	def __init__(
		self,
		arena: DOMTreeArena,
		interactive: set[int],
		occluded: set[int] | None = None,
		excluded: set[int] | None = None,
	):
		self.arena = arena
		self.interactive = interactive
		self.occluded = occluded or set()
		self.excluded = excluded or set()

	def is_indexable(self, backend_node_id: int, is_visible: bool | None) -> bool:
		return (
			bool(is_visible)
			and backend_node_id in self.interactive
			and backend_node_id not in self.occluded
			and backend_node_id not in self.excluded
		)

	def build(self) -> DOMSelectorMap:
		selector_map: DOMSelectorMap = {}
		for node in self.arena.nodes:
			node.element_index = None

		next_index = 1
		# Content document, then shadow roots, then children
		for node in self.arena.iter_tree():
			if not self.is_indexable(node.backend_node_id, node.is_visible):
				continue
			node.element_index = next_index
			selector_map[next_index] = node
			next_index += 1

		logger.debug(f'🔢 Indexed {len(selector_map)} of {len(self.arena)} nodes')
		return selector_map
