import logging
from dataclasses import dataclass

from domhints.dom.serializer.clickable_elements import ClickableElementDetector
from domhints.dom.views import DOMRect, DOMTreeArena, EnhancedDOMTreeNode, NodeType

logger = logging.getLogger(__name__)

# Descendants that stay addressable even inside a propagating parent
_INDEPENDENT_TAGS = {'input', 'select', 'textarea', 'label', 'option'}
_INDEPENDENT_ROLES = {'checkbox', 'radio', 'switch', 'tab', 'menuitem', 'option', 'combobox', 'textbox'}


@dataclass(slots=True)
class PropagatingBounds:
	"""Bounds of an interactive parent that swallow the clicks of its contained descendants."""

	tag: str
	bounds: DOMRect
	node_index: int


def _is_propagating_parent(node: EnhancedDOMTreeNode) -> bool:
	if node.tag_name in ('a', 'button'):
		return True
	role = (node.attributes.get('role') or '').lower()
	if role in ('button', 'link'):
		return True
	# Interactive custom elements behave as one control over their shadow tree
	return '-' in node.tag_name and node.is_shadow_host


def _is_independent(node: EnhancedDOMTreeNode) -> bool:
	if node.tag_name in _INDEPENDENT_TAGS:
		return True
	role = (node.attributes.get('role') or '').lower()
	if role in _INDEPENDENT_ROLES:
		return True
	return any(handler in node.attributes for handler in ('onclick', 'aria-label'))


class BoundingBoxFilter:
	def __init__(self, arena: DOMTreeArena, interactive: set[int], containment_threshold: float = 0.99):
		self.arena = arena
		self.interactive = interactive
		self.containment_threshold = containment_threshold

	def _is_contained(self, rect: DOMRect, parent: DOMRect) -> bool:
		if rect.area <= 0:
			return False
		return parent.intersection_area(rect) / rect.area >= self.containment_threshold

	def calculate_excluded(self) -> set[int]:
		"""Backend node ids of interactive descendants absorbed by an interactive parent."""
		excluded: set[int] = set()
		root = self.arena.root
		if root is None:
			return excluded

		stack: list[tuple[EnhancedDOMTreeNode, PropagatingBounds | None]] = [(root, None)]
		while stack:
			node, active = stack.pop()
			next_active = active

			if node.node_type == NodeType.ELEMENT_NODE and node.backend_node_id in self.interactive:
				position = node.absolute_position
				if (
					active is not None
					and position is not None
					and not _is_independent(node)
					and self._is_contained(position, active.bounds)
				):
					excluded.add(node.backend_node_id)
				elif position is not None and _is_propagating_parent(node):
					next_active = PropagatingBounds(tag=node.tag_name, bounds=position, node_index=node.index)

			children: list[EnhancedDOMTreeNode] = []
			content_document = node.content_document
			if content_document is not None:
				# Frame boundaries reset propagation
				stack.append((content_document, None))
			children.extend(node.shadow_roots)
			children.extend(node.children_nodes)
			stack.extend((child, next_active) for child in reversed(children))

		if excluded:
			logger.debug(f'📦 {len(excluded)} elements absorbed by their interactive parent')
		return excluded


def interactive_node_ids(arena: DOMTreeArena) -> set[int]:
	return {
		node.backend_node_id
		for node in arena.nodes
		if node.node_type == NodeType.ELEMENT_NODE and node.is_visible and ClickableElementDetector.is_interactive(node)
	}
