import logging

from domhints.dom.views import DOMRect, DOMTreeArena, EnhancedDOMTreeNode, NodeType

logger = logging.getLogger(__name__)

_TRANSPARENT_BACKGROUNDS = {'', 'transparent', 'rgba(0, 0, 0, 0)'}


class PaintOrderRemover:
	"""Finds elements fully hidden beneath an opaque element painted after them.

	Only single-rectangle coverage counts, and a node is never occluded by its
	own descendants.
	"""

	def __init__(self, arena: DOMTreeArena, opacity_threshold: float = 0.8):
		self.arena = arena
		self.opacity_threshold = opacity_threshold

	def _is_opaque_cover(self, node: EnhancedDOMTreeNode) -> bool:
		snapshot = node.snapshot_node
		if snapshot is None or snapshot.computed_styles is None:
			return False
		styles = snapshot.computed_styles
		if styles.get('background-color', '').strip().lower() in _TRANSPARENT_BACKGROUNDS:
			return False
		if styles.get('pointer-events') == 'none':
			return False
		try:
			return float(styles.get('opacity', '1')) >= self.opacity_threshold
		except ValueError:
			return True

	def calculate_occluded(self) -> set[int]:
		"""Backend node ids of elements that are painted over."""
		painted: list[tuple[int, EnhancedDOMTreeNode, DOMRect]] = []
		for node in self.arena.nodes:
			if node.node_type != NodeType.ELEMENT_NODE or not node.is_visible:
				continue
			snapshot = node.snapshot_node
			if snapshot is None or snapshot.paint_order is None or node.absolute_position is None:
				continue
			painted.append((snapshot.paint_order, node, node.absolute_position))

		covers = [(order, node, rect) for order, node, rect in painted if self._is_opaque_cover(node)]
		if not covers:
			return set()

		occluded: set[int] = set()
		for order, node, rect in painted:
			for cover_order, cover, cover_rect in covers:
				if cover_order <= order or cover is node:
					continue
				if (cover.target_id, cover.frame_id) != (node.target_id, node.frame_id):
					continue
				if not cover_rect.contains(rect):
					continue
				if self.arena.is_ancestor(node, cover):
					continue
				occluded.add(node.backend_node_id)
				break

		if occluded:
			logger.debug(f'🎨 {len(occluded)} elements hidden by paint order')
		return occluded
