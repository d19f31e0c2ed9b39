import logging
from dataclasses import dataclass

from cdp_use.cdp.accessibility.types import AXNode
from cdp_use.cdp.dom.types import Node
from cdp_use.cdp.target.types import SessionID, TargetID

from domhints.dom.enhanced_snapshot import build_snapshot_lookup
from domhints.dom.views import (
	DOMRect,
	DOMTreeArena,
	EnhancedAXNode,
	EnhancedAXProperty,
	EnhancedDOMTreeNode,
	EnhancedSnapshotNode,
	NodeType,
	TargetAllTrees,
	TreeSlot,
)
from domhints.exceptions import FusionError
from domhints.utils import time_execution_sync

logger = logging.getLogger(__name__)

_REQUIRED_NODE_KEYS = ('nodeId', 'backendNodeId', 'nodeType', 'nodeName')


@dataclass(frozen=True)
class FrameContext:
	"""Where a subtree came from: which target, frame and session, plus that target's lookups."""

	target_id: TargetID
	session_id: SessionID | None
	frame_id: str | None
	ax_lookup: dict[int, AXNode]
	snapshot_lookup: dict[int, EnhancedSnapshotNode]
	offset_x: float = 0.0
	offset_y: float = 0.0

	def nested(self, frame_id: str | None, offset: DOMRect | None) -> 'FrameContext':
		return FrameContext(
			target_id=self.target_id,
			session_id=self.session_id,
			frame_id=frame_id,
			ax_lookup=self.ax_lookup,
			snapshot_lookup=self.snapshot_lookup,
			offset_x=offset.x if offset else self.offset_x,
			offset_y=offset.y if offset else self.offset_y,
		)


def _extract_ax_property_value(value) -> str | bool | None:
	"""Extract value from various formats returned by the accessibility API."""
	if isinstance(value, dict):
		extracted = value.get('value', value)
		if isinstance(extracted, (str, bool)) or extracted is None:
			return extracted
		return str(extracted)
	elif isinstance(value, list) and len(value) > 0:
		return _extract_ax_property_value(value[0])
	elif isinstance(value, (str, bool)) or value is None:
		return value
	return str(value)


def build_enhanced_ax_node(ax_node: AXNode) -> EnhancedAXNode:
	properties = None
	if ax_node.get('properties'):
		properties = []
		for prop in ax_node['properties']:
			prop_name = prop.get('name')
			prop_value = _extract_ax_property_value(prop.get('value'))
			if prop_name and prop_value is not None:
				properties.append(EnhancedAXProperty(name=prop_name, value=prop_value))

	return EnhancedAXNode(
		ax_node_id=ax_node.get('nodeId', ''),
		ignored=ax_node.get('ignored', False),
		role=ax_node.get('role', {}).get('value') if ax_node.get('role') else None,
		name=ax_node.get('name', {}).get('value') if ax_node.get('name') else None,
		description=ax_node.get('description', {}).get('value') if ax_node.get('description') else None,
		properties=properties,
	)


def _parse_attributes(raw: list[str] | None) -> dict[str, str]:
	if not raw:
		return {}
	if len(raw) % 2:
		raise FusionError(f'Attribute list has odd length {len(raw)}')
	return {raw[i]: raw[i + 1] for i in range(0, len(raw), 2)}


def _is_rendered(snapshot_node: EnhancedSnapshotNode | None) -> bool:
	if snapshot_node is None or snapshot_node.bounds is None:
		return False
	if snapshot_node.bounds.width <= 0 or snapshot_node.bounds.height <= 0:
		return False
	styles = snapshot_node.computed_styles or {}
	if styles.get('display') == 'none' or styles.get('visibility') in ('hidden', 'collapse'):
		return False
	try:
		return float(styles.get('opacity', '1')) > 0
	except ValueError:
		return True


class DomTreeFuser:
	"""Joins DOM, accessibility and layout snapshots of one page (and its iframe targets) by backend node id."""

	def __init__(self, main: TargetAllTrees, iframe_trees: dict[str, TargetAllTrees] | None = None):
		self.main = main
		self.iframe_trees = iframe_trees or {}
		self.skipped_nodes = 0

	@staticmethod
	def _context_for(trees: TargetAllTrees, frame_id: str | None = None, offset: DOMRect | None = None) -> FrameContext:
		ax_lookup: dict[int, AXNode] = {
			ax_node['backendDOMNodeId']: ax_node for ax_node in trees.ax_tree.get('nodes', []) if 'backendDOMNodeId' in ax_node
		}
		return FrameContext(
			target_id=trees.target_id,
			session_id=trees.session_id,
			frame_id=frame_id or trees.dom_tree['root'].get('frameId'),
			ax_lookup=ax_lookup,
			snapshot_lookup=build_snapshot_lookup(trees.snapshot, trees.device_pixel_ratio),
			offset_x=offset.x if offset else 0.0,
			offset_y=offset.y if offset else 0.0,
		)

	@time_execution_sync('--fuse_dom_trees')
	def fuse(self) -> DOMTreeArena:
		arena = DOMTreeArena()
		self.skipped_nodes = 0

		main_context = self._context_for(self.main)
		stack: list[tuple[Node, int | None, FrameContext, TreeSlot]] = [(self.main.dom_tree['root'], None, main_context, 'child')]

		while stack:
			raw_node, parent_index, context, slot = stack.pop()
			try:
				node = self._build_node(raw_node, context, arena, parent_index)
				index = arena.add(node, parent_index, slot)
			except (FusionError, KeyError, ValueError, TypeError) as e:
				self.skipped_nodes += 1
				logger.warning(f'⚠️ Skipping DOM node {raw_node.get("backendNodeId", "?")} ({raw_node.get("nodeName", "?")}): {e}')
				continue

			pending: list[tuple[Node, int | None, FrameContext, TreeSlot]] = []

			if raw_node.get('contentDocument'):
				content_context = context.nested(raw_node.get('frameId'), node.absolute_position)
				pending.append((raw_node['contentDocument'], index, content_context, 'content_document'))
			elif node.tag_name in ('iframe', 'frame') and raw_node.get('frameId') in self.iframe_trees:
				trees = self.iframe_trees[raw_node['frameId']]
				iframe_context = self._context_for(trees, raw_node['frameId'], node.absolute_position)
				pending.append((trees.dom_tree['root'], index, iframe_context, 'content_document'))

			for shadow_root in raw_node.get('shadowRoots') or []:
				pending.append((shadow_root, index, context, 'shadow_root'))
			for child in raw_node.get('children') or []:
				pending.append((child, index, context, 'child'))

			stack.extend(reversed(pending))

		if self.skipped_nodes:
			logger.info(f'Fused {len(arena)} nodes, skipped {self.skipped_nodes}')
		return arena

	def _build_node(
		self, raw_node: Node, context: FrameContext, arena: DOMTreeArena, parent_index: int | None
	) -> EnhancedDOMTreeNode:
		missing = [key for key in _REQUIRED_NODE_KEYS if key not in raw_node]
		if missing:
			raise FusionError(f'Missing keys {missing}')

		backend_node_id = raw_node['backendNodeId']
		ax_node = context.ax_lookup.get(backend_node_id)
		snapshot_node = context.snapshot_lookup.get(backend_node_id)
		node_type = NodeType(raw_node['nodeType'])

		absolute_position = None
		if snapshot_node is not None and snapshot_node.bounds is not None:
			bounds = snapshot_node.bounds
			absolute_position = DOMRect(
				x=bounds.x + context.offset_x,
				y=bounds.y + context.offset_y,
				width=bounds.width,
				height=bounds.height,
			)

		parent = arena.nodes[parent_index] if parent_index is not None else None
		if node_type == NodeType.ELEMENT_NODE:
			is_visible = _is_rendered(snapshot_node)
		elif node_type == NodeType.TEXT_NODE:
			is_visible = _is_rendered(snapshot_node) if absolute_position is not None else bool(parent and parent.is_visible)
		else:
			is_visible = None

		return EnhancedDOMTreeNode(
			node_id=raw_node['nodeId'],
			backend_node_id=backend_node_id,
			node_type=node_type,
			node_name=raw_node['nodeName'],
			node_value=raw_node.get('nodeValue', ''),
			attributes=_parse_attributes(raw_node.get('attributes')),
			is_scrollable=raw_node.get('isScrollable'),
			is_visible=is_visible,
			absolute_position=absolute_position,
			target_id=context.target_id,
			frame_id=context.frame_id,
			session_id=context.session_id,
			shadow_root_type=raw_node.get('shadowRootType'),
			ax_node=build_enhanced_ax_node(ax_node) if ax_node else None,
			snapshot_node=snapshot_node,
		)
