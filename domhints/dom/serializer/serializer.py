# @file purpose: Serializes fused DOM trees to a compact text form for LLM consumption

from domhints.dom.serializer.compound import format_compound_components
from domhints.dom.utils import cap_text_length
from domhints.dom.views import (
	DOMTreeState,
	EnhancedDOMTreeNode,
	NodeType,
	SerializedDOMState,
	SimplifiedNode,
)
from domhints.utils import time_execution_sync

SKIPPED_TAGS = {'script', 'style', 'head', 'meta', 'link', 'title', 'noscript'}
FRAME_TAGS = {'iframe', 'frame'}


def is_meaningful_text(node: EnhancedDOMTreeNode) -> bool:
	"""Visible text node with more than one non-blank character."""
	if node.node_type != NodeType.TEXT_NODE or not node.is_visible:
		return False
	return bool(node.node_value) and len(node.node_value.strip()) > 1


def is_collapsible_host(node: EnhancedDOMTreeNode) -> bool:
	"""Interactive custom element whose shadow tree is presented as one control."""
	return node.element_index is not None and node.is_shadow_host and '-' in node.tag_name


def is_serialized_child(node: EnhancedDOMTreeNode) -> bool:
	"""Whether the tree walk descends into `node` at all."""
	if node.node_type == NodeType.ELEMENT_NODE and node.tag_name in SKIPPED_TAGS:
		return False
	if node.node_type not in (
		NodeType.ELEMENT_NODE,
		NodeType.TEXT_NODE,
		NodeType.DOCUMENT_NODE,
		NodeType.DOCUMENT_FRAGMENT_NODE,
	):
		return False
	return not (node.node_type == NodeType.TEXT_NODE and not node.node_value.strip())


def child_slots(node: EnhancedDOMTreeNode, collapsed: bool) -> list[tuple[EnhancedDOMTreeNode, bool]]:
	"""Content document, shadow roots and children of `node`, each with its collapsed flag.

	The shadow tree of an interactive custom element is collapsed into its host,
	and everything below a collapsed root stays collapsed.
	"""
	slots: list[tuple[EnhancedDOMTreeNode, bool]] = []
	content_document = node.content_document
	if content_document is not None:
		slots.append((content_document, False))
	collapse_shadow = collapsed or is_collapsible_host(node)
	slots.extend((shadow_root, collapse_shadow) for shadow_root in node.shadow_roots)
	slots.extend((child, collapsed) for child in node.children_nodes)
	return [(child, child_collapsed) for child, child_collapsed in slots if is_serialized_child(child)]


def displays_itself(node: EnhancedDOMTreeNode, collapsed: bool) -> bool:
	if node.element_index is not None:
		return True
	if collapsed:
		return False
	if node.node_type == NodeType.TEXT_NODE:
		return is_meaningful_text(node)
	if node.node_type == NodeType.ELEMENT_NODE:
		return bool(node.is_visible) and node.is_actually_scrollable
	return False


class DOMTreeSerializer:
	"""Serializes a published `DOMTreeState` to string format."""

	def __init__(self, state: DOMTreeState):
		self.state = state

	@time_execution_sync('--serialize_accessible_elements')
	def serialize_accessible_elements(self) -> SerializedDOMState:
		root = self.state.root
		if root is None:
			return SerializedDOMState(_root=None, selector_map=self.state.selector_map, page_info=self.state.page_info)
		simplified = self._create_simplified_tree(root)
		return SerializedDOMState(_root=simplified, selector_map=self.state.selector_map, page_info=self.state.page_info)

	def _wrap(self, node: EnhancedDOMTreeNode) -> SimplifiedNode:
		state = self.state
		simplified = SimplifiedNode(original_node=node)
		simplified.interactive_index = node.element_index
		simplified.ignored_by_paint_order = node.backend_node_id in state.occluded_node_ids
		simplified.excluded_by_parent = node.backend_node_id in state.excluded_node_ids
		simplified.is_shadow_host = node.is_shadow_host
		if node.element_index is not None:
			simplified.is_new = node.element_hash in state.new_element_hashes
			simplified.is_compound_component = bool(node.compound_children) or is_collapsible_host(node)
		return simplified

	def _create_simplified_tree(self, root: EnhancedDOMTreeNode) -> SimplifiedNode:
		"""Wrap every relevant node, then keep only branches that lead to something displayable."""
		root_simplified = self._wrap(root)
		order: list[tuple[SimplifiedNode, bool]] = [(root_simplified, False)]
		stack: list[tuple[EnhancedDOMTreeNode, SimplifiedNode, bool]] = [(root, root_simplified, False)]

		while stack:
			node, simplified, collapsed = stack.pop()
			children: list[tuple[EnhancedDOMTreeNode, SimplifiedNode, bool]] = []
			for child, child_collapsed in child_slots(node, collapsed):
				child_simplified = self._wrap(child)
				simplified.children.append(child_simplified)
				order.append((child_simplified, child_collapsed))
				children.append((child, child_simplified, child_collapsed))

			stack.extend(reversed(children))

		# Pre-order reversed: every child is settled before its parent
		for simplified, collapsed in reversed(order):
			simplified.children = [child for child in simplified.children if child.should_display]
			simplified.should_display = displays_itself(simplified.original_node, collapsed) or bool(simplified.children)

		root_simplified.should_display = True
		return root_simplified

	@staticmethod
	def _is_frame_document(node: EnhancedDOMTreeNode) -> bool:
		if node.node_type != NodeType.DOCUMENT_NODE:
			return False
		parent = node.parent_node
		return parent is not None and parent.tag_name in FRAME_TAGS

	@staticmethod
	def _element_prefix(node: SimplifiedNode) -> str | None:
		"""Line prefix for elements that get their own line, `None` for transparent containers."""
		original = node.original_node
		scrollable = bool(original.is_visible) and original.is_actually_scrollable
		prefix = ''
		if node.is_shadow_host:
			mode = original.shadow_roots[0].shadow_root_type or 'open'
			prefix += f'|SHADOW({mode})|'

		if node.interactive_index is not None:
			new_marker = '*' if node.is_new else ''
			opener = '|SCROLL+' if scrollable else '['
			return f'{prefix}{new_marker}{opener}{node.interactive_index}]'
		if scrollable:
			return f'{prefix}|SCROLL|'
		if prefix or original.tag_name in FRAME_TAGS:
			return prefix
		return None

	@staticmethod
	def serialize_tree(
		node: SimplifiedNode | None, include_attributes: list[str], depth: int = 0, max_attribute_length: int = 100
	) -> str:
		"""Serialize the simplified tree to tab-indented lines."""
		if not node:
			return ''

		lines: list[str] = []
		stack: list[tuple[SimplifiedNode, int] | str] = [(node, depth)]

		while stack:
			item = stack.pop()
			if isinstance(item, str):
				lines.append(item)
				continue

			current, current_depth = item
			if not current.should_display:
				continue
			original = current.original_node
			depth_str = current_depth * '\t'
			next_depth = current_depth
			closing: str | None = None

			if original.node_type == NodeType.ELEMENT_NODE:
				prefix = DOMTreeSerializer._element_prefix(current)
				if prefix is not None:
					next_depth += 1
					text = original.get_all_children_text() if current.interactive_index is not None else ''
					attributes_str = DOMTreeSerializer._build_attributes_string(original, include_attributes, text, max_attribute_length)
					line = f'{depth_str}{prefix}<{original.tag_name}'
					if attributes_str:
						line += f' {attributes_str}'
					if original.compound_children:
						line += f' compound_components=({format_compound_components(original.compound_children)})'
					scroll_info = original.scroll_info if '|SCROLL' in prefix else None
					if scroll_info:
						line += f' scroll={scroll_info["pages_above"]}↑{scroll_info["pages_below"]}↓'
					line += ' />'
					lines.append(line)

			elif original.node_type == NodeType.TEXT_NODE:
				lines.append(f'{depth_str}{original.node_value.strip()}')

			elif DOMTreeSerializer._is_frame_document(original):
				frame = original.parent_node
				src = frame.attributes.get('src', '') if frame is not None else ''
				label = f' {cap_text_length(src, max_attribute_length)}' if src else ''
				lines.append(f'{depth_str}┌── IFRAME START{label} ──')
				closing = f'{depth_str}└── IFRAME END ──'
				next_depth += 1

			if closing is not None:
				stack.append(closing)
			stack.extend((child, next_depth) for child in reversed(current.children))

		return '\n'.join(lines)

	@staticmethod
	def _build_attributes_string(node: EnhancedDOMTreeNode, include_attributes: list[str], text: str, max_length: int = 100) -> str:
		"""Build the attributes string for an element."""
		if not node.attributes:
			return ''

		attributes_to_include = {
			key: str(value).strip()
			for key, value in node.attributes.items()
			if key in include_attributes and str(value).strip() != ''
		}

		# Remove duplicate values
		ordered_keys = [key for key in include_attributes if key in attributes_to_include]

		if len(ordered_keys) > 1:
			keys_to_remove = set()
			seen_values = {}

			for key in ordered_keys:
				value = attributes_to_include[key]
				if len(value) > 5:
					if value in seen_values:
						keys_to_remove.add(key)
					else:
						seen_values[value] = key

			for key in keys_to_remove:
				del attributes_to_include[key]

		# Remove attributes that duplicate accessibility data
		role = node.ax_node.role if node.ax_node else None
		if role and node.tag_name == role:
			attributes_to_include.pop('role', None)

		for attr in ('aria-label', 'placeholder', 'title'):
			value = attributes_to_include.get(attr)
			if value and text and value.lower() == text.strip().lower():
				del attributes_to_include[attr]

		if attributes_to_include:
			return ' '.join(
				f'{key}={cap_text_length(attributes_to_include[key], max_length)}'
				for key in include_attributes
				if key in attributes_to_include
			)

		return ''
