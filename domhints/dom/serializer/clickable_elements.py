from domhints.dom.utils import (
	CLICKABLE_ROLES,
	READONLY_TEXT_INPUT_TYPES,
	has_angular_click_handler,
	has_js_action,
	is_aria_disabled,
	is_content_editable,
	parse_tab_index,
)
from domhints.dom.views import EnhancedDOMTreeNode, NodeType

INTERACTIVE_AX_ROLES = CLICKABLE_ROLES | {
	'option',
	'textbox',
	'combobox',
	'slider',
	'spinbutton',
	'listbox',
	'searchbox',
	'switch',
}


class ClickableElementDetector:
	@staticmethod
	def _has_visible_size(node: EnhancedDOMTreeNode) -> bool:
		"""
		Check if node has non-zero dimensions (not collapsed/hidden).

		Returns:
			True if element has visible size (width > 0 and height > 0)
			True if no bounds info available (assume visible)
			False if element has zero width or height
		"""
		if not (node.snapshot_node and node.snapshot_node.bounds):
			return True
		bounds = node.snapshot_node.bounds
		return bounds.height > 0 and bounds.width > 0

	@staticmethod
	def _is_disabled(node: EnhancedDOMTreeNode) -> bool:
		if is_aria_disabled(node.attributes.get('aria-disabled')):
			return True
		return bool(node.ax_node and node.ax_node.get_property('disabled'))

	@staticmethod
	def _native_tag_is_interactive(node: EnhancedDOMTreeNode) -> bool | None:
		"""Verdict for native controls, `None` when the tag has no native rule."""
		tag = node.tag_name
		attributes = node.attributes

		if tag == 'a':
			return 'href' in attributes or None
		if tag in ('button', 'select'):
			return 'disabled' not in attributes
		if tag == 'textarea':
			return 'disabled' not in attributes and 'readonly' not in attributes
		if tag == 'input':
			input_type = attributes.get('type', 'text').lower()
			if input_type == 'hidden' or 'disabled' in attributes:
				return False
			return not ('readonly' in attributes and input_type in READONLY_TEXT_INPUT_TYPES)
		if tag in ('details', 'summary', 'object', 'embed'):
			return True
		if tag == 'label':
			return 'for' in attributes or None
		if tag in ('iframe', 'frame'):
			position = node.absolute_position
			return bool(position and position.width > 100 and position.height > 100)
		return None

	@staticmethod
	def _check_accessibility_properties(node: EnhancedDOMTreeNode) -> bool:
		"""
		Accessibility property checks.

		Returns:
			True if interactive based on accessibility properties
			False if not interactive or no conclusive determination
		"""
		if not node.ax_node or node.ax_node.ignored:
			return False

		if node.ax_node.role and node.ax_node.role.lower() in INTERACTIVE_AX_ROLES:
			return True

		for prop in node.ax_node.properties or []:
			if prop.name in ('focusable', 'editable', 'settable') and prop.value:
				return True
			if prop.name in ('checked', 'expanded', 'pressed', 'selected'):
				return True
			if prop.name in ('hasPopup', 'haspopup', 'multiselectable') and prop.value:
				return True
		return False

	@staticmethod
	def _has_event_handlers_or_interactive_attributes(node: EnhancedDOMTreeNode) -> bool:
		attributes = node.attributes
		if not attributes:
			return False

		if any(handler in attributes for handler in ('onclick', 'onmousedown', 'onmouseup', 'onkeydown', 'onkeyup')):
			return True
		if has_angular_click_handler(attributes) or has_js_action(attributes.get('jsaction')):
			return True

		role = attributes.get('role')
		if role and role.lower() in CLICKABLE_ROLES:
			return True
		if is_content_editable(attributes.get('contenteditable')):
			return True

		tab_index = parse_tab_index(attributes.get('tabindex'))
		return tab_index is not None and tab_index >= 0

	@staticmethod
	def _has_interactive_cursor(node: EnhancedDOMTreeNode) -> bool:
		if not (node.snapshot_node and node.snapshot_node.cursor_style):
			return False
		return node.snapshot_node.cursor_style in ('pointer', 'zoom-in', 'zoom-out')

	@staticmethod
	def is_interactive(node: EnhancedDOMTreeNode) -> bool:
		"""Check if this node is clickable/interactive."""
		if node.node_type != NodeType.ELEMENT_NODE:
			return False

		# html and body are reported as scroll containers, never as click targets
		if node.tag_name in {'html', 'body'}:
			return False

		if not ClickableElementDetector._has_visible_size(node):
			return False

		if ClickableElementDetector._is_disabled(node):
			return False

		native = ClickableElementDetector._native_tag_is_interactive(node)
		if native is not None:
			return native

		if node.snapshot_node and node.snapshot_node.is_clickable:
			return True

		if ClickableElementDetector._has_event_handlers_or_interactive_attributes(node):
			return True

		if ClickableElementDetector._check_accessibility_properties(node):
			return True

		if node.tag_name in ('div', 'ol', 'ul') and node.is_actually_scrollable:
			return True

		return ClickableElementDetector._has_interactive_cursor(node)
