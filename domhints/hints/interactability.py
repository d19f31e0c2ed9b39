from domhints.dom.utils import (
	CLICKABLE_ROLES,
	READONLY_TEXT_INPUT_TYPES,
	has_angular_click_handler,
	has_js_action,
	is_aria_disabled,
	is_content_editable,
	parse_tab_index,
)
from domhints.hints.page import Element, get_computed_style
from domhints.hints.views import InteractabilityInfo

_SCROLLABLE_OVERFLOW = ('auto', 'scroll')


def is_scrollable_element(element: Element) -> bool:
	style = get_computed_style(element)
	return (element.scroll_height > element.client_height and style.overflow_y in _SCROLLABLE_OVERFLOW) or (
		element.scroll_width > element.client_width and style.overflow_x in _SCROLLABLE_OVERFLOW
	)


def _native_clickability(element: Element) -> tuple[bool, str | None]:
	tag_name = element.tag_name

	if tag_name == 'a':
		return True, None
	if tag_name in ('button', 'select'):
		return not element.disabled, None
	if tag_name == 'textarea':
		return not element.disabled and not element.read_only, None
	if tag_name == 'input':
		input_type = element.type
		clickable = (
			input_type != 'hidden'
			and not element.disabled
			and not (element.read_only and input_type in READONLY_TEXT_INPUT_TYPES)
		)
		return clickable, None
	if tag_name == 'label':
		control = element.control
		return control is not None and not control.disabled, None
	if tag_name == 'img':
		return get_computed_style(element).cursor in ('zoom-in', 'zoom-out'), None
	if tag_name == 'details':
		return True, 'Open/Close'
	if tag_name in ('object', 'embed'):
		return True, None
	if tag_name == 'body':
		document = element.owner_document
		window = document.default_view if document else None
		if (
			document is None
			or element is not document.body
			or window is None
			or window.inner_width <= 3
			or window.inner_height <= 3
		):
			return False, None
		# Frame bodies are focus targets even when nothing overflows
		if window is not window.top:
			return True, 'Frame'
		if is_scrollable_element(element):
			return True, 'Scroll'
		return False, None
	if tag_name in ('div', 'ol', 'ul') and is_scrollable_element(element):
		return True, 'Scroll'
	return False, None


def get_interactability(element: Element) -> InteractabilityInfo:
	"""Classify one element; the first matching rule wins."""
	if is_aria_disabled(element.get_attribute('aria-disabled')):
		return InteractabilityInfo(clickable=False)

	clickable, reason = _native_clickability(element)
	if clickable:
		return InteractabilityInfo(clickable=True, reason=reason)

	attributes = element.attributes
	if 'onclick' in attributes or has_angular_click_handler(attributes) or has_js_action(attributes.get('jsaction')):
		return InteractabilityInfo(clickable=True, reason=reason)

	role = attributes.get('role')
	if role and role.lower() in CLICKABLE_ROLES:
		return InteractabilityInfo(clickable=True, reason=reason)

	if is_content_editable(attributes.get('contenteditable')):
		return InteractabilityInfo(clickable=True, reason=reason)

	if 'button' in attributes.get('class', '').lower():
		return InteractabilityInfo(clickable=True, reason=reason, possible_false_positive=True)

	tab_index = parse_tab_index(attributes.get('tabindex'))
	if tab_index is not None and tab_index >= 0:
		return InteractabilityInfo(clickable=True, reason=reason, second_class_citizen=True)

	return InteractabilityInfo(clickable=False, reason=reason)
