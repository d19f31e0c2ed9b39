import re

from domhints.hints.page import Element, Node

DEFAULT_MAX_TEXT_LENGTH = 256

_ID_XPATH = re.compile(r'^//\*\[@id="([^"]*)"\]$')
_XPATH_SEGMENT = re.compile(r'^([\w-]+)\[(\d+)\]$')


def get_link_text(element: Element, max_length: int = DEFAULT_MAX_TEXT_LENGTH) -> str:
	"""Human-readable text for a hint marker title and the agent's element listing."""
	link_text = ''

	if element.tag_name == 'input':
		labels = element.labels
		if labels:
			link_text = labels[0].text_content.strip()
			if link_text.endswith(':'):
				link_text = link_text[:-1]
		elif element.type == 'file':
			link_text = 'Choose File'
		elif element.type != 'password':
			link_text = element.value or element.placeholder
	elif element.tag_name == 'a' and not element.text_content.strip():
		image = element.query_selector('img')
		if image is not None:
			link_text = image.alt or image.title
	elif text := element.text_content:
		link_text = text[:max_length]
	elif element.has_attribute('title'):
		link_text = element.title
	else:
		link_text = element.inner_html[:max_length]

	return link_text.strip()


def get_xpath(element: Element) -> str | None:
	"""Positional XPath within the element's own tree scope; id shortcut when present."""
	if element.id:
		return f'//*[@id="{element.id}"]'

	segments: list[str] = []
	current: Node | None = element
	while isinstance(current, Element):
		index = 1
		sibling = current.previous_sibling
		while sibling is not None:
			if isinstance(sibling, Element) and sibling.tag_name == current.tag_name:
				index += 1
			sibling = sibling.previous_sibling
		segments.append(f'{current.tag_name}[{index}]')
		current = current.parent_node

	if not segments:
		return None
	return '/' + '/'.join(reversed(segments))


def resolve_xpath(root: Node, xpath: str) -> Element | None:
	"""Inverse of `get_xpath` for paths evaluated from `root`. Anything else resolves to `None`."""
	if match := _ID_XPATH.match(xpath):
		return root.get_element_by_id(match.group(1))
	if not xpath.startswith('/'):
		return None

	current: Node = root
	for segment in xpath[1:].split('/'):
		match = _XPATH_SEGMENT.match(segment)
		if match is None:
			return None
		tag_name, position = match.group(1).lower(), int(match.group(2))
		candidates = [child for child in current.children if child.tag_name == tag_name]
		if not 1 <= position <= len(candidates):
			return None
		current = candidates[position - 1]
	return current if isinstance(current, Element) else None
