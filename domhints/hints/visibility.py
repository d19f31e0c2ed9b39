from collections.abc import Iterator

from domhints.hints.page import Element, Node, get_computed_style


def _parse_opacity(value: str) -> float:
	try:
		return float(value)
	except ValueError:
		return 1.0


def is_element_visible(element: Element) -> bool:
	"""Non-empty box and not hidden by visibility, display or opacity. Viewport clipping is ignored."""
	rect = element.get_bounding_client_rect()
	if rect.width <= 0 or rect.height <= 0:
		return False
	style = get_computed_style(element)
	if style.visibility == 'hidden' or style.display == 'none':
		return False
	return _parse_opacity(style.opacity) > 0


def iter_all_elements(root: Node) -> Iterator[Element]:
	"""Every element under `root` in document order, each shadow tree right after its host."""
	stack: list[Iterator[Element]] = [iter(root.query_selector_all('*'))]
	while stack:
		element = next(stack[-1], None)
		if element is None:
			stack.pop()
			continue
		yield element
		if element.shadow_root is not None:
			stack.append(iter(element.shadow_root.query_selector_all('*')))


def collect_all_elements(root: Node) -> list[Element]:
	return list(iter_all_elements(root))
