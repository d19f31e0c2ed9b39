"""Id-stable listing of a frame's interactable elements.

Ids stay valid until the cache is refreshed. An id resolves back to a live
element by its XPath first and by its cached box when the path no longer
leads anywhere.
"""

import logging
from collections.abc import Callable

from domhints.hints.link_text import resolve_xpath
from domhints.hints.page import ClientRect, Document, Element
from domhints.hints.views import Hint, HintRect, InteractableElement
from domhints.hints.visibility import iter_all_elements

logger = logging.getLogger(__name__)


def rects_equal(a: HintRect, b: ClientRect | HintRect, include_size: bool = False) -> bool:
	"""Edges closer than one pixel; sizes too when `include_size`."""
	if abs(a.top - b.top) >= 1 or abs(a.left - b.left) >= 1:
		return False
	if include_size:
		return abs(a.width - b.width) < 1 and abs(a.height - b.height) < 1
	return True


def find_element_by_rect(document: Document, rect: HintRect) -> Element | None:
	for element in iter_all_elements(document):
		if rects_equal(rect, element.get_bounding_client_rect(), include_size=True):
			return element
	return None


class InteractableElementCache:
	def __init__(self) -> None:
		self._elements: list[InteractableElement] | None = None

	@property
	def is_filled(self) -> bool:
		return self._elements is not None

	def get(self, detect: Callable[[], list[Hint]]) -> list[InteractableElement]:
		"""Cached listing; only the first call after a refresh runs `detect`."""
		if self._elements is None:
			self._elements = [InteractableElement.from_hint(position + 1, hint) for position, hint in enumerate(detect())]
			logger.debug(f'📋 Cached {len(self._elements)} interactable elements')
		return list(self._elements)

	def cached(self) -> list[InteractableElement]:
		return list(self._elements or [])

	def refresh(self, detect: Callable[[], list[Hint]]) -> list[InteractableElement]:
		self.clear()
		return self.get(detect)

	def clear(self) -> None:
		self._elements = None

	def lookup(self, element_id: int) -> InteractableElement | None:
		if self._elements is None or not 1 <= element_id <= len(self._elements):
			return None
		return self._elements[element_id - 1]

	def resolve(self, element_id: int, document: Document) -> Element | None:
		cached = self.lookup(element_id)
		if cached is None:
			return None
		if cached.xpath:
			element = resolve_xpath(document, cached.xpath)
			if element is not None:
				return element
		return find_element_by_rect(document, cached.rect)
