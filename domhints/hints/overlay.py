import logging
from collections.abc import Callable

from domhints.hints.detector import HINT_CONTAINER_ID
from domhints.hints.labels import hint_label
from domhints.hints.page import Document, Element, Event
from domhints.hints.views import Hint, HintRect

logger = logging.getLogger(__name__)

CONTAINER_STYLE = (
	'position: absolute !important; top: 0 !important; left: 0 !important; '
	'width: {width}px !important; height: {height}px !important; '
	'pointer-events: none !important; z-index: 2147483647 !important; isolation: isolate !important;'
)

MARKER_STYLE = (
	'position: absolute !important; left: {left}px !important; top: {top}px !important; '
	'background: linear-gradient(to bottom, #FFF785 0%, #FFC542 100%) !important; '
	'border: 1px solid #C38A22 !important; border-radius: 3px !important; '
	'box-shadow: 0px 3px 7px 0px rgba(0, 0, 0, 0.3) !important; color: #302505 !important; '
	'font-family: Helvetica, Arial, sans-serif !important; font-size: 11px !important; '
	'font-weight: bold !important; padding: 2px 5px !important; user-select: none !important; '
	'cursor: pointer !important; z-index: 2147483647 !important; pointer-events: auto !important;'
)


def document_extent(document: Document) -> tuple[float, float]:
	"""Scrollable size of the document, the larger of the root's and body's."""
	candidates = [element for element in (document.document_element, document.body) if element is not None]
	if not candidates:
		return 0.0, 0.0
	width = max(max(element.scroll_width, element.client_width) for element in candidates)
	height = max(max(element.scroll_height, element.client_height) for element in candidates)
	return width, height


def marker_attributes(position: int, hint: Hint, document_rect: HintRect) -> dict[str, str]:
	return {
		'class': 'domhints-hint-marker',
		'data-hint-index': str(position),
		'title': hint.reason or hint.link_text or hint.href or '',
		'style': MARKER_STYLE.format(left=document_rect.left, top=document_rect.top),
	}


class OverlayRenderer:
	"""Draws one absolutely positioned marker per hint inside a single overlay container."""

	def __init__(self, document: Document, on_marker_click: Callable[[int, HintRect], None]):
		self.document = document
		self.on_marker_click = on_marker_click
		self.container: Element | None = None
		self.markers: list[Element] = []

	def _ensure_container(self) -> Element:
		root = self.document.document_element
		if root is None:
			raise RuntimeError('Cannot render hints into a document without a document element')
		if self.container is None or self.container.parent_node is not root:
			self.container = self.document.create_element('div', {'id': HINT_CONTAINER_ID})
			root.append_child(self.container)
		width, height = document_extent(self.document)
		self.container.set_attribute('style', CONTAINER_STYLE.format(width=width, height=height))
		return self.container

	def clear(self) -> None:
		if self.container is not None:
			self.container.replace_children()
		self.markers = []

	def render(self, hints: list[Hint]) -> list[Element]:
		"""Clear and redraw. Marker positions are document coordinates: the client rect plus the scroll offset."""
		container = self._ensure_container()
		self.clear()
		window = self.document.default_view
		scroll_x = window.scroll_x if window else 0.0
		scroll_y = window.scroll_y if window else 0.0

		for position, hint in enumerate(hints):
			document_rect = hint.rect.translated(scroll_x, scroll_y)
			marker = self.document.create_element('div', marker_attributes(position, hint, document_rect))
			marker.append_child(self.document.create_text_node(hint_label(position + 1)))
			marker.add_event_listener('click', self._make_click_handler(position, document_rect))
			container.append_child(marker)
			self.markers.append(marker)

		logger.debug(f'🏷️ Rendered {len(self.markers)} hint markers')
		return self.markers

	def _make_click_handler(self, position: int, document_rect: HintRect) -> Callable[[Event], None]:
		def handle_click(event: Event) -> None:
			event.prevent_default()
			event.stop_propagation()
			self.on_marker_click(position, document_rect)

		return handle_click

	def destroy(self) -> None:
		self.clear()
		if self.container is not None:
			self.container.remove()
		self.container = None
