import logging

from domhints.hints.filters import dedupe_label_hints, filter_false_positives
from domhints.hints.interactability import get_interactability
from domhints.hints.link_text import get_link_text, get_xpath
from domhints.hints.page import Document, Element
from domhints.hints.views import DetectedHint, Hint, HintConfig, HintRect
from domhints.hints.visibility import iter_all_elements, is_element_visible
from domhints.utils import time_execution_sync

logger = logging.getLogger(__name__)

HINT_CONTAINER_ID = 'domhints-hint-container'


class HintDetector:
	"""Runs one detection pass over a document and returns hints in document order."""

	def __init__(self, document: Document, config: HintConfig | None = None):
		self.document = document
		self.config = config or HintConfig()

	@time_execution_sync('--detect_hints')
	def detect(self) -> list[DetectedHint]:
		root = self.document.document_element
		if root is None:
			return []

		collected: list[DetectedHint] = []
		overlay = self.document.get_element_by_id(HINT_CONTAINER_ID)
		for element in iter_all_elements(root):
			if overlay is not None and _is_inside(element, overlay):
				continue
			if not is_element_visible(element):
				continue

			if element.tag_name == 'img' and element.has_attribute('usemap'):
				areas = self._image_map_hints(element)
				if areas is not None:
					collected.extend(areas)
					continue

			info = get_interactability(element)
			if not info.clickable:
				continue

			hint = Hint(
				rect=HintRect.from_client_rect(element.get_bounding_client_rect()),
				link_text=get_link_text(element, self.config.max_text_length),
				tag_name=element.tag_name,
				href=element.href,
				reason=info.reason,
				xpath=get_xpath(element),
				possible_false_positive=info.possible_false_positive,
				second_class_citizen=info.second_class_citizen,
			)
			collected.append(DetectedHint(hint=hint, element=element))

		detected = filter_false_positives(collected, self.config.lookback_window, self.config.ancestor_depth)
		if self.config.dedupe_labels:
			detected = dedupe_label_hints(detected)

		logger.debug(f'🔍 Detected {len(detected)} hints ({len(collected)} candidates)')
		return detected

	def _image_map_hints(self, image: Element) -> list[DetectedHint] | None:
		"""One hint per non-empty area of the image's map; `None` when the map cannot be resolved."""
		map_name = (image.get_attribute('usemap') or '').lstrip('#')
		if not map_name:
			return None
		image_map = image.get_root_node().query_selector(f'map[name="{map_name}"]')
		if image_map is None:
			return None

		hints: list[DetectedHint] = []
		for area in image_map.get_elements_by_tag_name('area'):
			rect = area.get_bounding_client_rect()
			if rect.width <= 0 or rect.height <= 0:
				continue
			hint = Hint(
				rect=HintRect.from_client_rect(rect),
				link_text=area.alt or area.title or 'Area',
				tag_name='area',
				href=area.href,
				xpath=get_xpath(area),
			)
			hints.append(DetectedHint(hint=hint, element=area))
		return hints


def _is_inside(element: Element, container: Element) -> bool:
	node = element
	while node is not None:
		if node is container:
			return True
		node = node.parent_element
	return False


def detect_hints(document: Document, config: HintConfig | None = None) -> list[Hint]:
	return [detected.hint for detected in HintDetector(document, config).detect()]
