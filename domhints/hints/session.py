import logging
from collections.abc import Callable
from typing import Any

from uuid_extensions import uuid7str

from domhints.hints import actions
from domhints.hints.actions import ELEMENT_NOT_FOUND, execute_click_action
from domhints.hints.detector import HintDetector
from domhints.hints.elements import InteractableElementCache
from domhints.hints.link_text import get_link_text
from domhints.hints.overlay import OverlayRenderer
from domhints.hints.page import Element, Window
from domhints.hints.views import ActionOutcome, DetectedHint, Hint, HintConfig, HintRect, InteractableElement
from domhints.hints.watcher import MutationWatcher, RefreshReason

logger = logging.getLogger(__name__)


def match_detected_hint(
	detected: list[DetectedHint],
	index: int,
	document_rect: HintRect,
	scroll_x: float,
	scroll_y: float,
	tolerance: float,
) -> DetectedHint | None:
	"""The entry at `index` if its box still matches `document_rect`, else the first entry whose box does."""

	def matches(candidate: DetectedHint) -> bool:
		return candidate.hint.rect.translated(scroll_x, scroll_y).matches(document_rect, tolerance)

	if 0 <= index < len(detected) and matches(detected[index]):
		return detected[index]
	return next((candidate for candidate in detected if matches(candidate)), None)


def pick_hint(
	detected: list[DetectedHint],
	index: int,
	reference_rects: list[HintRect] | None,
	scroll_x: float,
	scroll_y: float,
	tolerance: float,
) -> DetectedHint | None:
	"""Hint `index` of the last list handed out, re-matched against a fresh pass.

	With no list handed out yet the index refers to `detected` itself.
	"""
	if reference_rects is None:
		return detected[index] if 0 <= index < len(detected) else None
	if not 0 <= index < len(reference_rects):
		return None
	return match_detected_hint(detected, index, reference_rects[index], scroll_x, scroll_y, tolerance)


class HintSession:
	"""Hint engine state for one frame, created on attach and torn down on detach.

	A frame gets a new session on every navigation; nothing survives across
	documents.
	"""

	def __init__(self, config: HintConfig | None = None, on_refresh: Callable[[RefreshReason], None] | None = None):
		self.id = uuid7str()
		self.config = config or HintConfig()
		self.on_refresh = on_refresh

		self.window: Window | None = None
		self.detector: HintDetector | None = None
		self.overlay: OverlayRenderer | None = None
		self.watcher: MutationWatcher | None = None
		self.elements = InteractableElementCache()
		self.hints_visible = False
		# Document boxes of the last list handed out, indexed like that list
		self._reference_rects: list[HintRect] | None = None

	@property
	def is_attached(self) -> bool:
		return self.window is not None

	def attach(self, window: Window, watch: bool = True) -> 'HintSession':
		"""Install detector, overlay and watcher. Watching needs a running event loop."""
		if self.window is not None:
			raise RuntimeError(f'HintSession {self.id[-4:]} is already attached')
		self.window = window
		self.detector = HintDetector(window.document, self.config)
		self.overlay = OverlayRenderer(window.document, self._on_marker_click)
		if watch:
			self.watcher = MutationWatcher(window, self._on_watcher_refresh, self.config)
			self.watcher.start()
		logger.debug(f'📎 HintSession {self.id[-4:]} attached')
		return self

	def detach(self) -> None:
		if self.watcher is not None:
			self.watcher.stop()
		if self.overlay is not None:
			self.overlay.destroy()
		self.window = self.detector = self.overlay = self.watcher = None
		self.hints_visible = False
		self._reference_rects = None
		self.elements.clear()
		logger.debug(f'🔌 HintSession {self.id[-4:]} detached')

	def _require_detector(self) -> HintDetector:
		if self.detector is None:
			raise RuntimeError('HintSession is not attached to a frame')
		return self.detector

	def _scroll_offset(self) -> tuple[float, float]:
		if self.window is None:
			return 0.0, 0.0
		return self.window.scroll_x, self.window.scroll_y

	def _detect(self) -> list[DetectedHint]:
		return self._require_detector().detect()

	def detect_hints(self) -> list[Hint]:
		hints = [detected.hint for detected in self._detect()]
		scroll_x, scroll_y = self._scroll_offset()
		self._reference_rects = [hint.rect.translated(scroll_x, scroll_y) for hint in hints]
		return hints

	def show_hints(self) -> list[Hint]:
		hints = self.detect_hints()
		if self.overlay is not None:
			self.overlay.render(hints)
		self.hints_visible = True
		return hints

	def hide_hints(self) -> None:
		if self.overlay is not None:
			self.overlay.clear()
		self.hints_visible = False

	def click_hint(self, index: int) -> bool:
		"""Act on hint `index` of the last detected or shown list.

		The hint is re-matched geometrically against a fresh pass, so elements
		inserted or removed since then do not shift the target. Before any list
		was handed out the index refers to a fresh pass.
		"""
		scroll_x, scroll_y = self._scroll_offset()
		target = pick_hint(self._detect(), index, self._reference_rects, scroll_x, scroll_y, self.config.rect_tolerance)
		if target is None:
			logger.warning(f'⚠️ No hint at index {index} matches an element on the page')
			return False
		action = execute_click_action(target.element)
		logger.debug(f'🖱️ Hint {index} <{target.hint.tag_name}> -> {action}')
		return True

	def _match(self, detected: list[DetectedHint], index: int, document_rect: HintRect) -> DetectedHint | None:
		scroll_x, scroll_y = self._scroll_offset()
		return match_detected_hint(detected, index, document_rect, scroll_x, scroll_y, self.config.rect_tolerance)

	def _on_marker_click(self, index: int, document_rect: HintRect) -> None:
		"""Re-detect and re-match the marker geometrically before acting."""
		target = self._match(self._detect(), index, document_rect)
		if target is None:
			logger.warning(f'⚠️ Hint marker {index} no longer matches any element on the page')
			return
		execute_click_action(target.element)

	def _on_watcher_refresh(self, reason: RefreshReason) -> None:
		if not self.is_attached:
			return
		self.show_hints()
		if self.on_refresh is not None:
			self.on_refresh(reason)

	# Id-based access
	def get_interactable_elements(self) -> list[InteractableElement]:
		return self.elements.get(self.detect_hints)

	def refresh_interactable_elements(self) -> list[InteractableElement]:
		return self.elements.refresh(self.detect_hints)

	def get_element_by_hint_id(self, element_id: int) -> Element | None:
		if self.window is None:
			return None
		if not self.elements.is_filled:
			self.get_interactable_elements()
		return self.elements.resolve(element_id, self.window.document)

	def _with_element(self, element_id: int, act: Callable[[Element], ActionOutcome]) -> ActionOutcome:
		element = self.get_element_by_hint_id(element_id)
		if element is None:
			logger.warning(f'⚠️ No element with hint id {element_id}')
			return ActionOutcome(success=False, error=ELEMENT_NOT_FOUND)
		return act(element)

	def click_element_by_id(self, element_id: int) -> ActionOutcome:
		def click(element: Element) -> ActionOutcome:
			execute_click_action(element)
			return ActionOutcome(success=True)

		return self._with_element(element_id, click)

	def type_text_by_id(self, element_id: int, text: str) -> ActionOutcome:
		return self._with_element(element_id, lambda element: actions.type_text(element, text))

	def set_element_value(self, element_id: int, value: str) -> ActionOutcome:
		return self._with_element(element_id, lambda element: actions.set_value(element, value))

	def hover_element_by_id(self, element_id: int) -> ActionOutcome:
		return self._with_element(element_id, actions.hover)

	def scroll_to_element_by_id(self, element_id: int) -> ActionOutcome:
		return self._with_element(element_id, actions.scroll_into_view)

	def get_element_value(self, element_id: int) -> str | None:
		element = self.get_element_by_hint_id(element_id)
		return actions.get_value(element) if element is not None else None

	def get_element_text_content(self, element_id: int) -> str | None:
		element = self.get_element_by_hint_id(element_id)
		return get_link_text(element, self.config.max_text_length) if element is not None else None


class HintRouter:
	"""Host-side channel from a view id to the hint session attached in that view."""

	def __init__(self, on_page_mutated: Callable[[str], Any] | None = None):
		self.sessions: dict[str, HintSession] = {}
		self.on_page_mutated = on_page_mutated

	def register(self, view_id: str, window: Window, config: HintConfig | None = None, watch: bool = True) -> HintSession:
		"""Attach a fresh session to the view's frame, replacing the one from a previous navigation."""
		self.unregister(view_id)

		def on_refresh(reason: RefreshReason) -> None:
			if reason == 'mutation' and self.on_page_mutated is not None:
				self.on_page_mutated(view_id)

		session = HintSession(config, on_refresh=on_refresh).attach(window, watch=watch)
		self.sessions[view_id] = session
		return session

	def unregister(self, view_id: str) -> None:
		session = self.sessions.pop(view_id, None)
		if session is not None:
			session.detach()

	def get_session(self, view_id: str) -> HintSession | None:
		return self.sessions.get(view_id)

	def _require_session(self, view_id: str) -> HintSession | None:
		session = self.sessions.get(view_id)
		if session is None:
			logger.warning(f'⚠️ No hint session for view {view_id}')
		return session

	def detect_hints(self, view_id: str) -> list[dict]:
		session = self.sessions.get(view_id)
		if session is None:
			return []
		return [hint.to_payload() for hint in session.detect_hints()]

	def show_hints(self, view_id: str) -> list[dict]:
		session = self.sessions.get(view_id)
		if session is None:
			return []
		return [hint.to_payload() for hint in session.show_hints()]

	def hide_hints(self, view_id: str) -> None:
		session = self.sessions.get(view_id)
		if session is not None:
			session.hide_hints()

	def route_click(self, view_id: str, index: int) -> bool:
		session = self._require_session(view_id)
		if session is None:
			return False
		return session.click_hint(index)

	def get_interactable_elements(self, view_id: str, refresh: bool = False) -> list[dict]:
		session = self.sessions.get(view_id)
		if session is None:
			return []
		elements = session.refresh_interactable_elements() if refresh else session.get_interactable_elements()
		return [element.to_payload() for element in elements]

	def _act(self, view_id: str, act: Callable[[HintSession], ActionOutcome]) -> dict:
		session = self._require_session(view_id)
		if session is None:
			return ActionOutcome(success=False, error=f'No hint session for view {view_id}').to_payload()
		return act(session).to_payload()

	def click_element_by_id(self, view_id: str, element_id: int) -> dict:
		return self._act(view_id, lambda session: session.click_element_by_id(element_id))

	def type_text_by_id(self, view_id: str, element_id: int, text: str) -> dict:
		return self._act(view_id, lambda session: session.type_text_by_id(element_id, text))

	def set_element_value(self, view_id: str, element_id: int, value: str) -> dict:
		return self._act(view_id, lambda session: session.set_element_value(element_id, value))

	def hover_element_by_id(self, view_id: str, element_id: int) -> dict:
		return self._act(view_id, lambda session: session.hover_element_by_id(element_id))

	def scroll_to_element_by_id(self, view_id: str, element_id: int) -> dict:
		return self._act(view_id, lambda session: session.scroll_to_element_by_id(element_id))

	def get_element_value(self, view_id: str, element_id: int) -> str | None:
		session = self.sessions.get(view_id)
		return session.get_element_value(element_id) if session is not None else None

	def get_element_text_content(self, view_id: str, element_id: int) -> str | None:
		session = self.sessions.get(view_id)
		return session.get_element_text_content(element_id) if session is not None else None
