"""
Hint sessions on a live browser page.

Each pass captures the frame over CDP and runs detection on a fresh page
mirror. Markers are drawn into the live page with `Runtime.evaluate`, and
actions run on the live nodes by backend node id. The page reports scrolls,
resizes, mutations and marker clicks back through a runtime binding.
"""

import asyncio
import json
import logging
import weakref
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from cdp_use import CDPClient
from cdp_use.cdp.target import SessionID
from uuid_extensions import uuid7str

from domhints.dom.enhanced_snapshot import REQUIRED_COMPUTED_STYLES
from domhints.dom.service import DomService
from domhints.hints.actions import ELEMENT_NOT_FOUND, ClickAction, click_action_for
from domhints.hints.detector import HINT_CONTAINER_ID, HintDetector
from domhints.hints.elements import InteractableElementCache
from domhints.hints.labels import hint_label
from domhints.hints.link_text import get_link_text
from domhints.hints.mirror import PageMirror, mirror_page
from domhints.hints.overlay import CONTAINER_STYLE, document_extent, marker_attributes
from domhints.hints.page import Element
from domhints.hints.session import match_detected_hint, pick_hint
from domhints.hints.views import ActionOutcome, DetectedHint, Hint, HintConfig, HintRect, InteractableElement
from domhints.hints.watcher import OBSERVED_ATTRIBUTES, MutationWatcher, RefreshReason
from domhints.utils import time_execution_async

logger = logging.getLogger(__name__)

BINDING_NAME = 'domhintsNotify'

PAGE_REFRESH_REASONS = ('mutation', 'scroll', 'resize')

# region - page scripts

WATCH_FUNCTION = """
(config) => {
	const flag = '__domhintsWatching';
	if (window[flag]) return false;
	window[flag] = true;
	const notify = (message) => {
		if (typeof window[config.binding] === 'function') window[config.binding](JSON.stringify(message));
	};
	const observe = () => {
		new MutationObserver(() => notify({type: 'refresh', reason: 'mutation'})).observe(document.body, {
			childList: true,
			subtree: true,
			attributes: true,
			attributeFilter: config.attributes,
		});
	};
	if (document.body) observe();
	else document.addEventListener('DOMContentLoaded', observe, {once: true});
	window.addEventListener('scroll', () => notify({type: 'refresh', reason: 'scroll'}), {passive: true});
	window.addEventListener('resize', () => notify({type: 'refresh', reason: 'resize'}), {passive: true});
	return true;
}
"""

RENDER_FUNCTION = """
(options) => {
	let container = document.getElementById(options.containerId);
	if (!container || container.parentNode !== document.documentElement) {
		container = document.createElement('div');
		container.id = options.containerId;
		document.documentElement.appendChild(container);
	}
	container.setAttribute('style', options.containerStyle);
	container.replaceChildren();
	for (const marker of options.markers) {
		const element = document.createElement('div');
		for (const [name, value] of Object.entries(marker.attributes)) element.setAttribute(name, value);
		element.textContent = marker.label;
		element.addEventListener('click', (event) => {
			event.preventDefault();
			event.stopPropagation();
			if (typeof window[options.binding] === 'function') {
				window[options.binding](JSON.stringify({type: 'marker', index: marker.index, rect: marker.rect}));
			}
		});
		container.appendChild(element);
	}
	return options.markers.length;
}
"""

CLEAR_FUNCTION = """
(options) => {
	const container = document.getElementById(options.containerId);
	if (!container) return false;
	if (options.remove) container.remove();
	else container.replaceChildren();
	return true;
}
"""

CLICK_FUNCTION = 'function () { this.click(); }'

TOGGLE_FUNCTION = 'function () { this.open = !this.open; }'

SCROLL_INTO_VIEW_FUNCTION = "function () { this.scrollIntoView({block: 'center', inline: 'center'}); }"

TYPE_TEXT_FUNCTION = """
function (text) {
	const fire = (type) => this.dispatchEvent(new Event(type, {bubbles: true}));
	this.focus();
	if (['INPUT', 'TEXTAREA', 'SELECT'].includes(this.tagName)) {
		this.value = '';
		for (const char of text) {
			this.value += char;
			fire('input');
		}
		fire('input');
		fire('change');
		return null;
	}
	if (this.isContentEditable) {
		this.textContent = text;
		fire('input');
		return null;
	}
	return 'Element does not accept text input';
}
"""

SET_VALUE_FUNCTION = """
function (value) {
	const fire = (type) => this.dispatchEvent(new Event(type, {bubbles: true}));
	if (['INPUT', 'TEXTAREA', 'SELECT'].includes(this.tagName)) {
		this.value = value;
		fire('input');
		fire('change');
		return null;
	}
	if (this.isContentEditable) {
		this.textContent = value;
		fire('input');
		return null;
	}
	return 'Element does not support value setting';
}
"""

GET_VALUE_FUNCTION = """
function () {
	if (['INPUT', 'TEXTAREA', 'SELECT'].includes(this.tagName)) return this.value;
	if (this.isContentEditable) return this.textContent;
	return null;
}
"""

# endregion


class PageScriptError(RuntimeError):
	"""A script evaluated in the page threw."""


def _call_expression(function: str, argument: Any) -> str:
	return f'({function.strip()})({json.dumps(argument)})'


def _result_value(result: dict[str, Any]) -> Any:
	if 'exceptionDetails' in result:
		details = result['exceptionDetails']
		raise PageScriptError(details.get('exception', {}).get('description') or details.get('text', 'Page script failed'))
	return result.get('result', {}).get('value')


class BindingDispatcher:
	"""Routes `Runtime.bindingCalled` events of one client to the hint session attached on that CDP session.

	The client keeps a single handler per event, so all hint sessions on a client share one dispatcher.
	"""

	def __init__(self) -> None:
		self.sessions: dict[str, 'CDPHintSession'] = {}

	def handle(self, event: dict[str, Any], session_id: str | None = None) -> None:
		if event.get('name') != BINDING_NAME:
			return
		session = self.sessions.get(session_id or '')
		if session is None:
			logger.debug(f'Ignoring {BINDING_NAME} call from unknown session {session_id}')
			return
		try:
			message = json.loads(event.get('payload') or '{}')
		except json.JSONDecodeError:
			logger.warning(f'⚠️ Malformed {BINDING_NAME} payload: {event.get("payload")!r}')
			return
		session.handle_message(message)


_dispatchers: 'weakref.WeakKeyDictionary[CDPClient, BindingDispatcher]' = weakref.WeakKeyDictionary()


def get_binding_dispatcher(cdp_client: CDPClient) -> BindingDispatcher:
	dispatcher = _dispatchers.get(cdp_client)
	if dispatcher is None:
		dispatcher = BindingDispatcher()
		cdp_client.register.Runtime.bindingCalled(dispatcher.handle)
		_dispatchers[cdp_client] = dispatcher
	return dispatcher


class CDPHintSession:
	"""Hint engine state for the main frame of a DOM service's target.

	Same lifecycle as the in-memory session: attach installs the page watcher
	and binding, detach removes markers and scripts. A navigation needs a new
	session.
	"""

	def __init__(
		self,
		dom_service: DomService,
		config: HintConfig | None = None,
		on_refresh: Callable[[RefreshReason], None] | None = None,
		is_top_frame: bool = True,
	):
		self.id = uuid7str()
		self.dom_service = dom_service
		self.config = config or HintConfig()
		self.on_refresh = on_refresh
		self.is_top_frame = is_top_frame

		self.mirror: PageMirror | None = None
		self.watcher: MutationWatcher | None = None
		self.elements = InteractableElementCache()
		self.hints_visible = False
		self._cdp: tuple[CDPClient, SessionID] | None = None
		self._script_identifier: str | None = None
		self._reference_rects: list[HintRect] | None = None
		self._tasks: set[asyncio.Task] = set()

	@property
	def is_attached(self) -> bool:
		return self._cdp is not None

	def _require_cdp(self) -> tuple[CDPClient, SessionID]:
		if self._cdp is None:
			raise RuntimeError('CDPHintSession is not attached to a page')
		return self._cdp

	async def attach(self, watch: bool = True) -> 'CDPHintSession':
		if self._cdp is not None:
			raise RuntimeError(f'CDPHintSession {self.id[-4:]} is already attached')
		cdp_client, session_id = await self.dom_service.get_cdp_session()
		self._cdp = (cdp_client, session_id)

		if watch:
			get_binding_dispatcher(cdp_client).sessions[session_id] = self
			await cdp_client.send.Runtime.enable(session_id=session_id)
			await cdp_client.send.Runtime.addBinding(params={'name': BINDING_NAME}, session_id=session_id)
			source = _call_expression(WATCH_FUNCTION, {'binding': BINDING_NAME, 'attributes': OBSERVED_ATTRIBUTES})
			script = await cdp_client.send.Page.addScriptToEvaluateOnNewDocument(params={'source': source}, session_id=session_id)
			self._script_identifier = script['identifier']
			await cdp_client.send.Runtime.evaluate(params={'expression': source}, session_id=session_id)
			self.watcher = MutationWatcher(None, self._on_watcher_refresh, self.config)
			self.watcher.start()

		logger.debug(f'📎 CDPHintSession {self.id[-4:]} attached to session {session_id[-4:]}')
		return self

	async def detach(self) -> None:
		if self._cdp is None:
			return
		cdp_client, session_id = self._cdp
		if self.watcher is not None:
			self.watcher.stop()
		for task in self._tasks:
			task.cancel()
		dispatcher = _dispatchers.get(cdp_client)
		if dispatcher is not None:
			dispatcher.sessions.pop(session_id, None)

		try:
			await self._evaluate(CLEAR_FUNCTION, {'containerId': HINT_CONTAINER_ID, 'remove': True})
			if self._script_identifier is not None:
				await cdp_client.send.Page.removeScriptToEvaluateOnNewDocument(
					params={'identifier': self._script_identifier}, session_id=session_id
				)
				await cdp_client.send.Runtime.removeBinding(params={'name': BINDING_NAME}, session_id=session_id)
		except Exception as e:
			# The target may already be gone
			logger.debug(f'Page cleanup for CDPHintSession {self.id[-4:]} failed: {type(e).__name__}: {e}')

		self._cdp = None
		self.mirror = self.watcher = None
		self._script_identifier = None
		self._reference_rects = None
		self._tasks.clear()
		self.hints_visible = False
		self.elements.clear()
		logger.debug(f'🔌 CDPHintSession {self.id[-4:]} detached')

	# Page access
	async def _evaluate(self, function: str, argument: Any) -> Any:
		cdp_client, session_id = self._require_cdp()
		result = await cdp_client.send.Runtime.evaluate(
			params={'expression': _call_expression(function, argument), 'returnByValue': True}, session_id=session_id
		)
		return _result_value(result)

	async def _call_on(self, backend_node_id: int, function: str, *arguments: Any) -> Any:
		cdp_client, session_id = self._require_cdp()
		resolved = await cdp_client.send.DOM.resolveNode(params={'backendNodeId': backend_node_id}, session_id=session_id)
		result = await cdp_client.send.Runtime.callFunctionOn(
			params={
				'functionDeclaration': function.strip(),
				'objectId': resolved['object']['objectId'],
				'arguments': [{'value': argument} for argument in arguments],
				'returnByValue': True,
			},
			session_id=session_id,
		)
		return _result_value(result)

	@time_execution_async('--capture_page')
	async def capture(self) -> PageMirror:
		cdp_client, session_id = self._require_cdp()
		snapshot, dom_tree, metrics = await asyncio.gather(
			cdp_client.send.DOMSnapshot.captureSnapshot(
				params={'computedStyles': REQUIRED_COMPUTED_STYLES, 'includeDOMRects': True}, session_id=session_id
			),
			cdp_client.send.DOM.getDocument(params={'depth': -1, 'pierce': True}, session_id=session_id),
			cdp_client.send.Page.getLayoutMetrics(session_id=session_id),
		)
		self.mirror = mirror_page(dom_tree, snapshot, metrics, is_top_frame=self.is_top_frame)
		return self.mirror

	async def _detect(self) -> tuple[PageMirror, list[DetectedHint]]:
		mirror = await self.capture()
		return mirror, HintDetector(mirror.window.document, self.config).detect()

	# Hints
	async def detect_hints(self) -> list[Hint]:
		mirror, detected = await self._detect()
		window = mirror.window
		hints = [entry.hint for entry in detected]
		self._reference_rects = [hint.rect.translated(window.scroll_x, window.scroll_y) for hint in hints]
		return hints

	async def show_hints(self) -> list[Hint]:
		hints = await self.detect_hints()
		assert self.mirror is not None
		window = self.mirror.window
		width, height = document_extent(window.document)
		markers = []
		for position, hint in enumerate(hints):
			document_rect = hint.rect.translated(window.scroll_x, window.scroll_y)
			markers.append(
				{
					'index': position,
					'label': hint_label(position + 1),
					'attributes': marker_attributes(position, hint, document_rect),
					'rect': document_rect.model_dump(),
				}
			)
		await self._evaluate(
			RENDER_FUNCTION,
			{
				'containerId': HINT_CONTAINER_ID,
				'containerStyle': CONTAINER_STYLE.format(width=width, height=height),
				'binding': BINDING_NAME,
				'markers': markers,
			},
		)
		self.hints_visible = True
		logger.debug(f'🏷️ Rendered {len(markers)} hint markers in the page')
		return hints

	async def hide_hints(self) -> None:
		await self._evaluate(CLEAR_FUNCTION, {'containerId': HINT_CONTAINER_ID, 'remove': False})
		self.hints_visible = False

	async def _click(self, mirror: PageMirror, element: Element) -> ClickAction:
		"""Toggle details, focus form controls, click everything else, on the live node."""
		backend_node_id = mirror.backend_node_id(element)
		if backend_node_id is None:
			raise RuntimeError(f'{element!r} has no backend node id')
		action = click_action_for(element)
		if action == 'focus':
			cdp_client, session_id = self._require_cdp()
			await cdp_client.send.DOM.focus(params={'backendNodeId': backend_node_id}, session_id=session_id)
		else:
			await self._call_on(backend_node_id, TOGGLE_FUNCTION if action == 'toggle' else CLICK_FUNCTION)
		return action

	async def click_hint(self, index: int) -> bool:
		"""Act on hint `index` of the last detected or shown list, re-matched against a fresh capture."""
		mirror, detected = await self._detect()
		window = mirror.window
		target = pick_hint(detected, index, self._reference_rects, window.scroll_x, window.scroll_y, self.config.rect_tolerance)
		if target is None:
			logger.warning(f'⚠️ No hint at index {index} matches an element on the page')
			return False
		action = await self._click(mirror, target.element)
		logger.debug(f'🖱️ Hint {index} <{target.hint.tag_name}> -> {action}')
		return True

	# Page messages
	def handle_message(self, message: dict[str, Any]) -> None:
		kind = message.get('type')
		if kind == 'refresh':
			reason = message.get('reason')
			if reason in PAGE_REFRESH_REASONS and self.watcher is not None:
				self.watcher.trigger(reason)
		elif kind == 'marker':
			rect = HintRect.model_validate(message['rect'])
			self._spawn(self._on_marker_click(int(message['index']), rect))
		else:
			logger.debug(f'Ignoring page message {message!r}')

	def _spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
		task = asyncio.create_task(coroutine)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	async def _on_marker_click(self, index: int, document_rect: HintRect) -> None:
		try:
			mirror, detected = await self._detect()
			window = mirror.window
			target = match_detected_hint(detected, index, document_rect, window.scroll_x, window.scroll_y, self.config.rect_tolerance)
			if target is None:
				logger.warning(f'⚠️ Hint marker {index} no longer matches any element on the page')
				return
			await self._click(mirror, target.element)
		except Exception as e:
			logger.warning(f'⚠️ Hint marker {index} click failed: {type(e).__name__}: {e}')

	def _on_watcher_refresh(self, reason: RefreshReason) -> None:
		if self.is_attached:
			self._spawn(self._refresh(reason))

	async def _refresh(self, reason: RefreshReason) -> None:
		try:
			await self.show_hints()
		except Exception as e:
			logger.warning(f'⚠️ Hint refresh ({reason}) failed: {type(e).__name__}: {e}')
			return
		if self.on_refresh is not None:
			self.on_refresh(reason)

	# Id-based access
	async def get_interactable_elements(self) -> list[InteractableElement]:
		if self.elements.is_filled:
			return self.elements.cached()
		return await self.refresh_interactable_elements()

	async def refresh_interactable_elements(self) -> list[InteractableElement]:
		hints = await self.detect_hints()
		return self.elements.refresh(lambda: hints)

	async def _resolve(self, element_id: int) -> tuple[PageMirror, Element] | None:
		if not self.elements.is_filled:
			await self.get_interactable_elements()
		mirror = await self.capture()
		element = self.elements.resolve(element_id, mirror.window.document)
		return (mirror, element) if element is not None else None

	async def _with_element(
		self,
		element_id: int,
		act: Callable[[PageMirror, Element], Awaitable[ActionOutcome]],
	) -> ActionOutcome:
		resolved = await self._resolve(element_id)
		if resolved is None:
			logger.warning(f'⚠️ No element with hint id {element_id}')
			return ActionOutcome(success=False, error=ELEMENT_NOT_FOUND)
		try:
			return await act(*resolved)
		except Exception as e:
			logger.warning(f'⚠️ Action on hint id {element_id} failed: {type(e).__name__}: {e}')
			return ActionOutcome(success=False, error=f'{type(e).__name__}: {e}')

	async def _call_on_element(self, mirror: PageMirror, element: Element, function: str, *arguments: Any) -> Any:
		backend_node_id = mirror.backend_node_id(element)
		if backend_node_id is None:
			raise RuntimeError(f'{element!r} has no backend node id')
		return await self._call_on(backend_node_id, function, *arguments)

	async def click_element_by_id(self, element_id: int) -> ActionOutcome:
		async def click(mirror: PageMirror, element: Element) -> ActionOutcome:
			await self._click(mirror, element)
			return ActionOutcome(success=True)

		return await self._with_element(element_id, click)

	async def type_text_by_id(self, element_id: int, text: str) -> ActionOutcome:
		async def type_text(mirror: PageMirror, element: Element) -> ActionOutcome:
			error = await self._call_on_element(mirror, element, TYPE_TEXT_FUNCTION, text)
			return ActionOutcome(success=error is None, error=error)

		return await self._with_element(element_id, type_text)

	async def set_element_value(self, element_id: int, value: str) -> ActionOutcome:
		async def set_value(mirror: PageMirror, element: Element) -> ActionOutcome:
			error = await self._call_on_element(mirror, element, SET_VALUE_FUNCTION, value)
			return ActionOutcome(success=error is None, error=error)

		return await self._with_element(element_id, set_value)

	async def hover_element_by_id(self, element_id: int) -> ActionOutcome:
		async def hover(mirror: PageMirror, element: Element) -> ActionOutcome:
			cdp_client, session_id = self._require_cdp()
			rect = element.get_bounding_client_rect()
			await cdp_client.send.Input.dispatchMouseEvent(
				params={'type': 'mouseMoved', 'x': rect.left + rect.width / 2, 'y': rect.top + rect.height / 2},
				session_id=session_id,
			)
			return ActionOutcome(success=True)

		return await self._with_element(element_id, hover)

	async def scroll_to_element_by_id(self, element_id: int) -> ActionOutcome:
		async def scroll(mirror: PageMirror, element: Element) -> ActionOutcome:
			await self._call_on_element(mirror, element, SCROLL_INTO_VIEW_FUNCTION)
			return ActionOutcome(success=True)

		return await self._with_element(element_id, scroll)

	async def get_element_value(self, element_id: int) -> str | None:
		resolved = await self._resolve(element_id)
		if resolved is None:
			return None
		return await self._call_on_element(*resolved, GET_VALUE_FUNCTION)

	async def get_element_text_content(self, element_id: int) -> str | None:
		resolved = await self._resolve(element_id)
		if resolved is None:
			return None
		return get_link_text(resolved[1], self.config.max_text_length)
