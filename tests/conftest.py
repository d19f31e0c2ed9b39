"""
Shared fixtures: in-memory pages for the hint engine, CDP payload builders and a
fake CDP client for the DOM service.
"""

import itertools
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from domhints.dom.enhanced_snapshot import REQUIRED_COMPUTED_STYLES
from domhints.dom.views import TargetAllTrees
from domhints.hints.page import ClientRect, CSSStyle, Document, Element, Node, Window, create_window
from domhints.hints.views import HintConfig


# region - page side
@pytest.fixture
def window() -> Window:
	return create_window()


@pytest.fixture
def document(window: Window) -> Document:
	return window.document


@pytest.fixture
def body(document: Document) -> Element:
	assert document.body is not None
	return document.body


@pytest.fixture
def fast_config() -> HintConfig:
	"""Timer values small enough for tests to wait on."""
	return HintConfig(debounce_seconds=0.01, initial_show_delay=0.02, periodic_refresh_seconds=10.0)


def add_element(
	parent: Node,
	tag: str,
	attributes: dict[str, Any] | None = None,
	*,
	rect: tuple[float, float, float, float] | None = (10, 10, 100, 20),
	text: str | None = None,
	style: CSSStyle | None = None,
	**layout: Any,
) -> Element:
	"""Create `<tag>` under `parent`. `rect` is (left, top, width, height) in document coordinates."""
	document = parent if isinstance(parent, Document) else parent.owner_document
	assert document is not None, 'parent must belong to a document'
	element = document.create_element(
		tag,
		attributes,
		rect=ClientRect(*rect) if rect is not None else None,
		style=style,
		**layout,
	)
	if text is not None:
		element.append_child(document.create_text_node(text))
	parent.append_child(element)
	return element


# endregion


# region - CDP payloads
_DEFAULT_STYLES = {
	'display': 'block',
	'visibility': 'visible',
	'opacity': '1',
	'overflow': 'visible',
	'overflow-x': 'visible',
	'overflow-y': 'visible',
	'cursor': 'auto',
	'pointer-events': 'auto',
	'position': 'static',
	'background-color': 'rgba(0, 0, 0, 0)',
}


@dataclass
class _Layout:
	bounds: tuple[float, float, float, float]
	styles: dict[str, str]
	paint_order: int
	client_rect: tuple[float, float, float, float] | None = None
	scroll_rect: tuple[float, float, float, float] | None = None


@dataclass
class CDPPageBuilder:
	"""Builds matching `DOM.getDocument`, `DOMSnapshot.captureSnapshot` and `Accessibility.getFullAXTree` payloads.

	Backend node ids come from a counter unless given explicitly, so two builds of
	the same page can share ids.
	"""

	target_id: str = 'target-main'
	frame_id: str = 'frame-main'
	device_pixel_ratio: float = 1.0
	_ids: itertools.count = field(default_factory=lambda: itertools.count(1000))
	_paint: itertools.count = field(default_factory=lambda: itertools.count(1))
	_layouts: dict[int, _Layout] = field(default_factory=dict)
	_clickable: set[int] = field(default_factory=set)
	_ax_nodes: list[dict[str, Any]] = field(default_factory=list)

	def _node(self, node_type: int, node_name: str, backend_node_id: int | None, **extra: Any) -> dict[str, Any]:
		backend_id = backend_node_id if backend_node_id is not None else next(self._ids)
		return {
			'nodeId': backend_id,
			'backendNodeId': backend_id,
			'nodeType': node_type,
			'nodeName': node_name,
			'localName': node_name.lower(),
			'nodeValue': '',
			**extra,
		}

	def element(
		self,
		tag: str,
		attributes: dict[str, str] | None = None,
		children: list[dict[str, Any]] | None = None,
		*,
		bounds: tuple[float, float, float, float] | None = (10, 10, 100, 20),
		styles: dict[str, str] | None = None,
		clickable: bool = False,
		paint_order: int | None = None,
		client_rect: tuple[float, float, float, float] | None = None,
		scroll_rect: tuple[float, float, float, float] | None = None,
		ax_role: str | None = None,
		ax_properties: list[dict[str, Any]] | None = None,
		shadow_roots: list[dict[str, Any]] | None = None,
		content_document: dict[str, Any] | None = None,
		frame_id: str | None = None,
		is_scrollable: bool | None = None,
		backend_node_id: int | None = None,
	) -> dict[str, Any]:
		flat_attributes: list[str] = []
		for key, value in (attributes or {}).items():
			flat_attributes.extend([key, value])
		node = self._node(
			1,
			tag.upper(),
			backend_node_id,
			attributes=flat_attributes,
			children=children or [],
			childNodeCount=len(children or []),
		)
		if shadow_roots:
			node['shadowRoots'] = shadow_roots
		if content_document is not None:
			node['contentDocument'] = content_document
		if frame_id is not None:
			node['frameId'] = frame_id
		if is_scrollable is not None:
			node['isScrollable'] = is_scrollable

		backend_id = node['backendNodeId']
		if bounds is not None:
			self._layouts[backend_id] = _Layout(
				bounds=bounds,
				styles={**_DEFAULT_STYLES, **(styles or {})},
				paint_order=paint_order if paint_order is not None else next(self._paint),
				client_rect=client_rect,
				scroll_rect=scroll_rect,
			)
		if clickable:
			self._clickable.add(backend_id)
		if ax_role is not None or ax_properties:
			ax_node: dict[str, Any] = {'nodeId': f'ax-{backend_id}', 'ignored': False, 'backendDOMNodeId': backend_id}
			if ax_role is not None:
				ax_node['role'] = {'type': 'role', 'value': ax_role}
			if ax_properties:
				ax_node['properties'] = ax_properties
			self._ax_nodes.append(ax_node)
		return node

	def text(self, value: str, *, bounds: tuple[float, float, float, float] | None = None) -> dict[str, Any]:
		node = self._node(3, '#text', None, nodeValue=value)
		if bounds is not None:
			self._layouts[node['backendNodeId']] = _Layout(bounds=bounds, styles=dict(_DEFAULT_STYLES), paint_order=next(self._paint))
		return node

	def comment(self, value: str) -> dict[str, Any]:
		return self._node(8, '#comment', None, nodeValue=value)

	def shadow_root(self, children: list[dict[str, Any]], mode: str = 'open') -> dict[str, Any]:
		return self._node(11, '#document-fragment', None, children=children, shadowRootType=mode)

	def document(self, children: list[dict[str, Any]], frame_id: str | None = None) -> dict[str, Any]:
		return self._node(9, '#document', None, children=children, frameId=frame_id or self.frame_id)

	def page(self, body_children: list[dict[str, Any]], *, width: float = 1280, height: float = 800) -> dict[str, Any]:
		"""`#document > html > (head, body)` with `body_children`."""
		head = self.element('head', bounds=None)
		body = self.element('body', children=body_children, bounds=(0, 0, width, height))
		html = self.element('html', children=[head, body], bounds=(0, 0, width, height))
		return self.document([html])

	def _snapshot(self, root: dict[str, Any]) -> dict[str, Any]:
		strings: list[str] = []
		string_index: dict[str, int] = {}

		def intern(value: str) -> int:
			if value not in string_index:
				string_index[value] = len(strings)
				strings.append(value)
			return string_index[value]

		backend_ids: list[int] = []
		stack = [root]
		while stack:
			node = stack.pop()
			backend_ids.append(node['backendNodeId'])
			pending = []
			if node.get('contentDocument'):
				pending.append(node['contentDocument'])
			pending.extend(node.get('shadowRoots') or [])
			pending.extend(node.get('children') or [])
			stack.extend(reversed(pending))

		dpr = self.device_pixel_ratio
		layout: dict[str, Any] = {
			'nodeIndex': [],
			'bounds': [],
			'styles': [],
			'text': [],
			'paintOrders': [],
			'clientRects': [],
			'scrollRects': [],
			'stackingContexts': {'index': []},
		}
		for snapshot_index, backend_id in enumerate(backend_ids):
			entry = self._layouts.get(backend_id)
			if entry is None:
				continue
			layout['nodeIndex'].append(snapshot_index)
			layout['bounds'].append([value * dpr for value in entry.bounds])
			layout['styles'].append([intern(entry.styles[name]) for name in REQUIRED_COMPUTED_STYLES])
			layout['text'].append(-1)
			layout['paintOrders'].append(entry.paint_order)
			layout['clientRects'].append([value * dpr for value in entry.client_rect] if entry.client_rect else [])
			layout['scrollRects'].append([value * dpr for value in entry.scroll_rect] if entry.scroll_rect else [])

		clickable_indices = [i for i, backend_id in enumerate(backend_ids) if backend_id in self._clickable]
		return {
			'documents': [
				{
					'nodes': {'backendNodeId': backend_ids, 'isClickable': {'index': clickable_indices}},
					'layout': layout,
				}
			],
			'strings': strings,
		}

	def layout_metrics(self) -> dict[str, Any]:
		return {
			'visualViewport': {'clientWidth': 1280 * self.device_pixel_ratio, 'clientHeight': 800 * self.device_pixel_ratio},
			'cssVisualViewport': {'clientWidth': 1280, 'clientHeight': 800, 'pageX': 0, 'pageY': 0},
		}

	def payloads(self, root: dict[str, Any]) -> dict[str, Any]:
		return {
			'dom': {'root': root},
			'snapshot': self._snapshot(root),
			'ax': {'nodes': list(self._ax_nodes)},
			'metrics': self.layout_metrics(),
		}

	def trees(self, root: dict[str, Any], session_id: str | None = None) -> TargetAllTrees:
		payloads = self.payloads(root)
		return TargetAllTrees(
			snapshot=payloads['snapshot'],
			dom_tree=payloads['dom'],
			ax_tree=payloads['ax'],
			device_pixel_ratio=self.device_pixel_ratio,
			target_id=self.target_id,
			session_id=session_id,
		)


@pytest.fixture
def cdp_builder() -> CDPPageBuilder:
	return CDPPageBuilder()


class FakeCDPClient:
	"""Answers the CDP commands DomService and CDPHintSession send from canned per-target payloads.

	Every command is an `AsyncMock`, so tests can assert on call counts. Event
	handlers registered through `register` are kept one per method, like the
	real client, and fired with `emit`.
	"""

	def __init__(self, pages: dict[str, dict[str, Any]], target_infos: list[dict[str, Any]] | None = None):
		self.pages = pages
		self.target_infos = target_infos or [{'targetId': target_id, 'type': 'page', 'url': 'https://example.com'} for target_id in pages]

		def by_session(key: str):
			async def respond(params: dict | None = None, session_id: str | None = None) -> dict[str, Any]:
				assert session_id is not None, 'DomService must send page commands on a session'
				return self.pages[session_id.removeprefix('session-')][key]

			return respond

		async def attach_to_target(params: dict, session_id: str | None = None) -> dict[str, Any]:
			return {'sessionId': f'session-{params["targetId"]}'}

		async def get_targets(params: dict | None = None, session_id: str | None = None) -> dict[str, Any]:
			return {'targetInfos': self.target_infos}

		async def resolve_node(params: dict, session_id: str | None = None) -> dict[str, Any]:
			return {'object': {'type': 'object', 'objectId': f'object-{params["backendNodeId"]}'}}

		self.handlers: dict[str, Any] = {}

		def registrar(method: str) -> MagicMock:
			return MagicMock(side_effect=lambda handler: self.handlers.__setitem__(method, handler))

		self.send = SimpleNamespace(
			Target=SimpleNamespace(
				attachToTarget=AsyncMock(side_effect=attach_to_target),
				getTargets=AsyncMock(side_effect=get_targets),
			),
			DOM=SimpleNamespace(
				enable=AsyncMock(return_value={}),
				getDocument=AsyncMock(side_effect=by_session('dom')),
				resolveNode=AsyncMock(side_effect=resolve_node),
				focus=AsyncMock(return_value={}),
			),
			DOMSnapshot=SimpleNamespace(
				enable=AsyncMock(return_value={}), captureSnapshot=AsyncMock(side_effect=by_session('snapshot'))
			),
			Accessibility=SimpleNamespace(
				enable=AsyncMock(return_value={}), getFullAXTree=AsyncMock(side_effect=by_session('ax'))
			),
			Page=SimpleNamespace(
				enable=AsyncMock(return_value={}),
				getLayoutMetrics=AsyncMock(side_effect=by_session('metrics')),
				addScriptToEvaluateOnNewDocument=AsyncMock(return_value={'identifier': 'script-1'}),
				removeScriptToEvaluateOnNewDocument=AsyncMock(return_value={}),
			),
			Runtime=SimpleNamespace(
				enable=AsyncMock(return_value={}),
				addBinding=AsyncMock(return_value={}),
				removeBinding=AsyncMock(return_value={}),
				evaluate=AsyncMock(return_value={'result': {'type': 'number', 'value': 0}}),
				callFunctionOn=AsyncMock(return_value={'result': {'type': 'undefined'}}),
			),
			Input=SimpleNamespace(dispatchMouseEvent=AsyncMock(return_value={})),
		)
		self.register = SimpleNamespace(Runtime=SimpleNamespace(bindingCalled=registrar('Runtime.bindingCalled')))
		self.stop = AsyncMock()

	def emit(self, method: str, event: dict[str, Any], session_id: str | None = None) -> None:
		self.handlers[method](event, session_id)


# endregion
