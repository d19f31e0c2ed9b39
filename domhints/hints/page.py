"""In-process model of a live page.

Elements carry a document-coordinate layout box, a computed style, optional
shadow roots and event listeners. `MutationObserver` delivers batched records
on the running asyncio loop, the way a browser delivers them as microtasks.
Only the surface the hint engine touches is modelled.
"""

import asyncio
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from domhints.dom.utils import is_content_editable

ELEMENT_NODE = 1
TEXT_NODE = 3
DOCUMENT_NODE = 9
DOCUMENT_FRAGMENT_NODE = 11

LABELABLE_TAGS = {'button', 'input', 'meter', 'output', 'progress', 'select', 'textarea'}

_ID_SELECTOR = re.compile(r'^#([\w-]+)$')
_ATTR_SELECTOR = re.compile(r'^([\w-]+)\[([\w-]+)="([^"]*)"\]$')


@dataclass
class ClientRect:
	left: float = 0.0
	top: float = 0.0
	width: float = 0.0
	height: float = 0.0

	@property
	def right(self) -> float:
		return self.left + self.width

	@property
	def bottom(self) -> float:
		return self.top + self.height


@dataclass
class CSSStyle:
	"""Computed style of one element. `visibility=None` inherits from the parent."""

	display: str = 'block'
	visibility: str | None = None
	opacity: str = '1'
	cursor: str = 'auto'
	overflow_x: str = 'visible'
	overflow_y: str = 'visible'
	pointer_events: str = 'auto'


class Event:
	def __init__(self, type: str, bubbles: bool = True):
		self.type = type
		self.bubbles = bubbles
		self.target: 'Node | None' = None
		self.current_target: 'Node | Window | None' = None
		self.propagation_stopped = False
		self.default_prevented = False

	def stop_propagation(self) -> None:
		self.propagation_stopped = True

	def prevent_default(self) -> None:
		self.default_prevented = True


class MouseEvent(Event):
	def __init__(self, type: str, client_x: float = 0.0, client_y: float = 0.0, bubbles: bool = True):
		super().__init__(type, bubbles=bubbles)
		self.client_x = client_x
		self.client_y = client_y


Listener = Callable[[Event], Any]


class EventTarget:
	def __init__(self) -> None:
		self._listeners: dict[str, list[tuple[Listener, bool]]] = {}

	def add_event_listener(self, type: str, listener: Listener, passive: bool = False) -> None:
		entries = self._listeners.setdefault(type, [])
		if all(existing != listener for existing, _ in entries):
			entries.append((listener, passive))

	def remove_event_listener(self, type: str, listener: Listener) -> None:
		entries = self._listeners.get(type, [])
		self._listeners[type] = [(existing, passive) for existing, passive in entries if existing != listener]

	def has_event_listener(self, type: str) -> bool:
		return bool(self._listeners.get(type))

	def _invoke_listeners(self, event: Event) -> None:
		event.current_target = self  # type: ignore[assignment]
		for listener, passive in list(self._listeners.get(event.type, [])):
			prevented = event.default_prevented
			listener(event)
			if passive:
				event.default_prevented = prevented


class Node(EventTarget):
	node_type: int = 0

	def __init__(self) -> None:
		super().__init__()
		self.parent_node: Node | None = None
		self.child_nodes: list[Node] = []
		self.owner_document: Document | None = None

	@property
	def node_name(self) -> str:
		return ''

	@property
	def children(self) -> list['Element']:
		return [child for child in self.child_nodes if isinstance(child, Element)]

	@property
	def parent_element(self) -> 'Element | None':
		return self.parent_node if isinstance(self.parent_node, Element) else None

	@property
	def previous_sibling(self) -> 'Node | None':
		if self.parent_node is None:
			return None
		siblings = self.parent_node.child_nodes
		position = siblings.index(self)
		return siblings[position - 1] if position > 0 else None

	@property
	def text_content(self) -> str:
		parts: list[str] = []
		stack: list[Node] = [self]
		while stack:
			node = stack.pop()
			if isinstance(node, Text):
				parts.append(node.data)
			else:
				stack.extend(reversed(node.child_nodes))
		return ''.join(parts)

	@text_content.setter
	def text_content(self, data: str) -> None:
		document = self if isinstance(self, Document) else self.owner_document
		if document is None:
			raise ValueError('Cannot set text on a node that does not belong to a document')
		self.replace_children(*([document.create_text_node(data)] if data else []))

	@property
	def is_connected(self) -> bool:
		return isinstance(self.get_root_node(composed=True), Document)

	def get_root_node(self, composed: bool = False) -> 'Node':
		node: Node = self
		while True:
			if node.parent_node is not None:
				node = node.parent_node
			elif composed and isinstance(node, ShadowRoot):
				node = node.host
			else:
				return node

	def append_child(self, child: 'Node') -> 'Node':
		return self.insert_before(child, None)

	def insert_before(self, child: 'Node', reference: 'Node | None') -> 'Node':
		if child.parent_node is not None:
			child.parent_node.remove_child(child)
		if reference is None:
			self.child_nodes.append(child)
		else:
			self.child_nodes.insert(self.child_nodes.index(reference), child)
		child.parent_node = self
		document = self if isinstance(self, Document) else self.owner_document
		if document is not None:
			_adopt(child, document)
		_queue_mutation(MutationRecord(type='childList', target=self, added_nodes=[child]))
		return child

	def remove_child(self, child: 'Node') -> 'Node':
		self.child_nodes.remove(child)
		child.parent_node = None
		_queue_mutation(MutationRecord(type='childList', target=self, removed_nodes=[child]))
		return child

	def remove(self) -> None:
		if self.parent_node is not None:
			self.parent_node.remove_child(self)

	def replace_children(self, *nodes: 'Node') -> None:
		for child in list(self.child_nodes):
			self.remove_child(child)
		for node in nodes:
			self.append_child(node)

	def _event_parent(self) -> 'Node | None':
		if self.parent_node is None and isinstance(self, ShadowRoot):
			return self.host
		return self.parent_node

	def dispatch_event(self, event: Event) -> bool:
		event.target = self
		node: Node | None = self
		while node is not None:
			node._invoke_listeners(event)
			if event.propagation_stopped or not event.bubbles:
				break
			node = node._event_parent()
		return not event.default_prevented

	def descendants(self) -> Iterator['Element']:
		"""Element descendants in document order, not crossing shadow boundaries."""
		stack: list[Iterator[Node]] = [iter(self.child_nodes)]
		while stack:
			node = next(stack[-1], None)
			if node is None:
				stack.pop()
				continue
			if isinstance(node, Element):
				yield node
			if node.child_nodes:
				stack.append(iter(node.child_nodes))

	def query_selector_all(self, selector: str = '*') -> list['Element']:
		"""Supports `*`, a bare tag name, `#id` and `tag[attr="value"]`."""
		selector = selector.strip()
		if selector == '*':
			return list(self.descendants())
		if match := _ID_SELECTOR.match(selector):
			return [element for element in self.descendants() if element.id == match.group(1)]
		if match := _ATTR_SELECTOR.match(selector):
			tag, name, value = match.group(1).lower(), match.group(2).lower(), match.group(3)
			return [el for el in self.descendants() if el.tag_name == tag and el.get_attribute(name) == value]
		if re.fullmatch(r'[\w-]+', selector):
			tag = selector.lower()
			return [element for element in self.descendants() if element.tag_name == tag]
		raise ValueError(f'Unsupported selector: {selector!r}')

	def query_selector(self, selector: str) -> 'Element | None':
		matches = self.query_selector_all(selector)
		return matches[0] if matches else None

	def get_elements_by_tag_name(self, tag_name: str) -> list['Element']:
		return self.query_selector_all(tag_name)

	def get_element_by_id(self, element_id: str) -> 'Element | None':
		for element in self.descendants():
			if element.id == element_id:
				return element
		return None


class Text(Node):
	node_type = TEXT_NODE

	def __init__(self, data: str = ''):
		super().__init__()
		self.data = data

	@property
	def node_name(self) -> str:
		return '#text'

	@property
	def text_content(self) -> str:
		return self.data


class Element(Node):
	node_type = ELEMENT_NODE

	def __init__(
		self,
		tag_name: str,
		attributes: dict[str, Any] | None = None,
		*,
		rect: ClientRect | None = None,
		style: CSSStyle | None = None,
		scroll_width: float | None = None,
		scroll_height: float | None = None,
		value: str | None = None,
	):
		super().__init__()
		self.tag_name = tag_name.lower()
		self._attributes: dict[str, str] = {key.lower(): str(val) for key, val in (attributes or {}).items()}
		self.rect = rect or ClientRect()
		self.style = style or CSSStyle()
		self._scroll_width = scroll_width
		self._scroll_height = scroll_height
		self._value = value
		self.shadow_root: ShadowRoot | None = None

	def __repr__(self) -> str:
		return f'<{self.tag_name}{" id=" + self.id if self.id else ""}>'

	@property
	def node_name(self) -> str:
		return self.tag_name.upper()

	# Attributes
	@property
	def attributes(self) -> dict[str, str]:
		return dict(self._attributes)

	def get_attribute(self, name: str) -> str | None:
		return self._attributes.get(name.lower())

	def has_attribute(self, name: str) -> bool:
		return name.lower() in self._attributes

	def set_attribute(self, name: str, value: Any) -> None:
		name = name.lower()
		old_value = self._attributes.get(name)
		self._attributes[name] = str(value)
		_queue_mutation(MutationRecord(type='attributes', target=self, attribute_name=name, old_value=old_value))

	def remove_attribute(self, name: str) -> None:
		name = name.lower()
		if name in self._attributes:
			old_value = self._attributes.pop(name)
			_queue_mutation(MutationRecord(type='attributes', target=self, attribute_name=name, old_value=old_value))

	def toggle_attribute(self, name: str, force: bool | None = None) -> bool:
		present = self.has_attribute(name) if force is None else not force
		if present:
			self.remove_attribute(name)
			return False
		self.set_attribute(name, '')
		return True

	@property
	def id(self) -> str:
		return self._attributes.get('id', '')

	@property
	def class_name(self) -> str:
		return self._attributes.get('class', '')

	@property
	def title(self) -> str:
		return self._attributes.get('title', '')

	@property
	def alt(self) -> str:
		return self._attributes.get('alt', '')

	@property
	def href(self) -> str | None:
		if self.tag_name in {'a', 'area', 'link'}:
			return self._attributes.get('href') or None
		return None

	# Form control state
	@property
	def disabled(self) -> bool:
		return self.has_attribute('disabled')

	@property
	def read_only(self) -> bool:
		return self.has_attribute('readonly')

	@property
	def type(self) -> str:
		if self.tag_name == 'input':
			return (self._attributes.get('type') or 'text').lower()
		if self.tag_name == 'button':
			return (self._attributes.get('type') or 'submit').lower()
		return self._attributes.get('type', '').lower()

	@property
	def value(self) -> str:
		if self._value is not None:
			return self._value
		return self._attributes.get('value', '')

	@value.setter
	def value(self, new_value: str) -> None:
		self._value = new_value

	@property
	def is_content_editable(self) -> bool:
		return is_content_editable(self._attributes.get('contenteditable'))

	@property
	def placeholder(self) -> str:
		return self._attributes.get('placeholder', '')

	@property
	def open(self) -> bool:
		return self.has_attribute('open')

	@open.setter
	def open(self, is_open: bool) -> None:
		self.toggle_attribute('open', is_open)

	@property
	def labels(self) -> list['Element']:
		"""Labels associated with this control in its tree scope, in document order."""
		if self.tag_name not in LABELABLE_TAGS or (self.tag_name == 'input' and self.type == 'hidden'):
			return []
		root = self.get_root_node()
		return [label for label in root.query_selector_all('label') if label.control is self]

	@property
	def control(self) -> 'Element | None':
		if self.tag_name != 'label':
			return None
		if self.has_attribute('for'):
			target = self.get_root_node().get_element_by_id(self._attributes['for'])
			return target if target is not None and target.tag_name in LABELABLE_TAGS else None
		for descendant in self.descendants():
			if descendant.tag_name in LABELABLE_TAGS and not (descendant.tag_name == 'input' and descendant.type == 'hidden'):
				return descendant
		return None

	# Layout
	@property
	def client_width(self) -> float:
		return self.rect.width

	@property
	def client_height(self) -> float:
		return self.rect.height

	@property
	def scroll_width(self) -> float:
		return self._scroll_width if self._scroll_width is not None else self.rect.width

	@scroll_width.setter
	def scroll_width(self, width: float) -> None:
		self._scroll_width = width

	@property
	def scroll_height(self) -> float:
		return self._scroll_height if self._scroll_height is not None else self.rect.height

	@scroll_height.setter
	def scroll_height(self, height: float) -> None:
		self._scroll_height = height

	def _is_rendered(self) -> bool:
		node: Node | None = self
		while node is not None and not isinstance(node, Document):
			if isinstance(node, Element) and node.style.display == 'none':
				return False
			node = node._event_parent()
		return node is not None

	def get_bounding_client_rect(self) -> ClientRect:
		"""Viewport-relative box; empty when the element is detached or not rendered."""
		if not self._is_rendered():
			return ClientRect()
		window = self.owner_document.default_view if self.owner_document else None
		scroll_x = window.scroll_x if window else 0.0
		scroll_y = window.scroll_y if window else 0.0
		return ClientRect(
			left=self.rect.left - scroll_x,
			top=self.rect.top - scroll_y,
			width=self.rect.width,
			height=self.rect.height,
		)

	# Shadow DOM
	def attach_shadow(self, mode: str = 'open') -> 'ShadowRoot':
		if self.shadow_root is not None:
			raise ValueError(f'{self!r} already hosts a shadow root')
		self.shadow_root = ShadowRoot(self, mode)
		if self.owner_document is not None:
			_adopt(self.shadow_root, self.owner_document)
		return self.shadow_root

	# Interaction
	def focus(self) -> None:
		if self.owner_document is None:
			return
		self.owner_document.active_element = self
		self.dispatch_event(Event('focus', bubbles=False))

	def click(self) -> None:
		if self.disabled and self.tag_name in LABELABLE_TAGS:
			return
		self.dispatch_event(Event('click'))

	def scroll_into_view(self) -> None:
		"""Scroll the window so the element sits in the middle of the viewport."""
		window = self.owner_document.default_view if self.owner_document else None
		if window is None or not self._is_rendered():
			return
		x = max(0.0, self.rect.left + self.rect.width / 2 - window.inner_width / 2)
		y = max(0.0, self.rect.top + self.rect.height / 2 - window.inner_height / 2)
		window.scroll_to(x, y)

	def closest(self, tag_name: str) -> 'Element | None':
		node: Node | None = self
		while node is not None:
			if isinstance(node, Element) and node.tag_name == tag_name.lower():
				return node
			node = node.parent_node
		return None

	@property
	def inner_html(self) -> str:
		return ''.join(_serialize(child) for child in self.child_nodes)


class ShadowRoot(Node):
	node_type = DOCUMENT_FRAGMENT_NODE

	def __init__(self, host: Element, mode: str = 'open'):
		super().__init__()
		self.host = host
		self.mode = mode

	@property
	def node_name(self) -> str:
		return '#document-fragment'


@dataclass
class MutationRecord:
	type: str
	target: Node
	added_nodes: list[Node] = field(default_factory=list)
	removed_nodes: list[Node] = field(default_factory=list)
	attribute_name: str | None = None
	old_value: str | None = None


@dataclass
class _ObserverRegistration:
	observer: 'MutationObserver'
	target: Node
	child_list: bool
	subtree: bool
	attributes: bool
	attribute_filter: frozenset[str] | None


class MutationObserver:
	def __init__(self, callback: Callable[[list[MutationRecord], 'MutationObserver'], Any]):
		self._callback = callback
		self._records: list[MutationRecord] = []
		self._registrations: list[_ObserverRegistration] = []
		self._delivery_scheduled = False

	def observe(
		self,
		target: Node,
		child_list: bool = False,
		subtree: bool = False,
		attributes: bool = False,
		attribute_filter: list[str] | None = None,
	) -> None:
		document = target if isinstance(target, Document) else target.owner_document
		if document is None:
			raise ValueError('Cannot observe a node that does not belong to a document')
		registration = _ObserverRegistration(
			observer=self,
			target=target,
			child_list=child_list,
			subtree=subtree,
			attributes=attributes or attribute_filter is not None,
			attribute_filter=frozenset(name.lower() for name in attribute_filter) if attribute_filter is not None else None,
		)
		self._registrations.append(registration)
		document._observer_registrations.append(registration)

	def disconnect(self) -> None:
		for registration in self._registrations:
			document = registration.target if isinstance(registration.target, Document) else registration.target.owner_document
			if document is not None and registration in document._observer_registrations:
				document._observer_registrations.remove(registration)
		self._registrations.clear()
		self._records.clear()

	def take_records(self) -> list[MutationRecord]:
		records, self._records = self._records, []
		return records

	def _enqueue(self, record: MutationRecord) -> None:
		self._records.append(record)
		if self._delivery_scheduled:
			return
		self._delivery_scheduled = True
		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			# Outside an event loop records are delivered synchronously
			self._deliver()
			return
		loop.call_soon(self._deliver)

	def _deliver(self) -> None:
		self._delivery_scheduled = False
		records = self.take_records()
		if records and self._registrations:
			self._callback(records, self)


class Document(Node):
	node_type = DOCUMENT_NODE

	def __init__(self) -> None:
		super().__init__()
		self.owner_document = None
		self.default_view: Window | None = None
		self.active_element: Element | None = None
		self._observer_registrations: list[_ObserverRegistration] = []

	@property
	def node_name(self) -> str:
		return '#document'

	@property
	def document_element(self) -> Element | None:
		return next(iter(self.children), None)

	@property
	def body(self) -> Element | None:
		root = self.document_element
		if root is None:
			return None
		return next((child for child in root.children if child.tag_name in {'body', 'frameset'}), None)

	def create_element(self, tag_name: str, attributes: dict[str, Any] | None = None, **layout: Any) -> Element:
		element = Element(tag_name, attributes, **layout)
		element.owner_document = self
		return element

	def create_text_node(self, data: str) -> Text:
		text = Text(data)
		text.owner_document = self
		return text


class Window(EventTarget):
	def __init__(
		self,
		document: Document | None = None,
		inner_width: float = 1280,
		inner_height: float = 800,
		parent: 'Window | None' = None,
	):
		super().__init__()
		self.document = document or Document()
		self.document.default_view = self
		self.inner_width = inner_width
		self.inner_height = inner_height
		self.scroll_x = 0.0
		self.scroll_y = 0.0
		self.parent = parent

	@property
	def top(self) -> 'Window':
		window = self
		while window.parent is not None:
			window = window.parent
		return window

	def get_computed_style(self, element: Element) -> CSSStyle:
		return get_computed_style(element)

	def scroll_to(self, x: float, y: float) -> None:
		self.scroll_x, self.scroll_y = float(x), float(y)
		self._invoke_listeners(Event('scroll', bubbles=False))

	def resize(self, width: float, height: float) -> None:
		self.inner_width, self.inner_height = width, height
		self._invoke_listeners(Event('resize', bubbles=False))


def get_computed_style(element: Element) -> CSSStyle:
	"""Resolve inherited properties along the flat tree."""
	visibility = element.style.visibility
	node = element._event_parent()
	while visibility is None and node is not None:
		if isinstance(node, Element):
			visibility = node.style.visibility
		node = node._event_parent()
	return replace(element.style, visibility=visibility or 'visible')


def create_window(inner_width: float = 1280, inner_height: float = 800, parent: Window | None = None) -> Window:
	"""Blank page with `html`, `head` and `body` laid out over the viewport."""
	window = Window(inner_width=inner_width, inner_height=inner_height, parent=parent)
	document = window.document
	viewport = ClientRect(0, 0, inner_width, inner_height)
	html = document.create_element('html', rect=replace(viewport))
	document.append_child(html)
	html.append_child(document.create_element('head', style=CSSStyle(display='none')))
	html.append_child(document.create_element('body', rect=replace(viewport)))
	return window


def _adopt(root: Node, document: 'Document') -> None:
	stack: list[Node] = [root]
	while stack:
		node = stack.pop()
		node.owner_document = document
		stack.extend(node.child_nodes)
		if isinstance(node, Element) and node.shadow_root is not None:
			stack.append(node.shadow_root)


def _is_inclusive_ancestor(ancestor: Node, node: Node) -> bool:
	current: Node | None = node
	while current is not None:
		if current is ancestor:
			return True
		current = current.parent_node
	return False


def _queue_mutation(record: MutationRecord) -> None:
	target = record.target
	document = target if isinstance(target, Document) else target.owner_document
	if document is None or not document._observer_registrations:
		return
	notified: set[int] = set()
	for registration in list(document._observer_registrations):
		if id(registration.observer) in notified:
			continue
		if record.type == 'childList' and not registration.child_list:
			continue
		if record.type == 'attributes':
			if not registration.attributes:
				continue
			if registration.attribute_filter is not None and record.attribute_name not in registration.attribute_filter:
				continue
		if registration.target is target or (registration.subtree and _is_inclusive_ancestor(registration.target, target)):
			notified.add(id(registration.observer))
			registration.observer._enqueue(record)


def _serialize(node: Node) -> str:
	if isinstance(node, Text):
		return node.data
	if isinstance(node, Element):
		attrs = ''.join(f' {name}="{value}"' for name, value in node._attributes.items())
		return f'<{node.tag_name}{attrs}>{node.inner_html}</{node.tag_name}>'
	return ''
