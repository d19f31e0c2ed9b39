import hashlib
import weakref
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from cdp_use.cdp.accessibility.commands import GetFullAXTreeReturns
from cdp_use.cdp.accessibility.types import AXPropertyName
from cdp_use.cdp.dom.commands import GetDocumentReturns
from cdp_use.cdp.dom.types import ShadowRootType
from cdp_use.cdp.domsnapshot.commands import CaptureSnapshotReturns
from cdp_use.cdp.target.types import SessionID, TargetID
from pydantic import BaseModel, Field

from domhints.config import CONFIG
from domhints.exceptions import FusionError

# Serializer types
DEFAULT_INCLUDE_ATTRIBUTES = [
	'title',
	'type',
	'checked',
	'id',
	'name',
	'role',
	'value',
	'placeholder',
	'alt',
	'aria-label',
	'aria-expanded',
	'aria-checked',
	'aria-valuemin',
	'aria-valuemax',
	'aria-valuenow',
	'min',
	'max',
	'step',
	'accept',
	'multiple',
	'contenteditable',
	'href',
]

STATIC_ATTRIBUTES = {
	'class',
	'id',
	'name',
	'type',
	'placeholder',
	'aria-label',
	'title',
	'role',
	'data-testid',
	'data-test',
	'data-cy',
	'for',
	'required',
	'disabled',
	'readonly',
	'multiple',
	'accept',
	'href',
	'target',
	'rel',
	'aria-describedby',
	'aria-labelledby',
	'aria-controls',
	'aria-disabled',
	'aria-hidden',
	'tabindex',
	'alt',
	'src',
}


class NodeType(int, Enum):
	"""DOM nodeType values."""

	ELEMENT_NODE = 1
	ATTRIBUTE_NODE = 2
	TEXT_NODE = 3
	CDATA_SECTION_NODE = 4
	ENTITY_REFERENCE_NODE = 5
	ENTITY_NODE = 6
	PROCESSING_INSTRUCTION_NODE = 7
	COMMENT_NODE = 8
	DOCUMENT_NODE = 9
	DOCUMENT_TYPE_NODE = 10
	DOCUMENT_FRAGMENT_NODE = 11
	NOTATION_NODE = 12


@dataclass(slots=True)
class DOMRect:
	x: float
	y: float
	width: float
	height: float

	@property
	def right(self) -> float:
		return self.x + self.width

	@property
	def bottom(self) -> float:
		return self.y + self.height

	@property
	def area(self) -> float:
		return max(self.width, 0.0) * max(self.height, 0.0)

	def contains(self, other: 'DOMRect') -> bool:
		return self.x <= other.x and self.y <= other.y and self.right >= other.right and self.bottom >= other.bottom

	def intersection_area(self, other: 'DOMRect') -> float:
		width = min(self.right, other.right) - max(self.x, other.x)
		height = min(self.bottom, other.bottom) - max(self.y, other.y)
		if width <= 0 or height <= 0:
			return 0.0
		return width * height


@dataclass(slots=True)
class EnhancedAXProperty:
	name: AXPropertyName | str
	value: str | bool | None


@dataclass(slots=True)
class EnhancedAXNode:
	ax_node_id: str
	"""Not to be confused the DOM node_id. Only useful for AX node tree"""
	ignored: bool
	role: str | None
	name: str | None
	description: str | None

	properties: list[EnhancedAXProperty] | None

	def get_property(self, name: str) -> str | bool | None:
		for prop in self.properties or []:
			if prop.name == name:
				return prop.value
		return None


@dataclass(slots=True)
class EnhancedSnapshotNode:
	"""Layout data extracted from DOMSnapshot, in CSS pixels."""

	is_clickable: bool | None
	cursor_style: str | None
	bounds: DOMRect | None
	"""Document coordinates of the layout box (origin = top-left of the frame's document)."""

	client_rects: DOMRect | None
	scroll_rects: DOMRect | None
	computed_styles: dict[str, str] | None
	paint_order: int | None
	stacking_contexts: int | None


@dataclass(slots=True)
class PageInfo:
	"""Viewport and page extent in CSS pixels, read from `Page.getLayoutMetrics`."""

	viewport_width: int
	viewport_height: int
	page_width: int
	page_height: int
	scroll_x: int
	scroll_y: int

	@classmethod
	def from_layout_metrics(cls, metrics: dict[str, Any]) -> 'PageInfo':
		viewport = metrics.get('cssLayoutViewport') or metrics.get('cssVisualViewport') or {}
		content = metrics.get('cssContentSize') or {}
		viewport_width = int(viewport.get('clientWidth', 0))
		viewport_height = int(viewport.get('clientHeight', 0))
		return cls(
			viewport_width=viewport_width,
			viewport_height=viewport_height,
			page_width=max(int(content.get('width', 0)), viewport_width),
			page_height=max(int(content.get('height', 0)), viewport_height),
			scroll_x=int(viewport.get('pageX', 0)),
			scroll_y=int(viewport.get('pageY', 0)),
		)

	@property
	def pixels_above(self) -> int:
		return self.scroll_y

	@property
	def pixels_below(self) -> int:
		return max(0, self.page_height - (self.scroll_y + self.viewport_height))

	@property
	def pixels_left(self) -> int:
		return self.scroll_x

	@property
	def pixels_right(self) -> int:
		return max(0, self.page_width - (self.scroll_x + self.viewport_width))

	def header(self) -> str:
		return (
			f'<page viewport={self.viewport_width}x{self.viewport_height} page={self.page_width}x{self.page_height} '
			f'scroll={self.scroll_x},{self.scroll_y} above={self.pixels_above}px below={self.pixels_below}px />'
		)


@dataclass
class TargetAllTrees:
	"""Everything captured from one CDP target in one pass."""

	snapshot: CaptureSnapshotReturns
	dom_tree: GetDocumentReturns
	ax_tree: GetFullAXTreeReturns
	device_pixel_ratio: float
	target_id: TargetID
	session_id: SessionID | None = None
	page_info: PageInfo | None = None
	cdp_timing: dict[str, float] = field(default_factory=dict)


TreeSlot = Literal['child', 'shadow_root', 'content_document']


@dataclass(slots=True, eq=False)
class EnhancedDOMTreeNode:
	"""
	DOM node fused with its accessibility and layout data.

	Tree links are indices into the owning `DOMTreeArena`, which the node only
	references weakly; keep the arena alive while walking the tree.
	"""

	node_id: int
	backend_node_id: int

	node_type: NodeType
	node_name: str
	node_value: str
	attributes: dict[str, str]
	is_scrollable: bool | None
	is_visible: bool | None
	absolute_position: DOMRect | None

	# frames
	target_id: TargetID
	frame_id: str | None
	session_id: SessionID | None
	shadow_root_type: ShadowRootType | None

	ax_node: EnhancedAXNode | None
	snapshot_node: EnhancedSnapshotNode | None

	element_index: int | None = None
	"""Selector-map index, set when the node is visible, interactive and not filtered."""

	index: int = -1
	parent_index: int | None = None
	children_indices: list[int] = field(default_factory=list)
	shadow_root_indices: list[int] = field(default_factory=list)
	content_document_index: int | None = None

	compound_children: list[dict[str, Any]] = field(default_factory=list)
	_arena: 'weakref.ref[DOMTreeArena] | None' = None

	# region - arena navigation
	@property
	def arena(self) -> 'DOMTreeArena':
		arena = self._arena() if self._arena is not None else None
		if arena is None:
			raise ReferenceError(f'Node {self.backend_node_id} is detached from its arena')
		return arena

	@property
	def parent_node(self) -> 'EnhancedDOMTreeNode | None':
		if self.parent_index is None:
			return None
		return self.arena.nodes[self.parent_index]

	@property
	def children_nodes(self) -> list['EnhancedDOMTreeNode']:
		if not self.children_indices:
			return []
		nodes = self.arena.nodes
		return [nodes[i] for i in self.children_indices]

	@property
	def shadow_roots(self) -> list['EnhancedDOMTreeNode']:
		if not self.shadow_root_indices:
			return []
		nodes = self.arena.nodes
		return [nodes[i] for i in self.shadow_root_indices]

	@property
	def content_document(self) -> 'EnhancedDOMTreeNode | None':
		if self.content_document_index is None:
			return None
		return self.arena.nodes[self.content_document_index]

	@property
	def children_and_shadow_roots(self) -> list['EnhancedDOMTreeNode']:
		"""Shadow roots first: their content renders in place of the host's light children."""
		return self.shadow_roots + self.children_nodes

	# endregion

	@property
	def tag_name(self) -> str:
		return self.node_name.lower()

	@property
	def is_element(self) -> bool:
		return self.node_type == NodeType.ELEMENT_NODE

	@property
	def is_shadow_host(self) -> bool:
		return bool(self.shadow_root_indices)

	@property
	def parent_branch_path(self) -> list[str]:
		"""Tag names from the root element down to this node."""
		path: list[str] = []
		node: EnhancedDOMTreeNode | None = self
		while node is not None:
			if node.node_type == NodeType.ELEMENT_NODE:
				path.append(node.tag_name)
			node = node.parent_node
		path.reverse()
		return path

	@property
	def element_hash(self) -> int:
		"""Identity across builds: backend node id plus the node's structural signature."""
		static_attributes = '|'.join(
			f'{key}={value}' for key, value in sorted(self.attributes.items()) if key in STATIC_ATTRIBUTES
		)
		signature = f'{self.backend_node_id}|{self.node_type.value}|{"/".join(self.parent_branch_path)}|{static_attributes}'
		return int(hashlib.sha256(signature.encode()).hexdigest()[:16], 16)

	def get_all_children_text(self, max_depth: int = -1) -> str:
		fragments: list[str] = []
		stack: list[tuple[EnhancedDOMTreeNode, int]] = [(self, 0)]
		while stack:
			node, depth = stack.pop()
			if max_depth != -1 and depth > max_depth:
				continue
			if node.node_type == NodeType.TEXT_NODE:
				fragments.append(node.node_value)
			elif node.node_type == NodeType.ELEMENT_NODE:
				stack.extend((child, depth + 1) for child in reversed(node.children_nodes))
		return '\n'.join(fragment.strip() for fragment in fragments if fragment.strip())

	@property
	def is_actually_scrollable(self) -> bool:
		"""CDP's scrollable flag, or content overflowing a box whose CSS allows scrolling."""
		if self.is_scrollable:
			return True
		if not self.snapshot_node:
			return False

		scroll_rects = self.snapshot_node.scroll_rects
		client_rects = self.snapshot_node.client_rects
		if not (scroll_rects and client_rects):
			return False

		vertical_overflow = scroll_rects.height > client_rects.height + 1
		horizontal_overflow = scroll_rects.width > client_rects.width + 1
		if not (vertical_overflow or horizontal_overflow):
			return False

		computed_css = self.snapshot_node.computed_styles
		if not computed_css:
			return self.tag_name in {'div', 'main', 'section', 'article', 'aside', 'body', 'html'}

		overflow = computed_css.get('overflow', 'visible').lower()
		overflow_x = computed_css.get('overflow-x', overflow).lower()
		overflow_y = computed_css.get('overflow-y', overflow).lower()
		scrolling_values = ('auto', 'scroll', 'overlay')
		return (vertical_overflow and overflow_y in scrolling_values) or (horizontal_overflow and overflow_x in scrolling_values)

	@property
	def scroll_info(self) -> dict[str, float] | None:
		"""Pages of content above and below the visible box of a scroll container."""
		if not (self.is_actually_scrollable and self.snapshot_node):
			return None
		scroll_rects = self.snapshot_node.scroll_rects
		client_rects = self.snapshot_node.client_rects
		if not (scroll_rects and client_rects) or client_rects.height <= 0:
			return None
		content_above = max(0.0, scroll_rects.y)
		content_below = max(0.0, scroll_rects.height - client_rects.height - scroll_rects.y)
		return {
			'pages_above': round(content_above / client_rects.height, 1),
			'pages_below': round(content_below / client_rects.height, 1),
		}

	def __repr__(self) -> str:
		attributes = ', '.join(f'{k}={v}' for k, v in self.attributes.items())
		return f'<{self.tag_name} {attributes} backend_node_id={self.backend_node_id} element_index={self.element_index}>'


class DOMTreeArena:
	"""Index-addressable node table for one fused tree. Slot 0 is the root."""

	def __init__(self) -> None:
		self.nodes: list[EnhancedDOMTreeNode] = []
		self._index_by_backend_node_id: dict[int, int] = {}

	def __len__(self) -> int:
		return len(self.nodes)

	@property
	def root(self) -> EnhancedDOMTreeNode | None:
		return self.nodes[0] if self.nodes else None

	def add(self, node: EnhancedDOMTreeNode, parent_index: int | None = None, slot: TreeSlot = 'child') -> int:
		if node.backend_node_id in self._index_by_backend_node_id:
			raise FusionError(
				f'Duplicate backend node id {node.backend_node_id}',
				details={'backend_node_id': node.backend_node_id, 'node_name': node.node_name},
			)
		index = len(self.nodes)
		node.index = index
		node.parent_index = parent_index
		node._arena = weakref.ref(self)
		self.nodes.append(node)
		self._index_by_backend_node_id[node.backend_node_id] = index

		if parent_index is not None:
			parent = self.nodes[parent_index]
			if slot == 'child':
				parent.children_indices.append(index)
			elif slot == 'shadow_root':
				parent.shadow_root_indices.append(index)
			else:
				parent.content_document_index = index
		return index

	def get_by_backend_node_id(self, backend_node_id: int) -> EnhancedDOMTreeNode | None:
		index = self._index_by_backend_node_id.get(backend_node_id)
		return self.nodes[index] if index is not None else None

	def iter_tree(self, start: EnhancedDOMTreeNode | None = None) -> Iterator[EnhancedDOMTreeNode]:
		"""Pre-order: node, content document, shadow roots, children."""
		first = start if start is not None else self.root
		if first is None:
			return
		stack: list[int] = [first.index]
		nodes = self.nodes
		while stack:
			node = nodes[stack.pop()]
			yield node
			pending: list[int] = []
			if node.content_document_index is not None:
				pending.append(node.content_document_index)
			pending.extend(node.shadow_root_indices)
			pending.extend(node.children_indices)
			stack.extend(reversed(pending))

	def is_ancestor(self, ancestor: EnhancedDOMTreeNode, node: EnhancedDOMTreeNode) -> bool:
		parent_index = node.parent_index
		while parent_index is not None:
			if parent_index == ancestor.index:
				return True
			parent_index = self.nodes[parent_index].parent_index
		return False


DOMSelectorMap = dict[int, EnhancedDOMTreeNode]


@dataclass(slots=True)
class SimplifiedNode:
	"""Per-serialization wrapper around an enhanced node."""

	original_node: EnhancedDOMTreeNode
	children: list['SimplifiedNode'] = field(default_factory=list)

	should_display: bool = True
	interactive_index: int | None = None
	is_new: bool = False
	ignored_by_paint_order: bool = False
	excluded_by_parent: bool = False
	is_shadow_host: bool = False
	is_compound_component: bool = False


@dataclass
class BuildStats:
	target_id: str
	new_nodes_count: int
	simplified_nodes_count: int
	simplified_nodes_count_change: int
	timestamp: float
	removed_nodes_count: int = 0
	unchanged_nodes_count: int = 0


@dataclass
class DOMTreeState:
	"""Result of one fusion pass for one target. Replaced as a whole, never mutated after publication."""

	arena: DOMTreeArena
	selector_map: DOMSelectorMap
	stats: BuildStats
	occluded_node_ids: set[int] = field(default_factory=set)
	excluded_node_ids: set[int] = field(default_factory=set)
	new_element_hashes: set[int] = field(default_factory=set)
	page_info: PageInfo | None = None

	@property
	def root(self) -> EnhancedDOMTreeNode | None:
		return self.arena.root


@dataclass
class SerializedDOMState:
	_root: SimplifiedNode | None
	selector_map: DOMSelectorMap
	page_info: PageInfo | None = None

	def llm_representation(self, include_attributes: list[str] | None = None, include_page_info: bool = False) -> str:
		"""Indented text form of the tree, optionally headed by one line of viewport and scroll data."""
		from domhints.dom.serializer.serializer import DOMTreeSerializer

		if not self._root:
			return 'Empty DOM tree (you might have to wait for the page to load)'
		text = DOMTreeSerializer.serialize_tree(self._root, include_attributes or DEFAULT_INCLUDE_ATTRIBUTES)
		if include_page_info and self.page_info is not None:
			return f'{self.page_info.header()}\n{text}'
		return text


class DomServiceConfig(BaseModel):
	paint_order_filtering: bool = True
	bounding_box_filtering: bool = True
	containment_threshold: float = 0.99
	opacity_threshold: float = 0.8
	max_iframe_targets: int = Field(default_factory=lambda: CONFIG.DOMHINTS_MAX_IFRAME_TARGETS)
	max_attribute_length: int = 100
