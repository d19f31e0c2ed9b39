"""
Page model of a live browser frame.

Rebuilds a `Window` from `DOM.getDocument`, `DOMSnapshot.captureSnapshot` and
`Page.getLayoutMetrics`, so detection runs on the same code for a live page as
for an in-memory one. Element boxes are document coordinates in CSS pixels and
the window carries the frame's viewport size and scroll offset.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from cdp_use.cdp.dom.commands import GetDocumentReturns
from cdp_use.cdp.domsnapshot.commands import CaptureSnapshotReturns

from domhints.dom.enhanced_snapshot import build_snapshot_lookup
from domhints.dom.utils import device_pixel_ratio
from domhints.dom.views import DOMRect, EnhancedSnapshotNode, NodeType, PageInfo
from domhints.hints.page import ClientRect, CSSStyle, Element, Node, Window
from domhints.utils import time_execution_sync

logger = logging.getLogger(__name__)


@dataclass
class PageMirror:
	window: Window
	backend_node_ids: dict[Element, int] = field(default_factory=dict)

	def backend_node_id(self, element: Element) -> int | None:
		return self.backend_node_ids.get(element)


def _client_rect(bounds: DOMRect | None) -> ClientRect:
	if bounds is None:
		return ClientRect()
	return ClientRect(left=bounds.x, top=bounds.y, width=bounds.width, height=bounds.height)


def _css_style(styles: dict[str, str]) -> CSSStyle:
	overflow = styles.get('overflow', 'visible')
	return CSSStyle(
		display=styles.get('display', 'block'),
		visibility=styles.get('visibility'),
		opacity=styles.get('opacity', '1'),
		cursor=styles.get('cursor', 'auto'),
		overflow_x=styles.get('overflow-x', overflow),
		overflow_y=styles.get('overflow-y', overflow),
		pointer_events=styles.get('pointer-events', 'auto'),
	)


def _attributes(node: dict[str, Any]) -> dict[str, str]:
	flat = node.get('attributes') or []
	return {flat[i]: flat[i + 1] for i in range(0, len(flat) - 1, 2)}


def _mirror_element(window: Window, node: dict[str, Any], layout: EnhancedSnapshotNode | None) -> Element:
	# No layout object means the element is not rendered
	if layout is None:
		return window.document.create_element(node['localName'] or node['nodeName'], _attributes(node), style=CSSStyle(display='none'))

	scroll = layout.scroll_rects
	return window.document.create_element(
		node['localName'] or node['nodeName'],
		_attributes(node),
		rect=_client_rect(layout.bounds),
		style=_css_style(layout.computed_styles or {}),
		scroll_width=scroll.width if scroll else None,
		scroll_height=scroll.height if scroll else None,
	)


@time_execution_sync('--mirror_page')
def mirror_page(
	dom_tree: GetDocumentReturns,
	snapshot: CaptureSnapshotReturns,
	layout_metrics: dict[str, Any],
	is_top_frame: bool = True,
) -> PageMirror:
	"""Build a page model of one frame.

	Shadow roots are mirrored except user-agent ones. Child frames are left out,
	each gets its own mirror. A child frame's window hangs off a placeholder
	parent so it is not mistaken for the top-level window.
	"""
	page_info = PageInfo.from_layout_metrics(layout_metrics)
	window = Window(
		inner_width=page_info.viewport_width,
		inner_height=page_info.viewport_height,
		parent=None if is_top_frame else Window(),
	)
	window.scroll_x = float(page_info.scroll_x)
	window.scroll_y = float(page_info.scroll_y)

	mirror = PageMirror(window=window)
	snapshot_lookup = build_snapshot_lookup(snapshot, device_pixel_ratio(layout_metrics))
	document = window.document

	stack: list[tuple[dict[str, Any], Node]] = [(child, document) for child in reversed(dom_tree['root'].get('children') or [])]
	while stack:
		node, parent = stack.pop()
		node_type = node['nodeType']

		if node_type == NodeType.TEXT_NODE.value:
			parent.append_child(document.create_text_node(node.get('nodeValue', '')))
			continue
		if node_type != NodeType.ELEMENT_NODE.value:
			continue

		element = _mirror_element(window, node, snapshot_lookup.get(node['backendNodeId']))
		parent.append_child(element)
		mirror.backend_node_ids[element] = node['backendNodeId']

		pending: list[tuple[dict[str, Any], Node]] = []
		for shadow in node.get('shadowRoots') or []:
			if shadow.get('shadowRootType') == 'user-agent' or element.shadow_root is not None:
				continue
			shadow_root = element.attach_shadow(shadow.get('shadowRootType') or 'open')
			pending.extend((child, shadow_root) for child in shadow.get('children') or [])
		pending.extend((child, element) for child in node.get('children') or [])
		stack.extend(reversed(pending))

	logger.debug(f'🪞 Mirrored {len(mirror.backend_node_ids)} elements')
	return mirror
