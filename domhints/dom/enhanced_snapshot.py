"""
Enhanced snapshot processing.

Turns the columnar DOMSnapshot.captureSnapshot payload into a lookup keyed by
backend node id, so the fuser can attach layout data to DOM nodes in O(1).
"""

from cdp_use.cdp.domsnapshot.commands import CaptureSnapshotReturns
from cdp_use.cdp.domsnapshot.types import LayoutTreeSnapshot, NodeTreeSnapshot, RareBooleanData

from domhints.dom.views import DOMRect, EnhancedSnapshotNode

# Only the styles we actually read: visibility, scrollability, cursor and paint-order opacity
REQUIRED_COMPUTED_STYLES = [
	'display',
	'visibility',
	'opacity',
	'overflow',
	'overflow-x',
	'overflow-y',
	'cursor',
	'pointer-events',
	'position',
	'background-color',
]


def _parse_rare_boolean_data(rare_data: RareBooleanData, index: int) -> bool | None:
	"""Parse rare boolean data from snapshot - returns True if index is in the rare data."""
	return index in rare_data['index']


def _parse_computed_styles(strings: list[str], style_indices: list[int]) -> dict[str, str]:
	"""Map string-table indices back to style values, in `REQUIRED_COMPUTED_STYLES` order."""
	styles = {}
	for i, style_index in enumerate(style_indices):
		if i < len(REQUIRED_COMPUTED_STYLES) and 0 <= style_index < len(strings):
			styles[REQUIRED_COMPUTED_STYLES[i]] = strings[style_index]
	return styles


def _scaled_rect(raw: list[float] | None, device_pixel_ratio: float) -> DOMRect | None:
	if not raw or len(raw) < 4:
		return None
	return DOMRect(
		x=raw[0] / device_pixel_ratio,
		y=raw[1] / device_pixel_ratio,
		width=raw[2] / device_pixel_ratio,
		height=raw[3] / device_pixel_ratio,
	)


def build_snapshot_lookup(
	snapshot: CaptureSnapshotReturns,
	device_pixel_ratio: float = 1.0,
) -> dict[int, EnhancedSnapshotNode]:
	"""Build a lookup table of backend node ID to enhanced snapshot data. Bounds come out in CSS pixels."""
	snapshot_lookup: dict[int, EnhancedSnapshotNode] = {}

	if not snapshot.get('documents'):
		return snapshot_lookup

	strings = snapshot['strings']
	device_pixel_ratio = device_pixel_ratio if device_pixel_ratio > 0 else 1.0

	for document in snapshot['documents']:
		nodes: NodeTreeSnapshot = document['nodes']
		layout: LayoutTreeSnapshot = document['layout']

		backend_node_to_snapshot_index: dict[int, int] = {}
		for i, backend_node_id in enumerate(nodes.get('backendNodeId', [])):
			backend_node_to_snapshot_index.setdefault(backend_node_id, i)

		# First layout entry wins when a node owns several layout objects
		layout_index_map: dict[int, int] = {}
		for layout_idx, node_index in enumerate(layout.get('nodeIndex', [])):
			if node_index not in layout_index_map:
				layout_index_map[node_index] = layout_idx

		stacking_context_indices = set(layout.get('stackingContexts', {}).get('index', []))

		for backend_node_id, snapshot_index in backend_node_to_snapshot_index.items():
			if backend_node_id in snapshot_lookup:
				continue

			is_clickable = None
			if 'isClickable' in nodes:
				is_clickable = _parse_rare_boolean_data(nodes['isClickable'], snapshot_index)

			bounding_box = None
			computed_styles: dict[str, str] = {}
			paint_order = None
			client_rects = None
			scroll_rects = None
			stacking_contexts = None

			if snapshot_index in layout_index_map:
				layout_idx = layout_index_map[snapshot_index]

				bounds = layout.get('bounds', [])
				if layout_idx < len(bounds):
					bounding_box = _scaled_rect(bounds[layout_idx], device_pixel_ratio)

				styles = layout.get('styles', [])
				if layout_idx < len(styles):
					computed_styles = _parse_computed_styles(strings, styles[layout_idx])

				paint_orders = layout.get('paintOrders', [])
				if layout_idx < len(paint_orders):
					paint_order = paint_orders[layout_idx]

				client_rect_list = layout.get('clientRects', [])
				if layout_idx < len(client_rect_list):
					client_rects = _scaled_rect(client_rect_list[layout_idx], device_pixel_ratio)

				scroll_rect_list = layout.get('scrollRects', [])
				if layout_idx < len(scroll_rect_list):
					scroll_rects = _scaled_rect(scroll_rect_list[layout_idx], device_pixel_ratio)

				stacking_contexts = 1 if layout_idx in stacking_context_indices else 0

			snapshot_lookup[backend_node_id] = EnhancedSnapshotNode(
				is_clickable=is_clickable,
				cursor_style=computed_styles.get('cursor'),
				bounds=bounding_box,
				client_rects=client_rects,
				scroll_rects=scroll_rects,
				computed_styles=computed_styles or None,
				paint_order=paint_order,
				stacking_contexts=stacking_contexts,
			)

	return snapshot_lookup
