import asyncio
import logging
import time
from urllib.parse import urlparse

import httpx
from cdp_use import CDPClient
from cdp_use.cdp.target.types import SessionID, TargetID

from domhints.dom.change_detector import ChangeDetector
from domhints.dom.enhanced_snapshot import REQUIRED_COMPUTED_STYLES
from domhints.dom.fuser import DomTreeFuser
from domhints.dom.selector_map import SelectorMapBuilder
from domhints.dom.serializer.bounding_box import BoundingBoxFilter, interactive_node_ids
from domhints.dom.serializer.compound import build_compound_components
from domhints.dom.serializer.paint_order import PaintOrderRemover
from domhints.dom.serializer.serializer import DOMTreeSerializer
from domhints.dom.utils import device_pixel_ratio
from domhints.dom.views import DomServiceConfig, DOMTreeState, PageInfo, SerializedDOMState, TargetAllTrees
from domhints.exceptions import DomHintsError
from domhints.utils import time_execution_async, time_execution_sync

logger = logging.getLogger(__name__)

# Global set of advertising/tracking domains to skip for performance
_AD_TRACKING_DOMAINS = {
	'doubleclick.net',
	'googlesyndication.com',
	'googletagmanager.com',
	'facebook.net',
	'fbcdn.net',
	'adnxs.com',
	'adsystem.com',
	'criteo.com',
	'criteo.net',
	'openx.net',
	'rubiconproject.com',
	'amazon-adsystem.com',
	'spotxchange.com',
	'3lift.com',
	'pubmatic.com',
	'taboola.com',
	'outbrain.com',
	'revcontent.com',
	'google-analytics.com',
	'hotjar.com',
	'fullstory.com',
	'mixpanel.com',
	'segment.com',
	'amplitude.com',
	'intercom.io',
}

_AD_KEYWORDS = ('ads.', 'analytics', 'tracking', 'pixel', 'beacon', 'metrics')


def _should_skip_iframe(url: str) -> bool:
	"""Check if iframe should be skipped for performance reasons."""
	if not url or url.startswith('about:') or url.startswith('data:'):
		return True

	try:
		domain = urlparse(url).netloc.lower()
	except ValueError:
		return False

	if any(ad_domain in domain for ad_domain in _AD_TRACKING_DOMAINS):
		return True
	return any(keyword in domain for keyword in _AD_KEYWORDS)


class DomService:
	"""
	Builds, diffs and serializes the fused DOM tree of one page target.

	Owns the target's last published `DOMTreeState`; a new state replaces the
	old one only after a pass completes.
	"""

	def __init__(
		self,
		target_id: TargetID,
		cdp_url: str | None = None,
		session_id: SessionID | None = None,
		cdp_client: CDPClient | None = None,
		config: DomServiceConfig | None = None,
	):
		if cdp_client is None and not cdp_url:
			raise ValueError('Either cdp_client or cdp_url is required')
		self.target_id = target_id
		self.cdp_url = cdp_url
		self.session_id = session_id
		self.cdp_client = cdp_client
		self.config = config or DomServiceConfig()

		self.change_detector = ChangeDetector()
		self.dom_state: DOMTreeState | None = None
		self._owns_client = cdp_client is None
		self._iframe_sessions: dict[TargetID, SessionID] = {}

	async def _get_cdp_client(self) -> CDPClient:
		if self.cdp_client is not None:
			return self.cdp_client
		assert self.cdp_url is not None

		# If the cdp_url is already a websocket URL, use it as-is.
		if self.cdp_url.startswith('ws'):
			ws_url = self.cdp_url
		else:
			# Otherwise, treat it as the DevTools HTTP root and fetch the websocket URL.
			url = self.cdp_url.rstrip('/')
			if not url.endswith('/json/version'):
				url = url + '/json/version'
			async with httpx.AsyncClient() as client:
				version_info = await client.get(url)
				version_info.raise_for_status()
				ws_url = version_info.json()['webSocketDebuggerUrl']

		self.cdp_client = CDPClient(ws_url)
		await self.cdp_client.start()
		logger.debug(f'🔌 Connected to {ws_url}')
		return self.cdp_client

	async def __aenter__(self):
		await self._get_cdp_client()
		return self

	async def __aexit__(self, exc_type, exc_value, traceback):
		await self.close()

	async def close(self) -> None:
		if self.cdp_client is not None and self._owns_client:
			await self.cdp_client.stop()
			self.cdp_client = None
		self._iframe_sessions.clear()

	async def _attach(self, target_id: TargetID) -> SessionID:
		cdp_client = await self._get_cdp_client()
		session = await cdp_client.send.Target.attachToTarget(params={'targetId': target_id, 'flatten': True})
		session_id = session['sessionId']
		await cdp_client.send.DOM.enable(session_id=session_id)
		await cdp_client.send.Accessibility.enable(session_id=session_id)
		await cdp_client.send.DOMSnapshot.enable(session_id=session_id)
		await cdp_client.send.Page.enable(session_id=session_id)
		return session_id

	async def _get_session_id(self) -> SessionID:
		if self.session_id is None:
			self.session_id = await self._attach(self.target_id)
		return self.session_id

	async def get_cdp_session(self) -> tuple[CDPClient, SessionID]:
		"""Client and attached session of the main target, shared with page-side tooling."""
		session_id = await self._get_session_id()
		return await self._get_cdp_client(), session_id

	async def _get_target_trees(self, target_id: TargetID, session_id: SessionID) -> TargetAllTrees:
		cdp_client = await self._get_cdp_client()

		snapshot_request = cdp_client.send.DOMSnapshot.captureSnapshot(
			params={
				'computedStyles': REQUIRED_COMPUTED_STYLES,
				'includePaintOrder': True,
				'includeDOMRects': True,
				'includeBlendedBackgroundColors': False,
				'includeTextColorOpacities': False,
			},
			session_id=session_id,
		)
		dom_tree_request = cdp_client.send.DOM.getDocument(params={'depth': -1, 'pierce': True}, session_id=session_id)
		ax_tree_request = cdp_client.send.Accessibility.getFullAXTree(session_id=session_id)
		metrics_request = cdp_client.send.Page.getLayoutMetrics(session_id=session_id)

		start = time.time()
		snapshot, dom_tree, ax_tree, metrics = await asyncio.gather(
			snapshot_request, dom_tree_request, ax_tree_request, metrics_request
		)
		elapsed = time.time() - start

		return TargetAllTrees(
			snapshot=snapshot,
			dom_tree=dom_tree,
			ax_tree=ax_tree,
			device_pixel_ratio=device_pixel_ratio(metrics),
			target_id=target_id,
			session_id=session_id,
			page_info=PageInfo.from_layout_metrics(metrics),
			cdp_timing={'cdp_calls_total': elapsed},
		)

	async def _get_iframe_trees(self) -> dict[str, TargetAllTrees]:
		"""Trees of out-of-process iframe targets, keyed by frame id (equal to the iframe's target id)."""
		cdp_client = await self._get_cdp_client()
		targets = await cdp_client.send.Target.getTargets()

		iframe_trees: dict[str, TargetAllTrees] = {}
		skipped_count = 0
		for target in targets['targetInfos']:
			if target['type'] != 'iframe':
				continue
			if _should_skip_iframe(target.get('url', '')):
				skipped_count += 1
				continue
			if len(iframe_trees) >= self.config.max_iframe_targets:
				logger.info(f'🛡️ Hit iframe limit ({self.config.max_iframe_targets}), ignoring the remaining frames')
				break

			iframe_target_id = target['targetId']
			try:
				session_id = self._iframe_sessions.get(iframe_target_id)
				if session_id is None:
					session_id = await self._attach(iframe_target_id)
					self._iframe_sessions[iframe_target_id] = session_id
				iframe_trees[iframe_target_id] = await self._get_target_trees(iframe_target_id, session_id)
			except Exception as e:
				# Frames come and go while we read them
				self._iframe_sessions.pop(iframe_target_id, None)
				logger.warning(f'⚠️ Could not read iframe {target.get("url", "")[:60]}: {type(e).__name__}: {e}')

		if skipped_count:
			logger.debug(f'⚡ Skipped {skipped_count} ad/tracking frames')
		return iframe_trees

	@time_execution_async('--get_all_trees')
	async def get_all_trees(self) -> tuple[TargetAllTrees, dict[str, TargetAllTrees]]:
		session_id = await self._get_session_id()
		main_trees = await self._get_target_trees(self.target_id, session_id)
		iframe_trees = await self._get_iframe_trees()
		return main_trees, iframe_trees

	@time_execution_sync('--process_trees')
	def process_trees(
		self,
		main: TargetAllTrees,
		iframe_trees: dict[str, TargetAllTrees] | None = None,
		timestamp: float | None = None,
	) -> DOMTreeState:
		"""Fuse, filter, index and diff one capture. Does not publish the result."""
		arena = DomTreeFuser(main, iframe_trees).fuse()
		if arena.root is None:
			raise DomHintsError(f'Empty DOM tree for target {self.target_id}')

		interactive = interactive_node_ids(arena)

		occluded: set[int] = set()
		if self.config.paint_order_filtering:
			occluded = PaintOrderRemover(arena, self.config.opacity_threshold).calculate_occluded()

		excluded: set[int] = set()
		if self.config.bounding_box_filtering:
			excluded = BoundingBoxFilter(arena, interactive - occluded, self.config.containment_threshold).calculate_excluded()

		selector_map = SelectorMapBuilder(arena, interactive, occluded, excluded).build()
		for node in selector_map.values():
			node.compound_children = build_compound_components(node)

		stats, new_hashes = self.change_detector.detect(self.target_id, arena, selector_map, timestamp)
		return DOMTreeState(
			arena=arena,
			selector_map=selector_map,
			stats=stats,
			occluded_node_ids=occluded,
			excluded_node_ids=excluded,
			new_element_hashes=new_hashes,
			page_info=main.page_info,
		)

	@time_execution_async('--build_dom_state')
	async def build_dom_state(self) -> DOMTreeState:
		"""Capture and process the page, then publish the new state."""
		started_at = time.time()
		main, iframe_trees = await self.get_all_trees()
		state = self.process_trees(main, iframe_trees, timestamp=started_at)
		self.dom_state = state
		logger.info(
			f'🌳 DOM built for {self.target_id[-4:]}: {len(state.selector_map)} interactive, '
			f'{state.stats.new_nodes_count} new, {state.stats.simplified_nodes_count_change:+d} displayed'
		)
		return state

	def get_serialized_dom_tree(self) -> SerializedDOMState:
		if self.dom_state is None:
			raise DomHintsError(f'No DOM tree has been built for target {self.target_id}')
		return DOMTreeSerializer(self.dom_state).serialize_accessible_elements()

	def is_stale(self, mutation_ts: float | None = None) -> bool:
		if self.dom_state is None:
			return True
		return self.change_detector.is_stale(self.target_id, mutation_ts)
