import logging
from typing import Any

from domhints.controller.events import DOMTreeBuiltEvent
from domhints.controller.queue import TaskQueue
from domhints.controller.registry import TabDomRegistry
from domhints.controller.views import DOMTreeResult, FlattenDOMResult, GetDomTreeAction, GetFlattenDomAction
from domhints.dom.service import DomService
from domhints.dom.views import DEFAULT_INCLUDE_ATTRIBUTES, BuildStats
from domhints.exceptions import DomHintsError

logger = logging.getLogger(__name__)

NO_DOM_TREE = 'No DOM tree available'


class DomTools:
	"""
	Tool surface for agents: DOM change stats and the flattened DOM text per tab.

	Failures are reported in the result's `error` field, never raised.
	"""

	def __init__(self, registry: TabDomRegistry, queue: TaskQueue | None = None):
		self.registry = registry
		self.queue = queue or TaskQueue()

	async def _refresh(self, tab_id: str, dom_service: DomService, force: bool) -> BuildStats:
		mutation_ts = self.registry.get_mutation_timestamp(tab_id)
		if not force and not dom_service.is_stale(mutation_ts):
			assert dom_service.dom_state is not None
			logger.debug(f'♻️ DOM tree for {tab_id} is fresh, returning cached stats')
			return dom_service.dom_state.stats

		state = await dom_service.build_dom_state()
		self.registry.event_bus.dispatch(
			DOMTreeBuiltEvent(
				tab_id=tab_id,
				new_nodes_count=state.stats.new_nodes_count,
				simplified_nodes_count_change=state.stats.simplified_nodes_count_change,
			)
		)
		return state.stats

	async def get_dom_tree(self, tab_id: str, force: bool = False) -> DOMTreeResult:
		"""Change stats of the tab's DOM, rebuilding only when the page mutated since the last build."""
		try:
			dom_service = self.registry.get_dom_service(tab_id)
			stats = await self.queue.run(
				lambda: self._refresh(tab_id, dom_service, force),
				key=tab_id,
				operation='get_dom_tree',
			)
		except DomHintsError as e:
			logger.warning(f'get_dom_tree({tab_id}) failed: {e.message}')
			return DOMTreeResult(tab_id=tab_id, error=e.message)
		except Exception as e:
			logger.error(f'get_dom_tree({tab_id}) failed: {type(e).__name__}: {e}')
			return DOMTreeResult(tab_id=tab_id, error=f'{type(e).__name__}: {e}')

		return DOMTreeResult(
			tab_id=tab_id,
			new_nodes_count=stats.new_nodes_count,
			total_nodes_count_change=stats.simplified_nodes_count_change,
			removed_nodes_count=stats.removed_nodes_count,
		)

	async def _flatten(self, dom_service: DomService, include_attributes: list[str], include_page_info: bool) -> str:
		if dom_service.dom_state is None:
			return NO_DOM_TREE
		return dom_service.get_serialized_dom_tree().llm_representation(include_attributes, include_page_info=include_page_info)

	async def get_flatten_dom(
		self,
		tab_id: str,
		include_attributes: list[str] | None = None,
		include_page_info: bool = False,
	) -> FlattenDOMResult:
		"""Text form of the tab's last built DOM tree."""
		try:
			dom_service = self.registry.get_dom_service(tab_id)
			representation = await self.queue.run(
				lambda: self._flatten(dom_service, include_attributes or DEFAULT_INCLUDE_ATTRIBUTES, include_page_info),
				key=tab_id,
				operation='get_flatten_dom',
			)
		except DomHintsError as e:
			logger.warning(f'get_flatten_dom({tab_id}) failed: {e.message}')
			return FlattenDOMResult(tab_id=tab_id, error=e.message)
		except Exception as e:
			logger.error(f'get_flatten_dom({tab_id}) failed: {type(e).__name__}: {e}')
			return FlattenDOMResult(tab_id=tab_id, error=f'{type(e).__name__}: {e}')

		return FlattenDOMResult(tab_id=tab_id, representation=representation)

	async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict:
		"""Validate camelCase tool arguments, run the tool and return its camelCase payload."""
		if name == 'get_dom_tree':
			tree_action = GetDomTreeAction.model_validate(arguments)
			result: DOMTreeResult | FlattenDOMResult = await self.get_dom_tree(tree_action.tab_id, force=tree_action.force)
		elif name == 'get_flatten_dom':
			flatten_action = GetFlattenDomAction.model_validate(arguments)
			result = await self.get_flatten_dom(
				flatten_action.tab_id,
				flatten_action.include_attributes,
				include_page_info=flatten_action.include_page_info,
			)
		else:
			raise DomHintsError(f'Unknown tool {name}', details={'tool': name})
		return result.to_payload()

	async def remove_tab(self, tab_id: str) -> bool:
		"""Unregister the tab, drop its queue lock and close its DOM service."""
		dom_service = self.registry.unregister(tab_id)
		self.queue.forget(tab_id)
		if dom_service is None:
			return False
		await dom_service.close()
		logger.debug(f'🗑️ Removed tab {tab_id}')
		return True
