import logging
import time
from dataclasses import dataclass

from bubus import EventBus

from domhints.controller.events import PageMutatedEvent
from domhints.dom.service import DomService
from domhints.exceptions import DOMServiceNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class TabEntry:
	dom_service: DomService
	mutated_at: float | None = None


class TabDomRegistry:
	"""Tab id to DOM service mapping, plus the last time each tab's page changed."""

	def __init__(self, event_bus: EventBus | None = None):
		self.event_bus = event_bus or EventBus(name='TabDomRegistry')
		self._tabs: dict[str, TabEntry] = {}
		self.event_bus.on(PageMutatedEvent, self.on_PageMutatedEvent)

	def register(self, tab_id: str, dom_service: DomService) -> None:
		if tab_id in self._tabs:
			logger.debug(f'Replacing DOM service for tab {tab_id}')
		self._tabs[tab_id] = TabEntry(dom_service=dom_service)

	def unregister(self, tab_id: str) -> DomService | None:
		entry = self._tabs.pop(tab_id, None)
		return entry.dom_service if entry else None

	def get_dom_service(self, tab_id: str) -> DomService:
		entry = self._tabs.get(tab_id)
		if entry is None:
			raise DOMServiceNotFoundError(tab_id)
		return entry.dom_service

	def has_tab(self, tab_id: str) -> bool:
		return tab_id in self._tabs

	@property
	def tab_ids(self) -> list[str]:
		return list(self._tabs)

	def get_mutation_timestamp(self, tab_id: str) -> float | None:
		entry = self._tabs.get(tab_id)
		return entry.mutated_at if entry else None

	def mark_page_mutated(self, tab_id: str, timestamp: float | None = None) -> PageMutatedEvent:
		"""Record a page mutation for `tab_id` right away and publish it on the event bus.

		The timestamp is visible to `get_mutation_timestamp` before the event is
		processed, so a tool call made right after cannot miss it.
		"""
		mutated_at = timestamp if timestamp is not None else time.time()
		self._record_mutation(tab_id, mutated_at)
		return self.event_bus.dispatch(PageMutatedEvent(tab_id=tab_id, mutated_at=mutated_at))

	async def on_PageMutatedEvent(self, event: PageMutatedEvent) -> None:
		self._record_mutation(event.tab_id, event.mutated_at)

	def _record_mutation(self, tab_id: str, mutated_at: float) -> None:
		entry = self._tabs.get(tab_id)
		if entry is None:
			logger.debug(f'Ignoring mutation for unknown tab {tab_id}')
			return
		if entry.mutated_at is None or mutated_at > entry.mutated_at:
			entry.mutated_at = mutated_at
