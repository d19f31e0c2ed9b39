"""Keeps the overlay fresh while the page changes.

Three timer slots live on the asyncio loop: a debounce timer replaced on every
trigger, a one-shot initial auto-show and a periodic fallback that is
rescheduled after each refresh. Only one refresh runs at a time because all
callbacks execute on the loop thread.

Without a window the watcher has no listeners of its own and is fed through
`trigger`, which is how a live browser page reports scrolls and mutations.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Literal

from domhints.hints.page import Event, MutationObserver, MutationRecord, Window
from domhints.hints.views import HintConfig

logger = logging.getLogger(__name__)

RefreshReason = Literal['initial', 'mutation', 'scroll', 'resize', 'periodic']

OBSERVED_ATTRIBUTES = ['style', 'class', 'hidden']


class MutationWatcher:
	def __init__(
		self,
		window: Window | None,
		refresh: Callable[[RefreshReason], None],
		config: HintConfig | None = None,
	):
		self.window = window
		self.refresh = refresh
		self.config = config or HintConfig()

		self._loop: asyncio.AbstractEventLoop | None = None
		self._debounce_handle: asyncio.TimerHandle | None = None
		self._initial_handle: asyncio.TimerHandle | None = None
		self._periodic_handle: asyncio.TimerHandle | None = None
		self._pending_reason: RefreshReason | None = None
		self._mutation_pending = False
		self._observer: MutationObserver | None = None
		self.refresh_count = 0

	@property
	def is_running(self) -> bool:
		return self._loop is not None

	def start(self) -> None:
		if self.is_running:
			return
		self._loop = asyncio.get_running_loop()

		if self.window is not None:
			self.window.add_event_listener('scroll', self._on_scroll, passive=True)
			self.window.add_event_listener('resize', self._on_resize, passive=True)

			body = self.window.document.body
			if body is not None:
				self._observer = MutationObserver(self._on_mutations)
				self._observer.observe(body, child_list=True, subtree=True, attributes=True, attribute_filter=OBSERVED_ATTRIBUTES)
			else:
				logger.warning('⚠️ Document has no body, DOM mutations will only be picked up by the periodic refresh')

		self._initial_handle = self._loop.call_later(self.config.initial_show_delay, self._run_refresh, 'initial')
		self._schedule_periodic()
		logger.debug('👀 Mutation watcher started')

	def stop(self) -> None:
		for handle in (self._debounce_handle, self._initial_handle, self._periodic_handle):
			if handle is not None:
				handle.cancel()
		self._debounce_handle = self._initial_handle = self._periodic_handle = None
		self._pending_reason = None
		self._mutation_pending = False

		if self.window is not None:
			self.window.remove_event_listener('scroll', self._on_scroll)
			self.window.remove_event_listener('resize', self._on_resize)
		if self._observer is not None:
			self._observer.disconnect()
			self._observer = None
		self._loop = None
		logger.debug('🛑 Mutation watcher stopped')

	def trigger(self, reason: RefreshReason) -> None:
		"""Replace any pending debounce timer with a fresh one.

		A mutation seen anywhere in the window is reported as the refresh reason
		even when a scroll or resize arrives after it.
		"""
		if self._loop is None:
			return
		if self._debounce_handle is not None:
			self._debounce_handle.cancel()
		self._pending_reason = reason
		if reason == 'mutation':
			self._mutation_pending = True
		self._debounce_handle = self._loop.call_later(self.config.debounce_seconds, self._on_debounce_elapsed)

	def _on_scroll(self, event: Event) -> None:
		self.trigger('scroll')

	def _on_resize(self, event: Event) -> None:
		self.trigger('resize')

	def _on_mutations(self, records: list[MutationRecord], observer: MutationObserver) -> None:
		self.trigger('mutation')

	def _on_debounce_elapsed(self) -> None:
		self._debounce_handle = None
		reason: RefreshReason = 'mutation' if self._mutation_pending else (self._pending_reason or 'mutation')
		self._pending_reason = None
		self._mutation_pending = False
		self._run_refresh(reason)

	def _schedule_periodic(self) -> None:
		if self._loop is None:
			return
		if self._periodic_handle is not None:
			self._periodic_handle.cancel()
		self._periodic_handle = self._loop.call_later(self.config.periodic_refresh_seconds, self._run_refresh, 'periodic')

	def _run_refresh(self, reason: RefreshReason) -> None:
		if self._loop is None:
			return
		if reason == 'initial':
			self._initial_handle = None
		self.refresh_count += 1
		logger.debug(f'🔄 Refreshing hints ({reason})')
		try:
			self.refresh(reason)
		finally:
			self._schedule_periodic()
