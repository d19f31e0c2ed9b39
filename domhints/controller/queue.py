import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from domhints.config import CONFIG
from domhints.exceptions import TaskTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TaskQueue:
	"""
	Bounded-concurrency runner for backend DOM work.

	At most `concurrency` tasks run at once, and tasks sharing a key (one tab)
	never overlap. Each task is bounded by a timeout; a timed-out task fails
	with `TaskTimeoutError` and is not retried.
	"""

	def __init__(self, concurrency: int | None = None, timeout: float | None = None):
		self.concurrency = concurrency or CONFIG.DOMHINTS_QUEUE_CONCURRENCY
		self.timeout = timeout or CONFIG.DOMHINTS_TOOL_TIMEOUT_SECONDS
		self._semaphore = asyncio.Semaphore(self.concurrency)
		self._key_locks: dict[str, asyncio.Lock] = {}
		self._key_users: dict[str, int] = {}
		self._forgotten: set[str] = set()
		self.pending = 0

	def _lock_for(self, key: str) -> asyncio.Lock:
		lock = self._key_locks.get(key)
		if lock is None:
			lock = asyncio.Lock()
			self._key_locks[key] = lock
		return lock

	async def run(
		self,
		fn: Callable[[], Awaitable[T]],
		*,
		key: str,
		operation: str,
		timeout: float | None = None,
	) -> T:
		"""Run `fn()` once the tab's lock and a global slot are free."""
		limit = timeout if timeout is not None else self.timeout
		self.pending += 1
		self._key_users[key] = self._key_users.get(key, 0) + 1
		logger.debug(f'📥 Queued {operation} for {key} ({self.pending} pending)')
		try:
			async with self._lock_for(key), self._semaphore:
				try:
					result = await asyncio.wait_for(fn(), timeout=limit)
				except asyncio.TimeoutError:
					logger.warning(f'⏰ {operation} for {key} timed out after {limit:g}s')
					raise TaskTimeoutError(operation, limit) from None
				except Exception as e:
					logger.error(f'❌ {operation} for {key} failed: {type(e).__name__}: {e}')
					raise
			logger.debug(f'✅ {operation} for {key} done')
			return result
		finally:
			self.pending -= 1
			self._key_users[key] -= 1
			if self._key_users[key] == 0:
				del self._key_users[key]
				if key in self._forgotten:
					self._drop(key)

	def forget(self, key: str) -> None:
		"""Drop the key's lock now when idle, otherwise as soon as its queued work drains."""
		if key in self._key_users:
			self._forgotten.add(key)
		else:
			self._drop(key)

	def _drop(self, key: str) -> None:
		self._key_locks.pop(key, None)
		self._forgotten.discard(key)
