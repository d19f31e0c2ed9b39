from typing import Any

from bubus import BaseEvent


class DomHintsError(Exception):
	"""Base class for all domhints errors"""

	message: str
	details: dict[str, Any] | None = None
	while_handling_event: BaseEvent[Any] | None = None

	def __init__(self, message: str, details: dict[str, Any] | None = None, event: BaseEvent[Any] | None = None):
		self.message = message
		super().__init__(message)
		self.details = details
		self.while_handling_event = event

	def __str__(self) -> str:
		if self.details:
			return f'{self.message} ({self.details})'
		return self.message


class DOMServiceNotFoundError(DomHintsError):
	"""No DOM service is registered for the requested tab"""

	def __init__(self, tab_id: str):
		super().__init__(f'No DOM service found for tab {tab_id}', details={'tab_id': tab_id})
		self.tab_id = tab_id


class TaskTimeoutError(DomHintsError):
	"""A queued operation ran longer than its timeout"""

	def __init__(self, operation: str, timeout: float):
		super().__init__(f'{operation} timed out after {timeout:g}s', details={'operation': operation, 'timeout': timeout})
		self.operation = operation
		self.timeout = timeout


class FusionError(DomHintsError):
	"""A DOM node could not be fused with its accessibility and layout data"""
