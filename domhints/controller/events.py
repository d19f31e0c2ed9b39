"""Events exchanged between the page side and the per-tab DOM services."""

from bubus import BaseEvent


class PageMutatedEvent(BaseEvent[None]):
	"""The page of a tab changed after its last DOM build."""

	tab_id: str
	mutated_at: float


class DOMTreeBuiltEvent(BaseEvent[None]):
	"""A fusion pass for a tab completed and its state was published."""

	tab_id: str
	new_nodes_count: int
	simplified_nodes_count_change: int
