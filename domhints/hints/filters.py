import logging

from domhints.hints.page import Element
from domhints.hints.views import DetectedHint

logger = logging.getLogger(__name__)


def filter_false_positives(detected: list[DetectedHint], lookback_window: int = 6, ancestor_depth: int = 3) -> list[DetectedHint]:
	"""Drop weak-signal hints that are a close ancestor of a hint collected just before them.

	A `possibleFalsePositive` hint is removed when one of the previous
	`lookback_window` collected hints has the hint's element among its first
	`ancestor_depth` parents: the wrapper adds nothing over the real control
	inside it.
	"""
	kept: list[DetectedHint] = []
	for position, current in enumerate(detected):
		if not current.hint.possible_false_positive or not _wraps_recent_hint(
			detected, position, lookback_window, ancestor_depth
		):
			kept.append(current)
	dropped = len(detected) - len(kept)
	if dropped:
		logger.debug(f'🧹 Dropped {dropped} false-positive hints')
	return kept


def _wraps_recent_hint(detected: list[DetectedHint], position: int, lookback_window: int, ancestor_depth: int) -> bool:
	element = detected[position].element
	for candidate in detected[max(0, position - lookback_window) : position]:
		ancestor: Element | None = candidate.element
		for _ in range(ancestor_depth):
			ancestor = ancestor.parent_element if ancestor is not None else None
			if ancestor is None:
				break
			if ancestor is element:
				return True
	return False


def dedupe_label_hints(detected: list[DetectedHint]) -> list[DetectedHint]:
	"""Keep only the first label hint for each labelled control."""
	seen_controls: set[int] = set()
	kept: list[DetectedHint] = []
	for current in detected:
		if current.element.tag_name == 'label':
			control = current.element.control
			if control is not None:
				if id(control) in seen_controls:
					continue
				seen_controls.add(id(control))
		kept.append(current)
	return kept
