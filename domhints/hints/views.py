from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from domhints.config import CONFIG
from domhints.hints.page import ClientRect, Element

ElementType = Literal['link', 'button', 'input', 'select', 'textarea', 'scrollable', 'frame', 'details', 'interactive']


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HintRect(_CamelModel):
	top: float
	left: float
	width: float
	height: float
	right: float
	bottom: float

	@classmethod
	def from_client_rect(cls, rect: ClientRect) -> 'HintRect':
		return cls(top=rect.top, left=rect.left, width=rect.width, height=rect.height, right=rect.right, bottom=rect.bottom)

	def translated(self, dx: float, dy: float) -> 'HintRect':
		return HintRect(
			top=self.top + dy,
			left=self.left + dx,
			width=self.width,
			height=self.height,
			right=self.right + dx,
			bottom=self.bottom + dy,
		)

	def matches(self, other: 'HintRect', tolerance: float = 1.0) -> bool:
		"""All four edges within `tolerance` pixels."""
		return (
			abs(self.top - other.top) <= tolerance
			and abs(self.left - other.left) <= tolerance
			and abs(self.right - other.right) <= tolerance
			and abs(self.bottom - other.bottom) <= tolerance
		)


class Hint(_CamelModel):
	"""One interactive element found in a detection pass. Holds no reference to the element."""

	rect: HintRect
	link_text: str
	tag_name: str
	href: str | None = None
	reason: str | None = None
	xpath: str | None = None
	possible_false_positive: bool = False
	second_class_citizen: bool = False

	@property
	def element_type(self) -> ElementType:
		if self.href and self.tag_name == 'a':
			return 'link'
		if self.tag_name in ('button', 'input', 'select', 'textarea'):
			return self.tag_name  # type: ignore[return-value]
		if self.reason == 'Scroll':
			return 'scrollable'
		if self.reason == 'Frame':
			return 'frame'
		if self.reason == 'Open/Close':
			return 'details'
		return 'interactive'

	def to_payload(self) -> dict:
		return self.model_dump(by_alias=True)


class InteractableElement(_CamelModel):
	"""Agent-facing listing entry; `id` is the 1-based position in the pass that filled the cache."""

	id: int
	type: ElementType
	text: str
	href: str | None = None
	rect: HintRect
	reason: str | None = None
	xpath: str | None = None

	@classmethod
	def from_hint(cls, element_id: int, hint: Hint) -> 'InteractableElement':
		return cls(
			id=element_id,
			type=hint.element_type,
			text=hint.link_text,
			href=hint.href,
			rect=hint.rect,
			reason=hint.reason,
			xpath=hint.xpath,
		)

	def to_payload(self) -> dict:
		return self.model_dump(by_alias=True)


class ActionOutcome(_CamelModel):
	success: bool
	error: str | None = None

	def to_payload(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class InteractabilityInfo:
	clickable: bool
	reason: str | None = None
	possible_false_positive: bool = False
	second_class_citizen: bool = False


@dataclass
class DetectedHint:
	"""A hint paired with the element it was built from; never leaves the page side."""

	hint: Hint
	element: Element


class HintConfig(BaseModel):
	lookback_window: int = Field(default_factory=lambda: CONFIG.DOMHINTS_HINT_LOOKBACK_WINDOW)
	ancestor_depth: int = Field(default_factory=lambda: CONFIG.DOMHINTS_HINT_ANCESTOR_DEPTH)
	max_text_length: int = Field(default_factory=lambda: CONFIG.DOMHINTS_MAX_TEXT_LENGTH)
	debounce_seconds: float = Field(default_factory=lambda: CONFIG.DOMHINTS_DEBOUNCE_SECONDS)
	initial_show_delay: float = Field(default_factory=lambda: CONFIG.DOMHINTS_INITIAL_SHOW_DELAY)
	periodic_refresh_seconds: float = Field(default_factory=lambda: CONFIG.DOMHINTS_PERIODIC_REFRESH_SECONDS)
	rect_tolerance: float = 1.0
	dedupe_labels: bool = True
