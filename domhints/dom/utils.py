import re

ANGULAR_CLICK_ATTRIBUTES = (
	'ng-click',
	'data-ng-click',
	'x-ng-click',
	'ng:click',
	'data-ng:click',
	'x-ng:click',
	'ng_click',
	'data-ng_click',
	'x-ng_click',
)

CLICKABLE_ROLES = frozenset(
	{
		'button',
		'tab',
		'link',
		'checkbox',
		'menuitem',
		'menuitemcheckbox',
		'menuitemradio',
		'radio',
	}
)

READONLY_TEXT_INPUT_TYPES = frozenset({'text', 'search', 'email', 'url', 'tel', 'password'})

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def cap_text_length(text: str, max_length: int) -> str:
	"""Cap text length for display."""
	if len(text) <= max_length:
		return text
	return text[:max_length] + '...'


def is_aria_disabled(value: str | None) -> bool:
	return value is not None and value.lower() in ('', 'true')


def is_content_editable(value: str | None) -> bool:
	return value is not None and value.lower() in ('', 'contenteditable', 'true')


def parse_tab_index(value: str | None) -> int | None:
	"""Leading integer of a tabindex attribute, `None` when there is none."""
	if not value:
		return None
	match = _LEADING_INT.match(value)
	return int(match.group(1)) if match else None


def has_js_action(value: str | None) -> bool:
	"""True for a jsaction attribute with at least one click (or untriggered) action that is not a no-op."""
	if value is None:
		return False
	for rule in value.split(';'):
		rule = rule.strip()
		if not rule:
			continue
		parts = rule.split(':')
		if len(parts) == 1:
			action = parts[0]
		elif len(parts) == 2 and parts[0].strip() == 'click':
			action = parts[1]
		else:
			continue
		segments = action.strip().split('.')
		if segments[0] != 'none' and segments[-1] not in ('none', '_'):
			return True
	return False


def has_angular_click_handler(attributes: dict[str, str]) -> bool:
	return any(name in attributes for name in ANGULAR_CLICK_ATTRIBUTES)


def device_pixel_ratio(metrics: dict) -> float:
	"""Device pixels per CSS pixel, from a `Page.getLayoutMetrics` result."""
	visual_viewport = metrics.get('visualViewport', {})
	css_visual_viewport = metrics.get('cssVisualViewport', {})
	css_width = css_visual_viewport.get('clientWidth', 0)
	device_width = visual_viewport.get('clientWidth', css_width)
	return device_width / css_width if css_width > 0 else 1.0
