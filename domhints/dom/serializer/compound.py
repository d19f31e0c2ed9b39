import re
from typing import Any

from domhints.dom.views import EnhancedDOMTreeNode, NodeType

COMPOUND_INPUT_TYPES = {'date', 'datetime-local', 'month', 'time', 'number', 'range', 'file', 'color', 'week'}
COMPOUND_TAGS = {'select', 'video', 'audio', 'input'}

# Checked in order, first match wins
_OPTION_FORMATS: list[tuple[str, re.Pattern[str]]] = [
	('country codes', re.compile(r'^[A-Z]{2,3}$')),
	('years', re.compile(r'^\d{4}$')),
	('numbers', re.compile(r'^\d+$')),
	('dates', re.compile(r'^\d{1,2}/\d{1,2}/\d{4}$')),
	('emails', re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')),
	('currency', re.compile(r'^[£€¥$]\s*\d+(\.\d{2})?$')),
	('phone numbers', re.compile(r'^[\d\s\-+()]+$')),
]


def _parse_float(value: str | None, default: float | None) -> float | None:
	if value is None:
		return default
	try:
		return float(value)
	except ValueError:
		return default


def _spin_button(name: str, valuemin: int, valuemax: int) -> dict[str, Any]:
	return {'role': 'spinbutton', 'name': name, 'valuemin': valuemin, 'valuemax': valuemax, 'valuenow': None}


def _slider(name: str, valuemin: float, valuemax: float, valuenow: float | None) -> dict[str, Any]:
	return {'role': 'slider', 'name': name, 'valuemin': valuemin, 'valuemax': valuemax, 'valuenow': valuenow}


def _button(name: str, description: str, **extra: Any) -> dict[str, Any]:
	return {'role': 'button', 'name': name, 'description': description, **extra}


def can_virtualize(node: EnhancedDOMTreeNode) -> bool:
	if node.node_type != NodeType.ELEMENT_NODE or node.tag_name not in COMPOUND_TAGS:
		return False
	if 'disabled' in node.attributes:
		return False
	if node.tag_name == 'input':
		return node.attributes.get('type', '').lower() in COMPOUND_INPUT_TYPES
	return True


def detect_option_format(options: list[str]) -> str | None:
	"""Name of the format shared by the first ten options, if any."""
	samples = options[:10]
	if not samples:
		return None
	for name, pattern in _OPTION_FORMATS:
		if all(pattern.match(option) for option in samples):
			return name
	return None


def _date_components(input_type: str, attributes: dict[str, str]) -> list[dict[str, Any]]:
	day = _spin_button('Day', 1, 31)
	month = _spin_button('Month', 1, 12)
	year = _spin_button('Year', 1, 275760)
	hour = _spin_button('Hour', 0, 23)
	minute = _spin_button('Minute', 0, 59)

	if input_type == 'date':
		return [day, month, year]
	if input_type == 'datetime-local':
		return [day, month, year, hour, minute]
	if input_type == 'month':
		return [month, year]
	if input_type == 'week':
		return [_spin_button('Week', 1, 53), year]

	components = [hour, minute]
	step = _parse_float(attributes.get('step'), None)
	if step is not None and step < 60:
		components.append(_spin_button('Second', 0, 59))
	return components


def _input_components(node: EnhancedDOMTreeNode) -> list[dict[str, Any]]:
	attributes = node.attributes
	input_type = attributes.get('type', '').lower()

	if input_type in ('date', 'datetime-local', 'month', 'week', 'time'):
		return _date_components(input_type, attributes)

	if input_type in ('number', 'range'):
		valuemin = _parse_float(attributes.get('min'), 0.0)
		valuemax = _parse_float(attributes.get('max'), 100.0)
		valuenow = _parse_float(attributes.get('value'), valuemin)
		if input_type == 'range':
			return [_slider('Value', valuemin, valuemax, valuenow)]
		step = attributes.get('step') or '1'
		return [
			_button('Increment', f'Increase value by {step}'),
			{'role': 'textbox', 'name': 'Number', 'valuemin': valuemin, 'valuemax': valuemax, 'valuenow': valuenow},
			_button('Decrement', f'Decrease value by {step}'),
		]

	if input_type == 'file':
		description = 'Select files' if 'multiple' in attributes else 'Select a file'
		browse = _button('Browse Files', description)
		if attributes.get('accept'):
			browse['formats'] = attributes['accept']
		return [browse, {'role': 'textbox', 'name': 'Files Selected', 'readonly': True, 'valuenow': None}]

	if input_type == 'color':
		return [_button('Color Picker', 'Choose a color', valuenow=attributes.get('value') or '#000000')]

	return []


def _select_components(node: EnhancedDOMTreeNode) -> list[dict[str, Any]]:
	options: list[str] = []
	for child in node.children_nodes:
		if child.tag_name == 'option':
			text = child.get_all_children_text().strip() or child.attributes.get('value', '')
			if text:
				options.append(text)
		elif child.tag_name == 'optgroup':
			options.extend(
				text for option in child.children_nodes if option.tag_name == 'option' and (text := option.get_all_children_text().strip())
			)

	dropdown = _button(node.attributes.get('name') or 'Dropdown', f'{len(options)} options', options_count=len(options))
	dropdown['first_options'] = options[:4]
	format_hint = detect_option_format(options)
	if format_hint:
		dropdown['format_hint'] = format_hint
	return [dropdown]


def _media_components(node: EnhancedDOMTreeNode) -> list[dict[str, Any]]:
	components = [
		_button('Play/Pause', 'Play or pause the media'),
		_slider('Progress', 0, 100, None),
		_slider('Volume', 0, 100, 100),
	]
	if node.tag_name == 'video':
		components.append(_button('Fullscreen', 'Toggle fullscreen'))
	return components


def build_compound_components(node: EnhancedDOMTreeNode) -> list[dict[str, Any]]:
	"""Virtual child controls for native widgets that render as several parts, empty when not applicable."""
	if not can_virtualize(node):
		return []
	if node.tag_name == 'input':
		return _input_components(node)
	if node.tag_name == 'select':
		return _select_components(node)
	return _media_components(node)


def format_compound_components(components: list[dict[str, Any]]) -> str:
	"""Compact `name (role, min-max)` list used in the serialized line."""
	parts: list[str] = []
	for component in components:
		details = [component['role']]
		if component.get('valuemin') is not None and component.get('valuemax') is not None:
			details.append(f'{component["valuemin"]:g}-{component["valuemax"]:g}')
		if component.get('options_count') is not None:
			details.append(f'{component["options_count"]} options')
			if component.get('first_options'):
				details.append('first: ' + '|'.join(component['first_options']))
			if component.get('format_hint'):
				details.append(f'format: {component["format_hint"]}')
		parts.append(f'{component["name"]} ({", ".join(details)})')
	return '; '.join(parts)
