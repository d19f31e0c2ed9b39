"""What happens to an element once a hint marker, hint index or element id resolves to it."""

from typing import Literal

from domhints.hints.page import Element, Event, MouseEvent
from domhints.hints.views import ActionOutcome

ClickAction = Literal['toggle', 'focus', 'click']

VALUE_TAGS = ('input', 'textarea', 'select')

ELEMENT_NOT_FOUND = 'Element not found'


def click_action_for(element: Element) -> ClickAction:
	if element.tag_name == 'details':
		return 'toggle'
	if element.tag_name in VALUE_TAGS:
		return 'focus'
	return 'click'


def execute_click_action(element: Element) -> ClickAction:
	"""Toggle details, focus form controls, click everything else. Returns the action taken."""
	action = click_action_for(element)
	if action == 'toggle':
		element.open = not element.open
	elif action == 'focus':
		element.focus()
	else:
		element.click()
	return action


def type_text(element: Element, text: str) -> ActionOutcome:
	"""Focus, clear and type one character at a time, firing `input` per character and `change` at the end."""
	element.focus()
	if element.tag_name in VALUE_TAGS:
		element.value = ''
		for char in text:
			element.value += char
			element.dispatch_event(Event('input'))
		element.dispatch_event(Event('input'))
		element.dispatch_event(Event('change'))
		return ActionOutcome(success=True)
	if element.is_content_editable:
		element.text_content = text
		element.dispatch_event(Event('input'))
		return ActionOutcome(success=True)
	return ActionOutcome(success=False, error='Element does not accept text input')


def get_value(element: Element) -> str | None:
	if element.tag_name in VALUE_TAGS:
		return element.value
	if element.is_content_editable:
		return element.text_content
	return None


def set_value(element: Element, value: str) -> ActionOutcome:
	if element.tag_name in VALUE_TAGS:
		element.value = value
		element.dispatch_event(Event('input'))
		element.dispatch_event(Event('change'))
		return ActionOutcome(success=True)
	if element.is_content_editable:
		element.text_content = value
		element.dispatch_event(Event('input'))
		return ActionOutcome(success=True)
	return ActionOutcome(success=False, error='Element does not support value setting')


def hover(element: Element) -> ActionOutcome:
	rect = element.get_bounding_client_rect()
	element.dispatch_event(MouseEvent('mouseover', client_x=rect.left + rect.width / 2, client_y=rect.top + rect.height / 2))
	return ActionOutcome(success=True)


def scroll_into_view(element: Element) -> ActionOutcome:
	element.scroll_into_view()
	return ActionOutcome(success=True)
