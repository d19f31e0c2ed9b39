"""
Tests for the page-side detection pipeline: labels, visibility, interactability,
link text, xpaths, false-positive filtering and full detection passes.
"""

import pytest

from domhints.hints.detector import HINT_CONTAINER_ID, HintDetector, detect_hints
from domhints.hints.filters import dedupe_label_hints, filter_false_positives
from domhints.hints.interactability import get_interactability, is_scrollable_element
from domhints.hints.labels import hint_label, hint_labels
from domhints.hints.link_text import get_link_text, get_xpath
from domhints.hints.page import CSSStyle, Element, create_window
from domhints.hints.views import DetectedHint, Hint, HintConfig, HintRect
from domhints.hints.visibility import is_element_visible, iter_all_elements
from tests.conftest import add_element


def _detected(element: Element, possible_false_positive: bool = False) -> DetectedHint:
	hint = Hint(
		rect=HintRect.from_client_rect(element.get_bounding_client_rect()),
		link_text='',
		tag_name=element.tag_name,
		possible_false_positive=possible_false_positive,
	)
	return DetectedHint(hint=hint, element=element)


class TestHintLabels:
	@pytest.mark.parametrize(
		'position, label',
		[(1, 'A'), (2, 'B'), (26, 'Z'), (27, 'AA'), (52, 'AZ'), (53, 'BA'), (702, 'ZZ'), (703, 'AAA')],
	)
	def test_bijective_base26(self, position, label):
		assert hint_label(position) == label

	def test_labels_are_unique(self):
		labels = hint_labels(1000)
		assert len(set(labels)) == 1000
		assert labels[:3] == ['A', 'B', 'C']

	@pytest.mark.parametrize('position', [0, -3])
	def test_positions_start_at_one(self, position):
		with pytest.raises(ValueError):
			hint_label(position)


class TestVisibility:
	def test_regular_element_is_visible(self, body):
		assert is_element_visible(add_element(body, 'div'))

	def test_element_outside_viewport_is_still_visible(self, body):
		assert is_element_visible(add_element(body, 'div', rect=(0, 5000, 100, 20)))

	def test_zero_size_is_hidden(self, body):
		assert not is_element_visible(add_element(body, 'div', rect=(10, 10, 0, 20)))
		assert not is_element_visible(add_element(body, 'div', rect=(10, 10, 100, 0)))

	def test_visibility_hidden_is_inherited(self, body):
		parent = add_element(body, 'div', style=CSSStyle(visibility='hidden'))
		child = add_element(parent, 'span')
		assert not is_element_visible(child)

	def test_visible_child_overrides_hidden_parent(self, body):
		parent = add_element(body, 'div', style=CSSStyle(visibility='hidden'))
		child = add_element(parent, 'span', style=CSSStyle(visibility='visible'))
		assert is_element_visible(child)

	def test_transparent_element_is_hidden(self, body):
		assert not is_element_visible(add_element(body, 'div', style=CSSStyle(opacity='0')))

	def test_display_none_ancestor_hides_descendants(self, body):
		parent = add_element(body, 'div', style=CSSStyle(display='none'))
		child = add_element(parent, 'button')
		assert not is_element_visible(child)

	def test_detached_element_is_hidden(self, document):
		assert not is_element_visible(document.create_element('div'))

	def test_shadow_tree_follows_its_host(self, body):
		host = add_element(body, 'div', {'id': 'host'})
		shadow = host.attach_shadow()
		add_element(shadow, 'span', {'id': 'inside'})
		add_element(body, 'div', {'id': 'after'})

		order = [element.id or element.tag_name for element in iter_all_elements(body.parent_element)]
		assert order == ['head', 'body', 'host', 'inside', 'after']


class TestInteractability:
	def test_native_controls(self, body):
		assert get_interactability(add_element(body, 'a')).clickable
		assert get_interactability(add_element(body, 'button')).clickable
		assert get_interactability(add_element(body, 'select')).clickable
		assert get_interactability(add_element(body, 'textarea')).clickable
		assert get_interactability(add_element(body, 'input', {'type': 'checkbox'})).clickable

	def test_disabled_controls(self, body):
		assert not get_interactability(add_element(body, 'button', {'disabled': ''})).clickable
		assert not get_interactability(add_element(body, 'select', {'disabled': ''})).clickable
		assert not get_interactability(add_element(body, 'textarea', {'readonly': ''})).clickable

	def test_hidden_input_is_not_clickable(self, body):
		assert not get_interactability(add_element(body, 'input', {'type': 'hidden'})).clickable

	def test_readonly_text_input_is_not_clickable(self, body):
		assert not get_interactability(add_element(body, 'input', {'type': 'email', 'readonly': ''})).clickable
		# Readonly does not apply to checkboxes
		assert get_interactability(add_element(body, 'input', {'type': 'checkbox', 'readonly': ''})).clickable

	def test_label_follows_its_control(self, body):
		enabled_label = add_element(body, 'label', {'for': 'enabled'}, text='Enabled')
		add_element(body, 'input', {'id': 'enabled'})
		disabled_label = add_element(body, 'label', {'for': 'disabled'}, text='Disabled')
		add_element(body, 'input', {'id': 'disabled', 'disabled': ''})
		orphan_label = add_element(body, 'label', text='Orphan')

		assert get_interactability(enabled_label).clickable
		assert not get_interactability(disabled_label).clickable
		assert not get_interactability(orphan_label).clickable

	def test_zoomable_image(self, body):
		assert get_interactability(add_element(body, 'img', style=CSSStyle(cursor='zoom-in'))).clickable
		assert not get_interactability(add_element(body, 'img')).clickable

	def test_details_reason(self, body):
		info = get_interactability(add_element(body, 'details'))
		assert info.clickable
		assert info.reason == 'Open/Close'

	def test_scrollable_container(self, body):
		scroller = add_element(body, 'div', rect=(0, 0, 200, 100), style=CSSStyle(overflow_y='auto'), scroll_height=500)
		overflowing = add_element(body, 'div', rect=(0, 0, 200, 100), scroll_height=500)

		assert is_scrollable_element(scroller)
		assert get_interactability(scroller).reason == 'Scroll'
		# Content overflows but the box does not scroll
		assert not is_scrollable_element(overflowing)
		assert not get_interactability(overflowing).clickable

	def test_scrollable_body(self, body):
		body.style = CSSStyle(overflow_y='scroll')
		body.scroll_height = 3000
		info = get_interactability(body)
		assert info.clickable
		assert info.reason == 'Scroll'

	def test_frame_body_is_a_focus_target(self):
		frame = create_window(inner_width=400, inner_height=300, parent=create_window())
		body = frame.document.body
		# Wins over Scroll even when the frame overflows
		body.style = CSSStyle(overflow_y='scroll')
		body.scroll_height = 3000

		info = get_interactability(body)
		assert info.clickable
		assert info.reason == 'Frame'

		hints = detect_hints(frame.document)
		assert [(hint.tag_name, hint.element_type) for hint in hints] == [('body', 'frame')]

	def test_tiny_frame_body_is_skipped(self):
		frame = create_window(inner_width=3, inner_height=300, parent=create_window())
		assert not get_interactability(frame.document.body).clickable

	def test_top_level_body_without_overflow_is_not_a_target(self, body):
		assert not get_interactability(body).clickable

	def test_aria_disabled_wins_over_everything(self, body):
		assert not get_interactability(add_element(body, 'button', {'aria-disabled': 'true'})).clickable
		assert not get_interactability(add_element(body, 'div', {'onclick': 'go()', 'aria-disabled': ''})).clickable
		assert get_interactability(add_element(body, 'button', {'aria-disabled': 'false'})).clickable

	def test_handler_attributes(self, body):
		assert get_interactability(add_element(body, 'div', {'onclick': 'go()'})).clickable
		assert get_interactability(add_element(body, 'div', {'ng-click': 'go()'})).clickable
		assert get_interactability(add_element(body, 'div', {'contenteditable': 'true'})).clickable
		assert get_interactability(add_element(body, 'div', {'role': 'Tab'})).clickable
		assert not get_interactability(add_element(body, 'div', {'role': 'presentation'})).clickable

	@pytest.mark.parametrize(
		'jsaction, clickable',
		[
			('click:widget.open', True),
			('widget.open', True),
			('mousedown:widget.open', False),
			('click:none', False),
			('click:widget._', False),
			('mousedown:widget.open;click:widget.close', True),
		],
	)
	def test_jsaction(self, body, jsaction, clickable):
		element = add_element(body, 'div', {'jsaction': jsaction})
		assert get_interactability(element).clickable is clickable

	def test_button_class_is_a_weak_signal(self, body):
		info = get_interactability(add_element(body, 'div', {'class': 'nav-Button primary'}))
		assert info.clickable
		assert info.possible_false_positive
		assert not info.second_class_citizen

	def test_tabindex_marks_second_class_citizen(self, body):
		info = get_interactability(add_element(body, 'div', {'tabindex': '0'}))
		assert info.clickable
		assert info.second_class_citizen
		assert not get_interactability(add_element(body, 'div', {'tabindex': '-1'})).clickable

	def test_plain_elements_are_not_clickable(self, body):
		assert not get_interactability(add_element(body, 'div')).clickable
		assert not get_interactability(add_element(body, 'span', text='hello')).clickable


class TestLinkText:
	def test_input_uses_label_without_trailing_colon(self, body):
		add_element(body, 'label', {'for': 'email'}, text='Email:')
		field = add_element(body, 'input', {'id': 'email', 'placeholder': 'you@example.com'})
		assert get_link_text(field) == 'Email'

	def test_unlabelled_inputs(self, body):
		assert get_link_text(add_element(body, 'input', {'type': 'file'})) == 'Choose File'
		assert get_link_text(add_element(body, 'input', {'type': 'password', 'value': 'secret'})) == ''
		assert get_link_text(add_element(body, 'input', {'placeholder': 'Search'})) == 'Search'
		assert get_link_text(add_element(body, 'input', {'value': 'typed', 'placeholder': 'Search'})) == 'typed'

	def test_image_link_uses_alt(self, body):
		link = add_element(body, 'a', {'href': '/home'})
		add_element(link, 'img', {'alt': 'Logo'})
		assert get_link_text(link) == 'Logo'

	def test_text_is_truncated(self, body):
		element = add_element(body, 'div', text='x' * 300)
		assert get_link_text(element, max_length=256) == 'x' * 256

	def test_title_when_empty(self, body):
		assert get_link_text(add_element(body, 'span', {'title': 'Close dialog'})) == 'Close dialog'

	def test_text_is_stripped(self, body):
		assert get_link_text(add_element(body, 'button', text='  Save  ')) == 'Save'


class TestXPath:
	def test_id_shortcut(self, body):
		assert get_xpath(add_element(body, 'button', {'id': 'go'})) == '//*[@id="go"]'

	def test_positional_path(self, body):
		add_element(body, 'div')
		add_element(body, 'span')
		target = add_element(body, 'div')
		assert get_xpath(target) == '/html[1]/body[1]/div[2]'

	def test_path_stops_at_shadow_root(self, body):
		host = add_element(body, 'div')
		inner = add_element(host.attach_shadow(), 'span')
		assert get_xpath(inner) == '/span[1]'


class TestFalsePositiveFilter:
	def test_wrapper_after_its_control_is_dropped(self, body):
		wrapper = add_element(body, 'div', {'class': 'button'})
		link = add_element(wrapper, 'a', {'href': '/x'})

		kept = filter_false_positives([_detected(link), _detected(wrapper, possible_false_positive=True)])
		assert [item.element for item in kept] == [link]

	def test_wrapper_without_weak_signal_is_kept(self, body):
		wrapper = add_element(body, 'div', {'onclick': 'go()'})
		link = add_element(wrapper, 'a', {'href': '/x'})

		kept = filter_false_positives([_detected(link), _detected(wrapper)])
		assert len(kept) == 2

	def test_wrapper_in_document_order_is_kept(self, body):
		wrapper = add_element(body, 'div', {'class': 'button'})
		link = add_element(wrapper, 'a', {'href': '/x'})

		kept = filter_false_positives([_detected(wrapper, possible_false_positive=True), _detected(link)])
		assert len(kept) == 2

	def test_ancestor_depth_limit(self, body):
		wrapper = add_element(body, 'div', {'class': 'button'})
		level1 = add_element(wrapper, 'div')
		level2 = add_element(level1, 'div')
		level3 = add_element(level2, 'div')
		link = add_element(level3, 'a', {'href': '/x'})
		detected = [_detected(link), _detected(wrapper, possible_false_positive=True)]

		assert len(filter_false_positives(detected, ancestor_depth=3)) == 2
		assert len(filter_false_positives(detected, ancestor_depth=4)) == 1

	def test_lookback_window_limit(self, body):
		wrapper = add_element(body, 'div', {'class': 'button'})
		link = add_element(wrapper, 'a', {'href': '/x'})
		others = [_detected(add_element(body, 'button')) for _ in range(6)]
		detected = [_detected(link), *others, _detected(wrapper, possible_false_positive=True)]

		assert len(filter_false_positives(detected, lookback_window=6)) == 8
		assert len(filter_false_positives(detected, lookback_window=7)) == 7

	def test_duplicate_labels_collapse(self, body):
		first = add_element(body, 'label', {'for': 'name'}, text='Name')
		second = add_element(body, 'label', {'for': 'name'}, text='Full name')
		field = add_element(body, 'input', {'id': 'name'})

		kept = dedupe_label_hints([_detected(first), _detected(second), _detected(field)])
		assert [item.element for item in kept] == [first, field]


class TestHintDetector:
	def test_finds_interactive_elements_in_document_order(self, body):
		add_element(body, 'a', {'href': 'https://example.com/docs'}, text='Docs')
		add_element(body, 'p', text='Just text')
		add_element(body, 'button', text='Save')
		add_element(body, 'input', {'type': 'text', 'placeholder': 'Search'})

		hints = detect_hints(body.owner_document)
		assert [hint.tag_name for hint in hints] == ['a', 'button', 'input']
		assert hints[0].element_type == 'link'
		assert hints[0].href == 'https://example.com/docs'
		assert hints[0].link_text == 'Docs'
		assert hints[2].link_text == 'Search'

	def test_skips_invisible_and_empty_elements(self, body):
		hidden = add_element(body, 'div', style=CSSStyle(display='none'))
		add_element(hidden, 'button', text='Hidden')
		add_element(body, 'button', rect=(0, 0, 0, 0), text='Empty')
		add_element(body, 'button', {'aria-disabled': 'true'}, text='Disabled')
		add_element(body, 'button', text='Shown')

		hints = detect_hints(body.owner_document)
		assert [hint.link_text for hint in hints] == ['Shown']

	def test_detection_is_idempotent(self, body):
		add_element(body, 'a', {'href': '/a'}, text='A')
		add_element(body, 'details', text='More')
		add_element(body, 'div', {'tabindex': '0'}, text='Focusable')
		document = body.owner_document

		first = [hint.to_payload() for hint in detect_hints(document)]
		second = [hint.to_payload() for hint in detect_hints(document)]
		assert first == second

	def test_inserted_element_adds_exactly_one_hint(self, body):
		add_element(body, 'button', text='One')
		document = body.owner_document
		before = detect_hints(document)

		add_element(body, 'button', text='Two', rect=(10, 50, 100, 20))
		after = detect_hints(document)

		assert len(after) == len(before) + 1
		assert after[-1].link_text == 'Two'

	def test_shadow_dom_elements(self, body):
		host = add_element(body, 'my-widget')
		add_element(host.attach_shadow(), 'button', text='Inside')
		add_element(body, 'button', text='Outside')

		hints = detect_hints(body.owner_document)
		assert [hint.link_text for hint in hints] == ['Inside', 'Outside']

	def test_image_map_areas_replace_the_image(self, body):
		add_element(body, 'img', {'usemap': '#regions'}, rect=(0, 0, 300, 200))
		image_map = add_element(body, 'map', {'name': 'regions'}, rect=None)
		add_element(image_map, 'area', {'href': '/north', 'alt': 'North'}, rect=(0, 0, 300, 100))
		add_element(image_map, 'area', {'href': '/south', 'title': 'South'}, rect=(0, 100, 300, 100))
		add_element(image_map, 'area', {'href': '/nowhere'}, rect=(0, 0, 0, 0))

		hints = detect_hints(body.owner_document)
		assert [(hint.tag_name, hint.href, hint.link_text) for hint in hints] == [
			('area', '/north', 'North'),
			('area', '/south', 'South'),
		]

	def test_unresolved_image_map_falls_back_to_the_image(self, body):
		add_element(body, 'img', {'usemap': '#missing'}, style=CSSStyle(cursor='zoom-in'))

		hints = detect_hints(body.owner_document)
		assert [hint.tag_name for hint in hints] == ['img']

	def test_overlay_subtree_is_ignored(self, document, body):
		add_element(body, 'button', text='Real')
		container = add_element(document.document_element, 'div', {'id': HINT_CONTAINER_ID})
		add_element(container, 'button', text='Overlay')

		hints = detect_hints(document)
		assert [hint.link_text for hint in hints] == ['Real']

	def test_duplicate_labels_are_configurable(self, body):
		add_element(body, 'label', {'for': 'q'}, text='Query')
		add_element(body, 'label', {'for': 'q'}, text='Search query')
		add_element(body, 'input', {'id': 'q'})
		document = body.owner_document

		assert [hint.tag_name for hint in detect_hints(document)] == ['label', 'input']
		assert len(detect_hints(document, HintConfig(dedupe_labels=False))) == 3

	def test_hint_payload_uses_camel_case(self, body):
		add_element(body, 'div', {'class': 'button'}, text='Fake')
		(detected,) = HintDetector(body.owner_document).detect()

		payload = detected.hint.to_payload()
		assert payload['tagName'] == 'div'
		assert payload['linkText'] == 'Fake'
		assert payload['possibleFalsePositive'] is True
		assert payload['secondClassCitizen'] is False
		assert payload['rect'] == {'top': 10, 'left': 10, 'width': 100, 'height': 20, 'right': 110, 'bottom': 30}
