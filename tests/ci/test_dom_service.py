"""
DomService against a fake CDP connection: capture, iframe targets, publication
and staleness.
"""

import itertools
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from domhints.dom.service import DomService, _should_skip_iframe
from domhints.dom.utils import device_pixel_ratio
from domhints.dom.views import DomServiceConfig, DOMRect, TargetAllTrees
from domhints.exceptions import DomHintsError
from tests.conftest import CDPPageBuilder, FakeCDPClient


def simple_page(builder: CDPPageBuilder | None = None) -> tuple[CDPPageBuilder, dict]:
	b = builder or CDPPageBuilder()
	root = b.page(
		[
			b.element('button', {'id': 'save'}, [b.text('Save')], backend_node_id=1),
			b.element('a', {'href': '/docs'}, [b.text('Docs')], bounds=(10, 50, 100, 20), backend_node_id=2),
		]
	)
	return b, root


def iframe_page(frame_url: str = 'https://widget.example.org/embed') -> tuple[dict, list[dict]]:
	"""Main page with one out-of-process iframe, as payloads keyed by target id plus the target list."""
	main = CDPPageBuilder()
	main_root = main.page(
		[
			main.element('button', {'id': 'top'}, backend_node_id=1),
			main.element('iframe', {'src': frame_url}, bounds=(0, 100, 400, 300), frame_id='iframe-1', backend_node_id=2),
		]
	)
	frame = CDPPageBuilder(target_id='iframe-1', frame_id='iframe-1', _ids=itertools.count(5000))
	frame_root = frame.document(
		[
			frame.element(
				'html',
				children=[
					frame.element(
						'body',
						children=[frame.element('a', {'href': '/inside'}, bounds=(5, 5, 50, 20), backend_node_id=3)],
						bounds=(0, 0, 400, 300),
					)
				],
				bounds=(0, 0, 400, 300),
			)
		]
	)
	pages = {'target-main': main.payloads(main_root), 'iframe-1': frame.payloads(frame_root)}
	targets = [
		{'targetId': 'target-main', 'type': 'page', 'url': 'https://example.com'},
		{'targetId': 'iframe-1', 'type': 'iframe', 'url': frame_url},
	]
	return pages, targets


class TestDomServiceBuild:
	async def test_build_publishes_state(self):
		builder, root = simple_page()
		client = FakeCDPClient({'target-main': builder.payloads(root)})
		service = DomService(target_id='target-main', cdp_client=client)

		state = await service.build_dom_state()

		assert service.dom_state is state
		assert [node.backend_node_id for node in state.selector_map.values()] == [1, 2]
		assert state.stats.new_nodes_count == 2
		client.send.DOM.getDocument.assert_awaited_once_with(
			params={'depth': -1, 'pierce': True}, session_id='session-target-main'
		)
		client.send.Target.attachToTarget.assert_awaited_once_with(params={'targetId': 'target-main', 'flatten': True})

	async def test_session_is_reused_across_builds(self):
		builder, root = simple_page()
		client = FakeCDPClient({'target-main': builder.payloads(root)})
		service = DomService(target_id='target-main', cdp_client=client)

		await service.build_dom_state()
		state = await service.build_dom_state()

		assert client.send.Target.attachToTarget.await_count == 1
		assert client.send.DOMSnapshot.captureSnapshot.await_count == 2
		assert state.stats.new_nodes_count == 0

	async def test_given_session_skips_attach(self):
		builder, root = simple_page()
		client = FakeCDPClient({'target-main': builder.payloads(root)})
		service = DomService(target_id='target-main', session_id='session-target-main', cdp_client=client)

		await service.build_dom_state()

		client.send.Target.attachToTarget.assert_not_awaited()

	async def test_device_pixel_ratio_is_applied(self):
		builder, root = simple_page(CDPPageBuilder(device_pixel_ratio=2.0))
		service = DomService(target_id='target-main', cdp_client=FakeCDPClient({'target-main': builder.payloads(root)}))

		state = await service.build_dom_state()

		assert state.selector_map[1].absolute_position == DOMRect(x=10, y=10, width=100, height=20)

	async def test_out_of_process_iframes_are_merged(self):
		pages, targets = iframe_page()
		client = FakeCDPClient(pages, targets)
		service = DomService(target_id='target-main', cdp_client=client)

		state = await service.build_dom_state()

		assert [node.backend_node_id for node in state.selector_map.values()] == [1, 2, 3]
		link = state.selector_map[3]
		assert link.target_id == 'iframe-1'
		assert link.absolute_position == DOMRect(x=5, y=105, width=50, height=20)
		text = service.get_serialized_dom_tree().llm_representation()
		assert 'IFRAME START https://widget.example.org/embed' in text

	async def test_ad_frames_are_not_read(self):
		pages, targets = iframe_page()
		targets.append({'targetId': 'ad-1', 'type': 'iframe', 'url': 'https://securepubads.doubleclick.net/tag'})
		client = FakeCDPClient(pages, targets)
		service = DomService(target_id='target-main', cdp_client=client)

		await service.build_dom_state()

		attached = [call.kwargs['params']['targetId'] for call in client.send.Target.attachToTarget.await_args_list]
		assert attached == ['target-main', 'iframe-1']

	async def test_iframe_limit(self):
		pages, targets = iframe_page()
		client = FakeCDPClient(pages, targets)
		service = DomService(target_id='target-main', cdp_client=client, config=DomServiceConfig(max_iframe_targets=0))

		state = await service.build_dom_state()

		assert [node.backend_node_id for node in state.selector_map.values()] == [1, 2]

	async def test_unreadable_iframe_does_not_fail_the_build(self):
		pages, targets = iframe_page()
		del pages['iframe-1']
		client = FakeCDPClient(pages, targets)
		service = DomService(target_id='target-main', cdp_client=client)

		state = await service.build_dom_state()

		assert [node.backend_node_id for node in state.selector_map.values()] == [1, 2]
		assert 'iframe-1' not in service._iframe_sessions

	def test_empty_tree_is_an_error(self):
		service = DomService(target_id='target-main', cdp_client=FakeCDPClient({}))
		trees = TargetAllTrees(
			snapshot={'documents': [], 'strings': []},
			dom_tree={'root': {'nodeId': 1}},
			ax_tree={'nodes': []},
			device_pixel_ratio=1.0,
			target_id='target-main',
		)

		with pytest.raises(DomHintsError):
			service.process_trees(trees)


class TestDomServiceState:
	async def test_serialization_requires_a_build(self):
		builder, root = simple_page()
		service = DomService(target_id='target-main', cdp_client=FakeCDPClient({'target-main': builder.payloads(root)}))

		with pytest.raises(DomHintsError):
			service.get_serialized_dom_tree()

		await service.build_dom_state()
		text = service.get_serialized_dom_tree().llm_representation()
		assert text.startswith('[1]<button id=save />')
		assert '[2]<a href=/docs />' in text

	async def test_staleness_follows_mutations(self):
		builder, root = simple_page()
		service = DomService(target_id='target-main', cdp_client=FakeCDPClient({'target-main': builder.payloads(root)}))
		assert service.is_stale()

		before = time.time()
		state = await service.build_dom_state()

		assert state.stats.timestamp >= before
		assert not service.is_stale()
		assert not service.is_stale(state.stats.timestamp - 1)
		assert service.is_stale(state.stats.timestamp + 1)


class TestDomServiceConnection:
	def test_requires_a_client_or_url(self):
		with pytest.raises(ValueError):
			DomService(target_id='target-main')

	async def test_resolves_websocket_url_over_http(self):
		response = MagicMock()
		response.json.return_value = {'webSocketDebuggerUrl': 'ws://127.0.0.1:9222/devtools/browser/abc'}
		http_client = MagicMock()
		http_client.get = AsyncMock(return_value=response)

		with (
			patch('domhints.dom.service.httpx.AsyncClient') as async_client_cls,
			patch('domhints.dom.service.CDPClient') as cdp_client_cls,
		):
			async_client_cls.return_value.__aenter__.return_value = http_client
			cdp_client_cls.return_value.start = AsyncMock()
			cdp_client_cls.return_value.stop = AsyncMock()

			async with DomService(target_id='target-main', cdp_url='http://127.0.0.1:9222/') as service:
				assert service.cdp_client is cdp_client_cls.return_value

			http_client.get.assert_awaited_once_with('http://127.0.0.1:9222/json/version')
			cdp_client_cls.assert_called_once_with('ws://127.0.0.1:9222/devtools/browser/abc')
			cdp_client_cls.return_value.start.assert_awaited_once()
			cdp_client_cls.return_value.stop.assert_awaited_once()

	async def test_websocket_url_is_used_directly(self):
		with (
			patch('domhints.dom.service.httpx.AsyncClient') as async_client_cls,
			patch('domhints.dom.service.CDPClient') as cdp_client_cls,
		):
			cdp_client_cls.return_value.start = AsyncMock()
			cdp_client_cls.return_value.stop = AsyncMock()

			service = DomService(target_id='target-main', cdp_url='ws://127.0.0.1:9222/devtools/browser/abc')
			await service._get_cdp_client()
			await service.close()

			async_client_cls.assert_not_called()
			cdp_client_cls.assert_called_once_with('ws://127.0.0.1:9222/devtools/browser/abc')
			assert service.cdp_client is None

	async def test_borrowed_client_is_not_stopped(self):
		client = FakeCDPClient({})
		service = DomService(target_id='target-main', cdp_client=client)

		await service.close()

		client.stop.assert_not_awaited()
		assert service.cdp_client is client


class TestHelpers:
	@pytest.mark.parametrize(
		'url, skip',
		[
			('', True),
			('about:blank', True),
			('data:text/html,<p>hi</p>', True),
			('https://securepubads.doubleclick.net/tag', True),
			('https://www.googletagmanager.com/ns.html', True),
			('https://pixel.example.com/p.gif', True),
			('https://widget.example.org/embed', False),
			('https://www.youtube.com/embed/abc', False),
		],
	)
	def test_should_skip_iframe(self, url, skip):
		assert _should_skip_iframe(url) is skip

	def test_device_pixel_ratio(self):
		assert device_pixel_ratio({'visualViewport': {'clientWidth': 2560}, 'cssVisualViewport': {'clientWidth': 1280}}) == 2.0
		assert device_pixel_ratio({}) == 1.0
