from domhints.controller.events import DOMTreeBuiltEvent, PageMutatedEvent
from domhints.controller.queue import TaskQueue
from domhints.controller.registry import TabDomRegistry
from domhints.controller.service import DomTools
from domhints.controller.views import DOMTreeResult, FlattenDOMResult

__all__ = [
	'DOMTreeBuiltEvent',
	'DOMTreeResult',
	'DomTools',
	'FlattenDOMResult',
	'PageMutatedEvent',
	'TabDomRegistry',
	'TaskQueue',
]
