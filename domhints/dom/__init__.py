from domhints.dom.service import DomService
from domhints.dom.views import (
	DOMTreeArena,
	DOMTreeState,
	DomServiceConfig,
	EnhancedDOMTreeNode,
	SerializedDOMState,
	SimplifiedNode,
)

__all__ = [
	'DOMTreeArena',
	'DOMTreeState',
	'DomService',
	'DomServiceConfig',
	'EnhancedDOMTreeNode',
	'SerializedDOMState',
	'SimplifiedNode',
]
