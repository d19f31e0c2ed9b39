from domhints.hints.cdp import CDPHintSession
from domhints.hints.detector import HintDetector, detect_hints
from domhints.hints.labels import hint_label, hint_labels
from domhints.hints.session import HintRouter, HintSession
from domhints.hints.views import Hint, HintConfig, HintRect

__all__ = [
	'CDPHintSession',
	'Hint',
	'HintConfig',
	'HintDetector',
	'HintRect',
	'HintRouter',
	'HintSession',
	'detect_hints',
	'hint_label',
	'hint_labels',
]
