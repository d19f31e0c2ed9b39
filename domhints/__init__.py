import os

from domhints.logging_config import setup_logging

if os.environ.get('DOMHINTS_SETUP_LOGGING', 'true').lower() != 'false':
	setup_logging()

from domhints.controller import DomTools, TabDomRegistry, TaskQueue  # noqa: E402
from domhints.dom import DomService, DomServiceConfig  # noqa: E402
from domhints.hints import CDPHintSession, Hint, HintConfig, HintRouter, HintSession, detect_hints  # noqa: E402

__all__ = [
	'CDPHintSession',
	'DomService',
	'DomServiceConfig',
	'DomTools',
	'Hint',
	'HintConfig',
	'HintRouter',
	'HintSession',
	'TabDomRegistry',
	'TaskQueue',
	'detect_hints',
	'setup_logging',
]
