import logging
import sys

from domhints.config import CONFIG

_THIRD_PARTY_LOGGERS = ('cdp_use', 'cdp_use.client', 'websockets', 'httpx', 'httpcore', 'bubus')


class DomHintsFormatter(logging.Formatter):
	"""Shortens `domhints.hints.watcher` style names to `watcher` for compact output."""

	def format(self, record: logging.LogRecord) -> str:
		if isinstance(record.name, str) and record.name.startswith('domhints.'):
			record.name = record.name.rsplit('.', 1)[-1]
		return super().format(record)


def setup_logging(log_level: str | None = None, force_setup: bool = False) -> logging.Logger:
	"""Install a single stream handler on the `domhints` logger.

	Calling it twice is a no-op unless `force_setup` is set.
	"""
	logger = logging.getLogger('domhints')
	if logger.handlers and not force_setup:
		return logger

	level_name = (log_level or CONFIG.DOMHINTS_LOGGING_LEVEL).upper()
	level = getattr(logging, level_name, logging.INFO)

	for handler in list(logger.handlers):
		logger.removeHandler(handler)

	handler = logging.StreamHandler(sys.stdout)
	handler.setFormatter(DomHintsFormatter('%(levelname)-8s [%(name)s] %(message)s'))
	logger.addHandler(handler)
	logger.setLevel(level)
	logger.propagate = False

	for name in _THIRD_PARTY_LOGGERS:
		third_party = logging.getLogger(name)
		third_party.setLevel(logging.WARNING)
		third_party.propagate = False

	return logger
