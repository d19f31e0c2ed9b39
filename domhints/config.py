"""Configuration for domhints, read lazily from the environment."""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
	value = os.getenv(name)
	return int(value) if value else default


def _env_float(name: str, default: float) -> float:
	value = os.getenv(name)
	return float(value) if value else default


class Config:
	"""Environment-backed settings. Every access re-reads the environment so tests can monkeypatch it."""

	@property
	def DOMHINTS_LOGGING_LEVEL(self) -> str:
		return os.getenv('DOMHINTS_LOGGING_LEVEL', 'info').lower()

	# Hint detection
	@property
	def DOMHINTS_HINT_LOOKBACK_WINDOW(self) -> int:
		return _env_int('DOMHINTS_HINT_LOOKBACK_WINDOW', 6)

	@property
	def DOMHINTS_HINT_ANCESTOR_DEPTH(self) -> int:
		return _env_int('DOMHINTS_HINT_ANCESTOR_DEPTH', 3)

	@property
	def DOMHINTS_MAX_TEXT_LENGTH(self) -> int:
		return _env_int('DOMHINTS_MAX_TEXT_LENGTH', 256)

	# Refresh scheduling (seconds)
	@property
	def DOMHINTS_DEBOUNCE_SECONDS(self) -> float:
		return _env_float('DOMHINTS_DEBOUNCE_SECONDS', 0.1)

	@property
	def DOMHINTS_INITIAL_SHOW_DELAY(self) -> float:
		return _env_float('DOMHINTS_INITIAL_SHOW_DELAY', 1.0)

	@property
	def DOMHINTS_PERIODIC_REFRESH_SECONDS(self) -> float:
		return _env_float('DOMHINTS_PERIODIC_REFRESH_SECONDS', 5.0)

	# Backend tool surface
	@property
	def DOMHINTS_QUEUE_CONCURRENCY(self) -> int:
		return _env_int('DOMHINTS_QUEUE_CONCURRENCY', 3)

	@property
	def DOMHINTS_TOOL_TIMEOUT_SECONDS(self) -> float:
		return _env_float('DOMHINTS_TOOL_TIMEOUT_SECONDS', 45.0)

	@property
	def DOMHINTS_MAX_IFRAME_TARGETS(self) -> int:
		return _env_int('DOMHINTS_MAX_IFRAME_TARGETS', 5)


CONFIG = Config()
