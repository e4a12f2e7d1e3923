"""Storage backends used by the engine."""

from .result_cache import ResultCache, options_fingerprint

__all__ = ["ResultCache", "options_fingerprint"]
