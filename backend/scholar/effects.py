from __future__ import annotations
import inspect
import logging
from typing import Any, Callable


logger = logging.getLogger(__name__)


async def run_best_effort(name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
	"""Run a secondary effect after the primary write has committed.

	Returns True when the effect completed. A failure is logged under ``name``
	and reported as False; it never reaches the caller's response.
	"""
	try:
		result = fn(*args, **kwargs)
		if inspect.isawaitable(result):
			await result
	except Exception as err:
		logger.warning("Best-effort effect %s failed: %r", name, err)
		return False
	return True
