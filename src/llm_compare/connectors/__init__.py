"""
Auto-discovery module for backend connectors.

This module imports every connector module in this package, which triggers
its self-registration with the backend registry. Adding a backend means
dropping a module here that calls backend_registry.register_backend() at
module level.
"""

import importlib
import logging
import pkgutil
from pathlib import Path

from .base import LLMBackend

logger = logging.getLogger(__name__)

__all__ = ["LLMBackend"]

_current_dir = Path(__file__).parent

for module_info in pkgutil.iter_modules([str(_current_dir)]):
    module_name = module_info.name

    skip_modules = ("base", "streaming_utils")
    if module_name in skip_modules or module_name.startswith("_"):
        continue

    try:
        importlib.import_module(f".{module_name}", package=__package__)
        logger.debug(f"Auto-discovered and imported backend module: {module_name}")
    except Exception as e:
        # Log but don't fail - allow other backends to load
        logger.warning(
            f"Failed to import backend module {module_name}: {e}", exc_info=True
        )
