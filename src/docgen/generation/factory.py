"""
Factory for document generators.

Generators are selected by the ``generation.class`` configuration value,
either a registered name or a ``module:Class`` import path.
"""

import importlib
import logging
from typing import Any, Dict, Type

from ..exceptions import ConfigurationError
from .base import DocumentGenerator
from .template_directory import TemplateDirectoryGenerator

logger = logging.getLogger(__name__)

# Global registry of generator classes by name
_generator_registry: Dict[str, Type[DocumentGenerator]] = {
    'template_directory': TemplateDirectoryGenerator
}


def register_generator(name: str, generator_class: Type[DocumentGenerator]) -> None:
    """
    Register a generator class under a short name.

    Args:
        name: Name used in the ``generation.class`` configuration value
        generator_class: DocumentGenerator subclass
    """
    _generator_registry[name] = generator_class
    logger.debug(f"Registered document generator: {name}")


def import_object(path: str) -> Any:
    """
    Import an object from a ``module:attribute`` (or ``module.attribute``) path.

    Raises:
        ConfigurationError: If the module or attribute cannot be found
    """
    if ':' in path:
        module_name, _, attribute = path.partition(':')
    else:
        module_name, _, attribute = path.rpartition('.')

    if not module_name or not attribute:
        raise ConfigurationError(f"Invalid import path: {path}")

    try:
        module = importlib.import_module(module_name)
        return getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot import {path}: {e}") from e


def create_generator(generation_config: Dict[str, Any]) -> DocumentGenerator:
    """
    Create a document generator from the ``generation`` configuration section.

    Args:
        generation_config: Section with ``class`` and optional ``options``

    Returns:
        DocumentGenerator instance

    Raises:
        ConfigurationError: If the class is unknown or not a DocumentGenerator
    """
    class_name = generation_config.get('class') or 'template_directory'
    options = generation_config.get('options') or {}

    generator_class = _generator_registry.get(class_name)
    if generator_class is None:
        generator_class = import_object(class_name)

    if not isinstance(generator_class, type) or not issubclass(generator_class, DocumentGenerator):
        raise ConfigurationError(f"{class_name} is not a DocumentGenerator")

    logger.info(f"Using document generator {generator_class.__name__}")
    return generator_class(options)
