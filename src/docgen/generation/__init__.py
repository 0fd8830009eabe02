"""
Document rendering collaborators used by the processing loop.
"""

from .base import DocumentGenerator, InsuranceReference
from .factory import create_generator, register_generator, import_object
from .template_directory import TemplateDirectoryGenerator

__all__ = [
    'DocumentGenerator',
    'InsuranceReference',
    'TemplateDirectoryGenerator',
    'create_generator',
    'register_generator',
    'import_object'
]
