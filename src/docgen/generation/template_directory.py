"""
Generator that resolves templates from a directory of template archives.
"""

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from ..exceptions import GenerationError, PermanentGenerationError
from ..queue.models import DocumentType, QueueItem
from .base import DocumentGenerator

if TYPE_CHECKING:
    from ..queue.recorder import ResultRecorder

logger = logging.getLogger(__name__)

Renderer = Callable[[QueueItem, Path], str]


class TemplateDirectoryGenerator(DocumentGenerator):
    """
    Looks up template codes and wording codes from configuration and finds
    template archives as ``<template_dir>/<code>.zip``.

    Rendering is delegated to a ``renderer(item, template_path) -> output path``
    callable, given directly or as a ``module:function`` import path in the
    ``renderer`` option.

    Options:
        template_dir: Directory holding template archives (default ``templates``)
        templates: ``{document type name: {file type code: template code}}``;
                   a ``"*"`` file type code matches any file type
        wording_codes: ``{file key: wording code}``
        default_wording_code: Wording code used when a file key is not mapped
        wording_root: Root of the wording library (default ``Wording``)
        renderer: Import path of the rendering callable
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None,
                 renderer: Optional[Renderer] = None):
        super().__init__(options)
        self.template_dir = Path(self.options.get('template_dir', 'templates'))
        self.templates = {
            DocumentType.parse(name): {str(k): v for k, v in (codes or {}).items()}
            for name, codes in self.options.get('templates', {}).items()
        }
        self.wording_codes = {str(k): v for k, v in self.options.get('wording_codes', {}).items()}
        self.default_wording_code = self.options.get('default_wording_code')
        self.wording_root = self.options.get('wording_root', 'Wording')

        if renderer is None and self.options.get('renderer'):
            from .factory import import_object
            renderer = import_object(self.options['renderer'])
        self.renderer = renderer

    def get_document_template_code(self, insurance_ref: str, insurance_file_type_code: str,
                                   document_type: DocumentType) -> Optional[str]:
        codes = self.templates.get(document_type, {})
        return codes.get(insurance_file_type_code) or codes.get('*')

    def document_template_exists(self, template_code: str) -> bool:
        return (self.template_dir / f"{template_code}.zip").is_file()

    def get_wording_code(self, insurance_file_key: int) -> str:
        code = self.wording_codes.get(str(insurance_file_key), self.default_wording_code)
        if not code:
            raise GenerationError(f"No wording code configured for file {insurance_file_key}")
        return code

    def get_wording_path(self, wording_code: str, policy_type: str) -> str:
        return f"{self.wording_root}/{policy_type}/{wording_code}.pdf"

    def generate_document(self, item: QueueItem, template_code: str,
                          recorder: 'ResultRecorder') -> None:
        if self.renderer is None:
            raise PermanentGenerationError(
                f"No renderer configured to generate {item.document_type.name} "
                f"from template {template_code}"
            )

        template_path = self.template_dir / f"{template_code}.zip"
        start = time.monotonic()
        output_location = self.renderer(item, template_path)
        elapsed_ms = (time.monotonic() - start) * 1000

        logger.debug(f"Rendered {template_code} for {item.insurance_ref} to {output_location}")
        recorder.record_success(item.id, elapsed_ms, output_location)
