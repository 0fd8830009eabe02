"""
Interface of the document rendering collaborator.

The queue never renders documents itself. It asks a DocumentGenerator to
resolve template and wording codes and to produce documents, and the
generator reports outcomes back through the ResultRecorder it is given.
"""

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..queue.models import DocumentType, QueueItem

if TYPE_CHECKING:
    from ..queue.recorder import ResultRecorder

_POLICY_TYPE_PATTERN = re.compile(r'^\s*([A-Za-z]+)')


class InsuranceReference:
    """
    Parsed insurance reference such as ``MOT1234567`` or ``HOM-0042/01``.

    The policy type is the leading alphabetic prefix, upper-cased.
    """

    def __init__(self, reference: str):
        match = _POLICY_TYPE_PATTERN.match(reference or "")
        if not match:
            raise ValueError(f"Insurance reference has no policy type prefix: {reference!r}")

        self.reference = reference.strip()
        self.policy_type = match.group(1).upper()

    def __str__(self) -> str:
        return self.reference


class DocumentGenerator(ABC):
    """Renders queued documents and resolves the codes and paths they need."""

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        """
        Initialize the generator.

        Args:
            options: Generator-specific options from the ``generation.options``
                     configuration section
        """
        self.options = options or {}

    @abstractmethod
    def get_document_template_code(self, insurance_ref: str, insurance_file_type_code: str,
                                   document_type: DocumentType) -> Optional[str]:
        """Return the template code for a document, or None/empty if there is none."""
        pass

    @abstractmethod
    def document_template_exists(self, template_code: str) -> bool:
        """Return True if the template artifact for the code is available."""
        pass

    @abstractmethod
    def get_wording_code(self, insurance_file_key: int) -> str:
        """Return the wording code that applies to a business file."""
        pass

    @abstractmethod
    def get_wording_path(self, wording_code: str, policy_type: str) -> str:
        """Return the location of the pre-built wording document."""
        pass

    @abstractmethod
    def generate_document(self, item: QueueItem, template_code: str,
                          recorder: 'ResultRecorder') -> None:
        """
        Produce the document for a claimed item.

        Implementations must report the outcome through ``recorder``: either
        ``record_success`` once the document exists, or ``record_handoff`` when
        generation continues in a background job. Raise GenerationError (or
        PermanentGenerationError when retrying cannot help) on failure.
        """
        pass
