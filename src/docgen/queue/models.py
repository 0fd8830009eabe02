"""
Data models for the document generation queue.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import IntEnum
from typing import Optional, Dict, Any, Union

# A queue item is retried until it has been attempted this many times.
# Every eligibility and pending-work query takes this value as a parameter.
MAX_ATTEMPTS = 3

# Output recorded against an item whose template could not be resolved.
GENERATION_ERROR_OUTPUT = "Wording/DocumentGenerationError.pdf"


class DocumentType(IntEnum):
    """Kinds of document that can be requested. Stored as the integer value."""
    POLICY_SCHEDULE = 1
    CERTIFICATE_OF_CURRENCY = 2
    TAX_INVOICE = 3
    ENDORSEMENT = 4
    WORDING = 5

    @classmethod
    def parse(cls, value: Union[str, int, 'DocumentType']) -> 'DocumentType':
        """
        Resolve a document type from its name or integer value.

        Args:
            value: Enum member, integer value, or case-insensitive member name
                   (``wording``, ``policy-schedule`` and ``POLICY_SCHEDULE`` all work)

        Returns:
            Matching DocumentType

        Raises:
            ValueError: If no document type matches
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)

        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))

        name = text.upper().replace('-', '_').replace(' ', '_')
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown document type: {value}")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes from psycopg2 and ISO strings from sqlite."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class QueueItem:
    """One document generation request."""
    id: Optional[int] = None
    insurance_ref: str = ""
    insurance_file_key: int = 0
    insurance_folder_key: int = 0
    insurance_file_type_code: str = ""
    client_id: int = 0
    document_type: DocumentType = DocumentType.POLICY_SCHEDULE
    generated: bool = False
    attempts: int = 0
    owner_tag: Optional[str] = None
    background_job_id: Optional[str] = None
    created_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    document_code: Optional[str] = None
    output_location: Optional[str] = None
    user: Optional[str] = None
    server_issued: Optional[str] = None
    failure_reason: Optional[str] = None
    failed_at: Optional[datetime] = None
    dead_lettered_at: Optional[datetime] = None

    @property
    def is_exhausted(self) -> bool:
        """True once the retry budget is spent without success."""
        return not self.generated and self.attempts >= MAX_ATTEMPTS

    @property
    def is_terminal(self) -> bool:
        return self.generated or self.is_exhausted

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result['document_type'] = self.document_type.name
        for key in ('created_at', 'generated_at', 'failed_at', 'dead_lettered_at'):
            value = getattr(self, key)
            result[key] = value.isoformat() if value else None
        return result

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> 'QueueItem':
        """Create QueueItem from database row."""
        return cls(
            id=row.get('id'),
            insurance_ref=row.get('insurance_ref', ''),
            insurance_file_key=row.get('insurance_file_key', 0),
            insurance_folder_key=row.get('insurance_folder_key', 0),
            insurance_file_type_code=row.get('insurance_file_type_code', ''),
            client_id=row.get('client_id', 0),
            document_type=DocumentType(row['document_type']),
            generated=bool(row.get('generated', False)),
            attempts=row.get('attempts', 0),
            owner_tag=row.get('owner_tag'),
            background_job_id=row.get('background_job_id'),
            created_at=_parse_timestamp(row.get('created_at')),
            generated_at=_parse_timestamp(row.get('generated_at')),
            duration_ms=row.get('duration_ms'),
            document_code=row.get('document_code'),
            output_location=row.get('output_location'),
            user=row.get('user_name'),
            server_issued=row.get('server_issued'),
            failure_reason=row.get('failure_reason'),
            failed_at=_parse_timestamp(row.get('failed_at')),
            dead_lettered_at=_parse_timestamp(row.get('dead_lettered_at'))
        )


@dataclass
class EnqueueResult:
    """Outcome of adding a request to the queue."""
    success: bool
    item_id: Optional[int] = None
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success
