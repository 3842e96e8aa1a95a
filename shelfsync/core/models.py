"""
Core data models for ShelfSync
Library entities, queued mutations and sync bookkeeping types
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from shelfsync.core.exceptions import InvalidDataError, SyncError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported datetime value: {value!r}")


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


class EntityType(Enum):
    """Synchronized entity kinds, in pull order"""
    BOOK = "book"
    COLLECTION = "collection"
    ACTIVITY = "activity"
    PARTNERSHIP = "partnership"


class OperationType(Enum):
    """Queued mutation kinds"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ReadingStatus(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    FINISHED = "finished"
    ABANDONED = "abandoned"


class ActivityType(Enum):
    STARTED_READING = "started_reading"
    FINISHED_READING = "finished_reading"
    UPDATED_PROGRESS = "updated_progress"
    ADDED_NOTE = "added_note"
    RATED_BOOK = "rated_book"
    ADDED_BOOK = "added_book"


class PartnershipStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DECLINED = "declined"
    ENDED = "ended"


class SortOption(Enum):
    TITLE = "title"
    AUTHOR = "author"
    DATE_ADDED = "date_added"
    PUBLISHED_DATE = "published_date"
    RATING = "rating"
    READING_PROGRESS = "reading_progress"


def _required(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"Missing required field '{key}'")
    return value


def _flag(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if value is None:
        return False
    # Strings such as "false" are rejected, never coerced
    if not isinstance(value, bool):
        raise ValueError(f"Field '{key}' must be a boolean, got {type(value).__name__}")
    return value


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Expected a list, got {type(value).__name__}")
    return [str(item) for item in value]


class SyncEntity:
    """
    Mixin shared by every synchronized record.

    Subclasses declare which fields are merged monotonically during
    reconciliation: OR_FIELDS are booleans combined with logical OR,
    UNION_FIELDS are lists combined as an order-preserving set union.
    """

    entity_type: ClassVar[EntityType]
    OR_FIELDS: ClassVar[Tuple[str, ...]] = ()
    UNION_FIELDS: ClassVar[Tuple[str, ...]] = ()

    id: str
    owner_id: str
    last_modified_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass
class Book(SyncEntity):
    """A book in the user's library"""

    entity_type: ClassVar[EntityType] = EntityType.BOOK
    OR_FIELDS: ClassVar[Tuple[str, ...]] = ("shared_with_partner",)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = ""
    title: str = ""
    authors: List[str] = field(default_factory=list)
    isbn: Optional[str] = None
    subtitle: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    categories: List[str] = field(default_factory=list)
    language: Optional[str] = None

    # Reading state
    current_page: int = 0
    reading_status: ReadingStatus = ReadingStatus.NOT_STARTED
    is_favorite: bool = False
    user_rating: Optional[float] = None
    user_notes: Optional[str] = None
    date_added: Optional[datetime] = None
    started_reading: Optional[datetime] = None
    finished_reading: Optional[datetime] = None

    # Partner sharing
    shared_with_partner: bool = False

    last_modified_at: Optional[datetime] = field(default_factory=utc_now)

    @property
    def reading_progress_percentage(self) -> float:
        """Percentage of pages read, 0 when the page count is unknown"""
        if not self.page_count or self.page_count <= 0:
            return 0.0
        return min(self.current_page / self.page_count * 100.0, 100.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'title': self.title,
            'authors': list(self.authors),
            'isbn': self.isbn,
            'subtitle': self.subtitle,
            'publisher': self.publisher,
            'description': self.description,
            'page_count': self.page_count,
            'categories': list(self.categories),
            'language': self.language,
            'current_page': self.current_page,
            'reading_status': self.reading_status.value,
            'is_favorite': self.is_favorite,
            'user_rating': self.user_rating,
            'user_notes': self.user_notes,
            'date_added': format_datetime(self.date_added),
            'started_reading': format_datetime(self.started_reading),
            'finished_reading': format_datetime(self.finished_reading),
            'shared_with_partner': self.shared_with_partner,
            'last_modified_at': format_datetime(self.last_modified_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Book':
        page_count = data.get('page_count')
        rating = data.get('user_rating')
        return cls(
            id=str(_required(data, 'id')),
            owner_id=str(_required(data, 'owner_id')),
            title=str(_required(data, 'title')),
            authors=_string_list(data.get('authors')),
            isbn=data.get('isbn'),
            subtitle=data.get('subtitle'),
            publisher=data.get('publisher'),
            description=data.get('description'),
            page_count=int(page_count) if page_count is not None else None,
            categories=_string_list(data.get('categories')),
            language=data.get('language'),
            current_page=int(data.get('current_page') or 0),
            reading_status=ReadingStatus(data.get('reading_status') or ReadingStatus.NOT_STARTED.value),
            is_favorite=_flag(data, 'is_favorite'),
            user_rating=float(rating) if rating is not None else None,
            user_notes=data.get('user_notes'),
            date_added=parse_datetime(data.get('date_added')),
            started_reading=parse_datetime(data.get('started_reading')),
            finished_reading=parse_datetime(data.get('finished_reading')),
            shared_with_partner=_flag(data, 'shared_with_partner'),
            last_modified_at=parse_datetime(data.get('last_modified_at')),
        )


@dataclass
class BookCollection(SyncEntity):
    """A named shelf grouping books by id"""

    entity_type: ClassVar[EntityType] = EntityType.COLLECTION
    OR_FIELDS: ClassVar[Tuple[str, ...]] = ("shared_with_partner",)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = ""
    name: str = ""
    description: Optional[str] = None
    book_ids: List[str] = field(default_factory=list)
    is_default: bool = False
    shared_with_partner: bool = False
    sort_option: SortOption = SortOption.TITLE
    last_modified_at: Optional[datetime] = field(default_factory=utc_now)

    @property
    def book_count(self) -> int:
        return len(self.book_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'description': self.description,
            'book_ids': list(self.book_ids),
            'is_default': self.is_default,
            'shared_with_partner': self.shared_with_partner,
            'sort_option': self.sort_option.value,
            'last_modified_at': format_datetime(self.last_modified_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookCollection':
        return cls(
            id=str(_required(data, 'id')),
            owner_id=str(_required(data, 'owner_id')),
            name=str(_required(data, 'name')),
            description=data.get('description'),
            book_ids=_string_list(data.get('book_ids')),
            is_default=_flag(data, 'is_default'),
            shared_with_partner=_flag(data, 'shared_with_partner'),
            sort_option=SortOption(data.get('sort_option') or SortOption.TITLE.value),
            last_modified_at=parse_datetime(data.get('last_modified_at')),
        )


@dataclass
class ReadingActivity(SyncEntity):
    """One entry of the reading activity feed shown to the partner"""

    entity_type: ClassVar[EntityType] = EntityType.ACTIVITY

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = ""
    book_id: str = ""
    book_title: str = ""
    activity_type: ActivityType = ActivityType.ADDED_BOOK
    description: str = ""
    occurred_at: Optional[datetime] = field(default_factory=utc_now)
    last_modified_at: Optional[datetime] = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'book_id': self.book_id,
            'book_title': self.book_title,
            'activity_type': self.activity_type.value,
            'description': self.description,
            'occurred_at': format_datetime(self.occurred_at),
            'last_modified_at': format_datetime(self.last_modified_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ReadingActivity':
        return cls(
            id=str(_required(data, 'id')),
            owner_id=str(_required(data, 'owner_id')),
            book_id=str(_required(data, 'book_id')),
            book_title=str(data.get('book_title') or ""),
            activity_type=ActivityType(_required(data, 'activity_type')),
            description=str(data.get('description') or ""),
            occurred_at=parse_datetime(data.get('occurred_at')),
            last_modified_at=parse_datetime(data.get('last_modified_at')),
        )


@dataclass
class Partnership(SyncEntity):
    """Link between the user and their reading partner"""

    entity_type: ClassVar[EntityType] = EntityType.PARTNERSHIP
    OR_FIELDS: ClassVar[Tuple[str, ...]] = ("shared",)
    UNION_FIELDS: ClassVar[Tuple[str, ...]] = ("shared_book_ids",)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str = ""
    partner_id: str = ""
    status: PartnershipStatus = PartnershipStatus.PENDING
    shared: bool = False
    shared_book_ids: List[str] = field(default_factory=list)
    last_activity_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'partner_id': self.partner_id,
            'status': self.status.value,
            'shared': self.shared,
            'shared_book_ids': list(self.shared_book_ids),
            'last_activity_at': format_datetime(self.last_activity_at),
            'last_modified_at': format_datetime(self.last_modified_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Partnership':
        return cls(
            id=str(_required(data, 'id')),
            owner_id=str(_required(data, 'owner_id')),
            partner_id=str(_required(data, 'partner_id')),
            status=PartnershipStatus(data.get('status') or PartnershipStatus.PENDING.value),
            shared=_flag(data, 'shared'),
            shared_book_ids=_string_list(data.get('shared_book_ids')),
            last_activity_at=parse_datetime(data.get('last_activity_at')),
            last_modified_at=parse_datetime(data.get('last_modified_at')),
        )


ENTITY_CLASSES: Dict[EntityType, Type[SyncEntity]] = {
    EntityType.BOOK: Book,
    EntityType.COLLECTION: BookCollection,
    EntityType.ACTIVITY: ReadingActivity,
    EntityType.PARTNERSHIP: Partnership,
}


def entity_from_dict(entity_type: EntityType, data: Dict[str, Any]) -> SyncEntity:
    """
    Build an entity of the given type from its dictionary form.

    Raises:
        InvalidDataError: if the data does not describe a valid entity
    """
    entity_cls = ENTITY_CLASSES[entity_type]
    if not isinstance(data, dict):
        raise InvalidDataError(f"{entity_type.value} payload must be an object, got {type(data).__name__}")
    try:
        return entity_cls.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        raise InvalidDataError(f"Invalid {entity_type.value} payload: {e}") from e


@dataclass(frozen=True)
class MutationRecord:
    """
    One queued intent to change the remote store.

    Records are immutable once appended; `sequence` is assigned by the queue
    and defines the replay order.
    """
    operation_type: OperationType
    entity_type: EntityType
    entity_id: str
    owner_id: str
    payload: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    sequence: Optional[int] = None

    @classmethod
    def for_create(cls, entity: SyncEntity) -> 'MutationRecord':
        return cls(
            operation_type=OperationType.CREATE,
            entity_type=entity.entity_type,
            entity_id=entity.id,
            owner_id=entity.owner_id,
            payload=entity.to_json(),
        )

    @classmethod
    def for_update(cls, entity: SyncEntity) -> 'MutationRecord':
        return cls(
            operation_type=OperationType.UPDATE,
            entity_type=entity.entity_type,
            entity_id=entity.id,
            owner_id=entity.owner_id,
            payload=entity.to_json(),
        )

    @classmethod
    def for_delete(cls, entity_type: EntityType, entity_id: str, owner_id: str) -> 'MutationRecord':
        return cls(
            operation_type=OperationType.DELETE,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            payload=None,
        )

    def entity(self) -> SyncEntity:
        """Decode the payload snapshot into its declared entity type."""
        if self.payload is None:
            raise InvalidDataError(
                f"{self.operation_type.value} of {self.entity_type.value} {self.entity_id} has no payload",
                record_sequence=self.sequence,
            )
        try:
            data = json.loads(self.payload)
        except (TypeError, ValueError) as e:
            raise InvalidDataError(
                f"Payload of {self.entity_type.value} {self.entity_id} is not valid JSON: {e}",
                record_sequence=self.sequence,
            ) from e

        try:
            entity = entity_from_dict(self.entity_type, data)
        except InvalidDataError as e:
            e.record_sequence = self.sequence
            raise

        if entity.id != self.entity_id:
            raise InvalidDataError(
                f"Payload id {entity.id} does not match queued entity id {self.entity_id}",
                record_sequence=self.sequence,
            )
        return entity

    def describe(self) -> str:
        return f"#{self.sequence} {self.operation_type.value} {self.entity_type.value}:{self.entity_id}"


@dataclass
class DrainSummary:
    """Outcome of one pass over the pending queue"""
    applied: List[MutationRecord] = field(default_factory=list)
    failed_record: Optional[MutationRecord] = None
    error: Optional[Exception] = None
    remaining: int = 0

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def completed(self) -> bool:
        return self.error is None


@dataclass
class SyncErrorRecord:
    """Serializable description of a failure kept in the sync state"""
    code: str
    message: str
    occurred_at: datetime = field(default_factory=utc_now)
    record_sequence: Optional[int] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> 'SyncErrorRecord':
        code = getattr(exc, 'error_code', None) or exc.__class__.__name__
        return cls(
            code=code,
            message=str(exc) or exc.__class__.__name__,
            record_sequence=getattr(exc, 'record_sequence', None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'occurred_at': format_datetime(self.occurred_at),
            'record_sequence': self.record_sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncErrorRecord':
        return cls(
            code=data.get('code', SyncError.error_code),
            message=data.get('message', ''),
            occurred_at=parse_datetime(data.get('occurred_at')) or utc_now(),
            record_sequence=data.get('record_sequence'),
        )


@dataclass
class SyncState:
    """Process-wide sync metadata"""
    last_sync_at: Optional[datetime] = None
    is_syncing: bool = False
    recent_errors: List[SyncErrorRecord] = field(default_factory=list)

    def record_error(self, error: SyncErrorRecord, limit: int = 20):
        """Append an error, keeping only the newest `limit` entries"""
        self.recent_errors.append(error)
        if limit > 0 and len(self.recent_errors) > limit:
            del self.recent_errors[:-limit]


@dataclass
class SyncResult:
    """Value returned to the caller from one sync cycle"""
    success: bool
    last_sync_at: Optional[datetime] = None
    synced_count: int = 0
    reconciled_count: int = 0
    pending_count: int = 0
    errors: List[SyncErrorRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'last_sync_at': format_datetime(self.last_sync_at),
            'synced_count': self.synced_count,
            'reconciled_count': self.reconciled_count,
            'pending_count': self.pending_count,
            'errors': [error.to_dict() for error in self.errors],
        }
