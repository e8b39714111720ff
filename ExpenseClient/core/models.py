"""Expense records, pending mutations and input normalization.

Records and mutations are persisted as JSON, so both types convert to and from
the camelCase dictionaries the expense service speaks.
"""
import dataclasses
import datetime
import enum
import logging
import random
import string
import time
from typing import Any, Dict, List, Optional

from ..status import status

LOCAL_ID_PREFIX: str = 'local_'
QUEUE_ID_PREFIX: str = 'pending_'

DATE_FORMAT: str = '%Y-%m-%d'
DESCRIPTION_MAX_LENGTH: int = 200


class MutationType(enum.StrEnum):
    """Kinds of mutation that can wait in the pending queue."""
    Create = 'CREATE'
    Update = 'UPDATE'
    Delete = 'DELETE'


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _random_suffix(length: int = 9) -> str:
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


def new_local_id() -> str:
    """Generate a temporary id for a record that only exists locally.

    Returns:
        str: An id of the form ``local_<epoch-ms>_<random>``.
    """
    return f'{LOCAL_ID_PREFIX}{int(time.time() * 1000)}_{_random_suffix()}'


def new_queue_id() -> str:
    return f'{QUEUE_ID_PREFIX}{int(time.time() * 1000)}_{_random_suffix()}'


def is_local_id(record_id: Any) -> bool:
    """Check whether an id was generated locally and never reached the service."""
    return isinstance(record_id, str) and record_id.startswith(LOCAL_ID_PREFIX)


@dataclasses.dataclass
class ExpenseRecord:
    """One expense transaction, confirmed by the service or pending creation."""
    id: str
    amount: float
    category: str
    description: str
    date: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_local: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExpenseRecord':
        """Build a record from a service or storage payload.

        Args:
            data: Mapping using the service's camelCase keys.

        Returns:
            ExpenseRecord: The record.

        Raises:
            KeyError: If ``id`` is missing.
        """
        amount = data.get('amount', 0.0)
        try:
            amount = round(float(amount), 2)
        except (TypeError, ValueError):
            logging.debug(f'Failed to parse amount "{amount}" for record "{data.get("id")}". Storing 0.0.')
            amount = 0.0

        return cls(
            id=str(data['id']),
            amount=amount,
            category=str(data.get('category', '')),
            description=str(data.get('description', '')),
            date=str(data.get('date', ''))[:10],
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            is_local=bool(data.get('_isLocal', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
            'date': self.date,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.is_local:
            data['_isLocal'] = True
        return data

    def payload(self) -> Dict[str, Any]:
        """The fields the service accepts on create and update."""
        return {
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
            'date': self.date,
        }


@dataclasses.dataclass
class PendingMutation:
    """A mutation applied locally and waiting to be replayed against the service.

    ``ref_id`` is the id of the target record. For a CREATE it holds the temporary
    local id of the record the mutation created, which lets a local delete find and
    cancel the CREATE before it is ever sent.
    """
    type: MutationType
    data: Optional[Dict[str, Any]] = None
    ref_id: Optional[str] = None
    queue_id: Optional[str] = None
    enqueued_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingMutation':
        return cls(
            type=MutationType(data['type']),
            data=data.get('data'),
            ref_id=data.get('refId'),
            queue_id=data.get('queueId'),
            enqueued_at=data.get('enqueuedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'data': self.data,
            'refId': self.ref_id,
            'queueId': self.queue_id,
            'enqueuedAt': self.enqueued_at,
        }


@dataclasses.dataclass
class ExpenseFilters:
    """Optional filters for reading expenses. Dates are inclusive ISO dates."""
    category: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.category or self.date_from or self.date_to)

    def to_params(self) -> Dict[str, str]:
        """Query parameters understood by the service."""
        params: Dict[str, str] = {}
        if self.category:
            params['category'] = self.category
        if self.date_from:
            params['dateFrom'] = self.date_from
        if self.date_to:
            params['dateTo'] = self.date_to
        return params

    def matches(self, record: ExpenseRecord) -> bool:
        if self.category and record.category != self.category:
            return False
        if self.date_from and record.date < self.date_from:
            return False
        if self.date_to and record.date > self.date_to:
            return False
        return True

    def apply(self, records: List[ExpenseRecord]) -> List[ExpenseRecord]:
        if self.is_empty():
            return list(records)
        return [r for r in records if self.matches(r)]


def _parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value).strip()[:10])
    except ValueError as ex:
        raise status.ExpenseInvalidException(f'Date "{value}" is not a valid ISO date.') from ex


def normalize_expense(expense: Dict[str, Any], categories: List[str]) -> Dict[str, Any]:
    """Normalize raw expense input into the payload sent to the service.

    The amount is parsed as a float and rounded to 2 places, an empty description
    becomes ``"<category> Expense"`` and a missing date defaults to today.

    Args:
        expense: Raw input with ``amount``, ``category`` and optional ``description`` and ``date``.
        categories: Allowed category labels.

    Returns:
        Dict[str, Any]: The normalized payload.

    Raises:
        status.ExpenseInvalidException: If the input cannot be normalized.
    """
    try:
        amount = round(float(expense.get('amount')), 2)
    except (TypeError, ValueError) as ex:
        raise status.ExpenseInvalidException(f'Amount "{expense.get("amount")}" is not a number.') from ex
    if amount <= 0:
        raise status.ExpenseInvalidException(f'Amount must be greater than 0, got {amount}.')

    category = expense.get('category')
    if category not in categories:
        raise status.ExpenseInvalidException(f'"{category}" is not a valid category.')

    description = (expense.get('description') or '').strip() or f'{category} Expense'
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise status.ExpenseInvalidException(
            f'Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters.'
        )

    raw_date = expense.get('date')
    date = _parse_date(raw_date) if raw_date else datetime.date.today()
    if date > datetime.date.today():
        raise status.ExpenseInvalidException(f'Date {date.isoformat()} cannot be in the future.')

    return {
        'amount': amount,
        'category': category,
        'description': description,
        'date': date.strftime(DATE_FORMAT),
    }
