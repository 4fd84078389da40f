# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Data models for the class reminder and notification engine
"""
import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

# Fields captured in original_values by a temporary edit and restored by the revert job
SNAPSHOT_FIELDS = (
    'name',
    'code',
    'days',
    'start_time',
    'end_time',
    'day_times',
    'venue',
    'day_venues',
    'credit_hours',
    'index_from',
    'index_to',
    'rep_name',
)

NOTIFICATION_TYPE_REMINDER = 'lecture_reminder'
NOTIFICATION_TYPE_COURSE_UPDATE = 'course_update'


class EditKind(Enum):
    """How a session edit is persisted"""
    TEMPORARY = "temporary"
    PERMANENT = "permanent"


class PushErrorKind(Enum):
    """Why a push send failed"""
    UNREGISTERED = "unregistered"
    INVALID_ARGUMENT = "invalid_argument"
    SENDER_MISMATCH = "sender_mismatch"
    INVALID_TOKEN_FORMAT = "invalid_token_format"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAVAILABLE = "unavailable"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"

    @property
    def is_permanent(self) -> bool:
        """The registration will never accept a message again"""
        return self in (
            PushErrorKind.UNREGISTERED,
            PushErrorKind.INVALID_ARGUMENT,
            PushErrorKind.SENDER_MISMATCH,
            PushErrorKind.INVALID_TOKEN_FORMAT,
        )


@dataclass
class DayTimes:
    """Start/end wall-clock strings for one weekday, e.g. "9:00 AM" or "14:30" """
    start_time: Optional[str] = None
    end_time: Optional[str] = None


@dataclass
class RecurringSession:
    """A weekly course meeting pattern"""
    id: str
    course_id: Optional[str] = None
    name: str = ''
    code: str = ''
    days: List[str] = field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    day_times: Dict[str, DayTimes] = field(default_factory=dict)
    venue: Optional[str] = None
    day_venues: Dict[str, str] = field(default_factory=dict)
    credit_hours: Optional[int] = None
    index_from: Optional[str] = None
    index_to: Optional[str] = None
    rep_name: Optional[str] = None
    temporary_edit_expiry: Optional[datetime] = None
    original_values: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.course_id is None:
            self.course_id = self.id

    @property
    def has_temporary_edit(self) -> bool:
        return self.temporary_edit_expiry is not None

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of every revertable field"""
        return {name: copy.deepcopy(getattr(self, name)) for name in SNAPSHOT_FIELDS}

    def with_values(self, values: Dict[str, Any]) -> 'RecurringSession':
        """Copy of this session with the given revertable fields replaced"""
        unknown = set(values) - set(SNAPSHOT_FIELDS)
        if unknown:
            raise ValueError(f"Not a revertable session field: {', '.join(sorted(unknown))}")
        return replace(self, **copy.deepcopy(values))

    def reverted(self) -> 'RecurringSession':
        """Session restored from original_values with the temporary edit cleared"""
        if not self.original_values:
            raise ValueError(f"Session {self.id} has no original values to revert to")
        restored = self.with_values(self.original_values)
        restored.temporary_edit_expiry = None
        restored.original_values = None
        return restored


@dataclass
class DeviceRegistration:
    """One installed app instance able to receive push"""
    token: str
    platform: str = 'unknown'
    is_active: bool = True


@dataclass
class ReminderRecipient:
    user_id: str
    name: str = ''
    lead_minutes: int = 15
    sound: str = 'default'
    devices: List[DeviceRegistration] = field(default_factory=list)
    phone_number: Optional[str] = None
    notifications_enabled: bool = True
    has_active_access: bool = False

    @property
    def display_name(self) -> str:
        return self.name or 'Student'

    @property
    def active_devices(self) -> List[DeviceRegistration]:
        return [d for d in self.devices if d.is_active]


@dataclass
class NotificationIntent:
    """
    One logical notification to fan out.

    Bodies may contain a "{name}" placeholder which is replaced with the
    recipient's display name. push_body and sms_body fall back to body.
    """
    title: str
    body: str
    type: str
    course_id: Optional[str] = None
    session_id: Optional[str] = None
    push_body: Optional[str] = None
    sms_body: Optional[str] = None
    payload: Dict[str, str] = field(default_factory=dict)
    sms_eligible: bool = False

    def render(self, template: Optional[str], recipient: ReminderRecipient) -> str:
        return (template or self.body).replace('{name}', recipient.display_name)

    def in_app_text(self, recipient: ReminderRecipient) -> str:
        return self.render(self.body, recipient)

    def push_text(self, recipient: ReminderRecipient) -> str:
        return self.render(self.push_body, recipient)

    def sms_text(self, recipient: ReminderRecipient) -> str:
        return self.render(self.sms_body, recipient)


@dataclass
class NotificationRecord:
    """An in-app notification row"""
    user_id: str
    title: str
    message: str
    type: str
    course_id: Optional[str] = None


@dataclass
class ChangeEntry:
    field: str
    old: Any
    new: Any
    message: str


@dataclass
class ChangeSet:
    """Ordered field-level diff between two versions of a session"""
    entries: List[ChangeEntry] = field(default_factory=list)
    is_cancelled: bool = False
    is_urgent: bool = False
    next_occurrence: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self.entries]

    @property
    def fields(self) -> List[str]:
        return [entry.field for entry in self.entries]

    def new_values(self) -> Dict[str, Any]:
        """Flattened model-field -> new value for every entry"""
        values = {}
        for entry in self.entries:
            if isinstance(entry.new, dict) and entry.field in COMPOSITE_FIELDS:
                values.update(entry.new)
            else:
                values[entry.field] = entry.new
        return values

    def apply_to(self, session: RecurringSession) -> RecurringSession:
        """Apply every new value onto session"""
        return session.with_values(self.new_values())


# Change entries that cover more than one model field
COMPOSITE_FIELDS = {
    'times': ('start_time', 'end_time', 'day_times'),
    'venue': ('venue', 'day_venues'),
    'index_range': ('index_from', 'index_to'),
}


@dataclass
class PushResult:
    token: str
    ok: bool
    message_id: Optional[str] = None
    error_kind: Optional[PushErrorKind] = None
    error: Optional[str] = None

    @property
    def should_deactivate(self) -> bool:
        return not self.ok and self.error_kind is not None and self.error_kind.is_permanent


@dataclass
class SmsResult:
    ok: bool
    provider_message: Optional[str] = None
    configured: bool = True
    phone_number: Optional[str] = None  # as sent, after cleaning


@dataclass
class RecipientOutcome:
    """Per-recipient, per-channel result of one dispatch"""
    user_id: str
    in_app: bool = False
    push_sent: int = 0
    push_failed: int = 0
    push_skipped: Optional[str] = None
    sms: Optional[str] = None  # sent, failed, limit_exceeded, or None when not attempted
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.in_app or self.push_sent > 0


@dataclass
class DispatchReport:
    """Aggregate counts for a dispatch; never raised, always returned"""
    kind: str
    recipients: int = 0
    in_app_written: int = 0
    push_sent: int = 0
    push_failed: int = 0
    sms_sent: int = 0
    sms_failed: int = 0
    sms_limited: int = 0
    tokens_to_deactivate: List[str] = field(default_factory=list)
    outcomes: List[RecipientOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.in_app_written > 0 or self.push_sent > 0 or self.sms_sent > 0

    def outcome_for(self, user_id: str) -> Optional[RecipientOutcome]:
        for outcome in self.outcomes:
            if outcome.user_id == user_id:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'recipients': self.recipients,
            'in_app_written': self.in_app_written,
            'push_sent': self.push_sent,
            'push_failed': self.push_failed,
            'sms_sent': self.sms_sent,
            'sms_failed': self.sms_failed,
            'sms_limited': self.sms_limited,
            'tokens_to_deactivate': list(self.tokens_to_deactivate),
        }
