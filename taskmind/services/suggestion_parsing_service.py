"""Suggestion Parsing Service: normalize an LLM reply into a task suggestion.

The reply is untrusted free text. It is reduced in four stages, each of which
either returns its result or raises a ``SuggestionParseError`` subclass:

    extract_payload -> decode_suggestion -> normalize_time_estimate
                                         -> validate_suggestion

The accepted payload is a JSON object with the snake_case keys ``title``,
``subtasks``, ``priority`` and ``time_estimate`` (a string such as "2",
"3 days", "6 hours" or "1 week"). Nothing here performs I/O.
"""

import enum
import json
import math
import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SuggestionParseError(Exception):
    """Base for every pipeline rejection.

    ``kind`` is the caller-facing category, ``reason`` the stage-specific
    cause. ``detail`` is a fixed message and never contains model text; the
    offending value, if any, is kept on ``value`` for logging only.
    """

    kind = "SuggestionParseFailed"

    def __init__(self, reason: str, detail: str, value: object = None):
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail
        self.value = value


class ExtractionError(SuggestionParseError):
    kind = "ExtractionFailed"
    UNCLOSED_BLOCK = "UnclosedBlock"


class DecodeError(SuggestionParseError):
    kind = "DecodeFailed"
    MALFORMED_JSON = "MalformedJSON"
    TYPE_MISMATCH = "TypeMismatch"


class TimeParseError(SuggestionParseError):
    kind = "TimeParseFailed"
    UNPARSEABLE = "Unparseable"
    UNKNOWN_UNIT = "UnknownUnit"


class ValidationError(SuggestionParseError):
    INVALID_PRIORITY = "InvalidPriority"
    INVALID_ESTIMATE = "InvalidEstimate"

    def __init__(self, reason: str, detail: str, value: object = None):
        super().__init__(reason, detail, value)
        # Each validation reason is reported as its own kind
        self.kind = reason


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class RawSuggestion:
    title: str = ""
    subtasks: tuple[str, ...] = ()
    priority: str = ""
    time_estimate: str = ""


@dataclass(frozen=True)
class FinalSuggestion:
    title: str
    subtasks: tuple[str, ...]
    priority: Priority
    time_estimate_days: float

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "subtasks": list(self.subtasks),
            "priority": self.priority.value,
            "time_estimate_days": self.time_estimate_days,
        }

    def to_model_reply(self) -> str:
        """Serialize back into the payload shape ``decode_suggestion`` accepts."""
        return json.dumps({
            "title": self.title,
            "subtasks": list(self.subtasks),
            "priority": self.priority.value,
            "time_estimate": repr(self.time_estimate_days),
        })


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

JSON_FENCE = "```json"
FENCE = "```"


def strip_trailing_commentary(candidate: str) -> str:
    """Cut everything after the last ``}`` of an object-looking candidate.

    Some models append prose after the JSON object, even inside the fence.
    Candidates that do not start with ``{`` are returned untouched.
    """
    if candidate.startswith("{") and "}" in candidate:
        return candidate[: candidate.rfind("}") + 1]
    return candidate


def extract_payload(text: str) -> str:
    """Isolate the JSON object embedded in a model reply.

    Prefers a ```json fence, then a bare ``` fence. Without any fence the
    whole trimmed reply is the candidate, returned as is.
    """
    start = text.find(JSON_FENCE)
    if start != -1:
        start += len(JSON_FENCE)
    else:
        start = text.find(FENCE)
        if start == -1:
            return text.strip()
        start += len(FENCE)

    end = text.find(FENCE, start)
    if end == -1:
        raise ExtractionError(
            ExtractionError.UNCLOSED_BLOCK,
            "code fence opened but never closed",
        )

    return strip_trailing_commentary(text[start:end].strip())


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


def _lookup(data: dict, key: str):
    """Return the value stored under ``key``, matching the key name case-insensitively.

    An exact match wins; otherwise the last key that matches ignoring case.
    """
    if key in data:
        return data[key]
    value = None
    for name, item in data.items():
        if name.lower() == key:
            value = item
    return value


def _string_field(data: dict, key: str) -> str:
    value = _lookup(data, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(
            DecodeError.TYPE_MISMATCH,
            f"'{key}' must be a string, got {type(value).__name__}",
        )
    return value


def _string_list_field(data: dict, key: str) -> tuple[str, ...]:
    value = _lookup(data, key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise DecodeError(
            DecodeError.TYPE_MISMATCH,
            f"'{key}' must be an array, got {type(value).__name__}",
        )
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise DecodeError(
                DecodeError.TYPE_MISMATCH,
                f"'{key}[{i}]' must be a string, got {type(item).__name__}",
            )
    return tuple(value)


def decode_suggestion(payload: str) -> RawSuggestion:
    """Decode an extracted payload into a ``RawSuggestion``.

    Missing or null keys fall back to empty values; unknown keys are ignored.
    Key names match regardless of case ("Priority" reads as "priority").
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(
            DecodeError.MALFORMED_JSON,
            f"invalid JSON at line {e.lineno} column {e.colno}: {e.msg}",
        ) from e

    if not isinstance(data, dict):
        raise DecodeError(
            DecodeError.TYPE_MISMATCH,
            f"expected a JSON object, got {type(data).__name__}",
        )

    return RawSuggestion(
        title=_string_field(data, "title"),
        subtasks=_string_list_field(data, "subtasks"),
        priority=_string_field(data, "priority"),
        time_estimate=_string_field(data, "time_estimate"),
    )


# ---------------------------------------------------------------------------
# Time Normalizer
# ---------------------------------------------------------------------------

_NUMBER = r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?"
_PLAIN_NUMBER_RE = re.compile(rf"^{_NUMBER}$")
_NUMBER_WITH_UNIT_RE = re.compile(rf"^({_NUMBER}) (\S+)$")


def normalize_time_estimate(raw: str) -> float:
    """Convert "2", "3 days", "6 hours" or "1 week" into days."""
    value = raw.strip()

    if _PLAIN_NUMBER_RE.match(value):
        days = float(value)
    else:
        match = _NUMBER_WITH_UNIT_RE.match(value)
        if match is None:
            raise TimeParseError(
                TimeParseError.UNPARSEABLE,
                "expected a number or '<number> <unit>'",
            )
        number = float(match.group(1))
        unit = match.group(2).lower()
        if unit in ("hour", "hours"):
            days = number / 24
        elif unit in ("day", "days"):
            days = number
        elif unit in ("week", "weeks"):
            days = number * 7
        else:
            raise TimeParseError(
                TimeParseError.UNKNOWN_UNIT,
                "time unit must be hours, days or weeks",
                value=unit,
            )

    if not math.isfinite(days):
        raise TimeParseError(TimeParseError.UNPARSEABLE, "time estimate is out of range")
    return days


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


def validate_suggestion(raw: RawSuggestion, estimate_days: float) -> FinalSuggestion:
    """Enforce the priority enumeration and assemble the final suggestion."""
    try:
        priority = Priority(raw.priority.lower())
    except ValueError:
        raise ValidationError(
            ValidationError.INVALID_PRIORITY,
            "priority must be low, medium or high",
            value=raw.priority,
        ) from None

    if estimate_days < 0:
        raise ValidationError(
            ValidationError.INVALID_ESTIMATE,
            "time estimate must not be negative",
            value=estimate_days,
        )

    return FinalSuggestion(
        title=raw.title,
        subtasks=raw.subtasks,
        priority=priority,
        time_estimate_days=estimate_days,
    )


def parse_suggestion(reply: str) -> FinalSuggestion:
    """Run a raw model reply through the whole pipeline."""
    raw = decode_suggestion(extract_payload(reply))
    return validate_suggestion(raw, normalize_time_estimate(raw.time_estimate))
