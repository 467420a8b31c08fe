"""Journey document model: typed tree, validation and read-view helpers.

A journey is a strictly tree-shaped document::

    Journey -> Stage -> Touchpoint -> Action
            -> PerformanceIndicator

Nested entities have no identity of their own. They are addressed by their
position in the parent array and live and die with that array.

``validate`` never raises. It walks a candidate depth-first (root to leaves,
array indices ascending, fields in declaration order) and collects every
problem as a ``FieldError``, so a caller can show them all in one pass. An
array's own "at least one" error comes before the errors of its elements.

Numeric scores are coerced leniently: a value that cannot be parsed counts as
``0`` before the range check, the same way the form input treats it. Pass
``strict_numbers=True`` to report unparsable values instead.
"""
from __future__ import annotations

import math
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SCORE_MIN = 0
SCORE_MAX = 100

# FieldError kinds
SHAPE = "shape"
RANGE = "range"
VALUE = "value"


class CompassTag(str, Enum):
    COGNITIVE = "cognitive"
    ORCHESTRATED = "orchestrated"
    MEMORABLE = "memorable"
    PERCEIVED = "perceived"
    ACTIVATE = "activate"
    SOCIAL = "social"
    SITUATIONAL = "situational"


class ActionType(str, Enum):
    CUSTOMER = "customer"
    BACKOFFICE = "backoffice"


COMPASS_TAGS = tuple(t.value for t in CompassTag)
ACTION_TYPES = tuple(t.value for t in ActionType)

# Offered as defaults in the editor; stage names are free text.
STAGE_NAME_SUGGESTIONS = ("awareness", "consideration", "quote")

DEFAULT_TOUCHPOINT_TYPE = "Digital"
DEFAULT_INDICATOR_NAME = "Conversion"


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> int | None:
    """Parse *value* the way a number input does; ``None`` if unparsable.

    Strings keep their leading integer prefix (``"42%"`` -> 42), floats are
    truncated, booleans and everything else are unparsable.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _INT_PREFIX.match(value)
        return int(m.group(1)) if m else None
    return None


def coerce_score(value: Any) -> int:
    parsed = parse_int(value)
    return 0 if parsed is None else parsed


def clamp_score(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _optional_text(value: Any) -> str | None:
    return None if value is None else _text(value)


def _duration_text(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return f"{value:g}"
    return value


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, Mapping)]


# ---------------------------------------------------------------------------
# Document tree
# ---------------------------------------------------------------------------


@dataclass
class Action:
    title: str = ""
    description: str = ""
    image_url: str | None = None
    type: str = ActionType.CUSTOMER.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title, "description": self.description,
            "imageUrl": self.image_url, "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Action:
        return cls(
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            image_url=_optional_text(data.get("imageUrl")),
            type=_text(data.get("type") or ActionType.CUSTOMER.value),
        )


@dataclass
class Touchpoint:
    title: str = ""
    type: str = DEFAULT_TOUCHPOINT_TYPE
    duration: str = ""
    comment: str | None = None
    compass_tags: list[str] = field(default_factory=list)
    actions: list[Action] = field(default_factory=lambda: [Action()])

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title, "type": self.type, "duration": self.duration,
            "comment": self.comment, "compassTags": list(self.compass_tags),
            "actions": [a.to_dict() for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Touchpoint:
        tags = data.get("compassTags") or []
        return cls(
            title=_text(data.get("title")),
            type=_text(data.get("type")),
            duration=_text(_duration_text(data.get("duration"))),
            comment=_optional_text(data.get("comment")),
            compass_tags=[_text(t) for t in tags] if isinstance(tags, list) else [],
            actions=[Action.from_dict(a) for a in _mappings(data.get("actions"))],
        )


@dataclass
class Stage:
    name: str = STAGE_NAME_SUGGESTIONS[0]
    description: str = ""
    touchpoints: list[Touchpoint] = field(default_factory=lambda: [Touchpoint()])

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name, "description": self.description,
            "touchpoints": [t.to_dict() for t in self.touchpoints],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Stage:
        return cls(
            name=_text(data.get("name")),
            description=_text(data.get("description")),
            touchpoints=[Touchpoint.from_dict(t) for t in _mappings(data.get("touchpoints"))],
        )


@dataclass
class PerformanceIndicator:
    name: str = ""
    value: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PerformanceIndicator:
        return cls(name=_text(data.get("name")), value=coerce_score(data.get("value")))


@dataclass
class Journey:
    """Root aggregate. ``id`` and timestamps belong to the store, not here."""

    title: str = ""
    nps_score: int = 0
    customer_sentiment: int = 0
    key_insight: str = ""
    performance_indicators: list[PerformanceIndicator] = field(
        default_factory=lambda: [PerformanceIndicator(name=DEFAULT_INDICATOR_NAME)]
    )
    stages: list[Stage] = field(default_factory=lambda: [Stage()])

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "npsScore": self.nps_score,
            "customerSentiment": self.customer_sentiment,
            "keyInsight": self.key_insight,
            "performanceIndicators": [p.to_dict() for p in self.performance_indicators],
            "stages": [s.to_dict() for s in self.stages],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Journey:
        """Build a draft from a stored document, ignoring store-owned keys."""
        return cls(
            title=_text(data.get("title")),
            nps_score=coerce_score(data.get("npsScore")),
            customer_sentiment=coerce_score(data.get("customerSentiment")),
            key_insight=_text(data.get("keyInsight")),
            performance_indicators=[
                PerformanceIndicator.from_dict(p) for p in _mappings(data.get("performanceIndicators"))
            ],
            stages=[Stage.from_dict(s) for s in _mappings(data.get("stages"))],
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldError:
    path: str
    message: str
    kind: str = VALUE

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message, "kind": self.kind}


@dataclass
class ValidationResult:
    journey: Journey | None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _key(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _chars(n: int) -> str:
    return "character" if n == 1 else "characters"


class _Checker:
    def __init__(self, strict_numbers: bool):
        self.strict_numbers = strict_numbers
        self.errors: list[FieldError] = []

    def fail(self, path: str, message: str, kind: str = VALUE) -> None:
        self.errors.append(FieldError(path, message, kind))

    # -- leaves --------------------------------------------------------------

    def text(self, path: str, value: Any, label: str, *, min_len: int = 0,
             optional: bool = False) -> str | None:
        if value is None:
            if not optional:
                self.fail(path, f"{label} is required")
            return None
        if not isinstance(value, str):
            self.fail(path, f"{label} must be a string")
            return None
        if len(value) < min_len:
            if value == "":
                self.fail(path, f"{label} is required")
            else:
                self.fail(path, f"{label} must be at least {min_len} {_chars(min_len)}")
        return value

    def score(self, path: str, value: Any, label: str) -> int:
        parsed = parse_int(value)
        if parsed is None:
            if self.strict_numbers:
                self.fail(path, f"{label} must be a whole number")
                return 0
            parsed = 0
        if not SCORE_MIN <= parsed <= SCORE_MAX:
            self.fail(path, f"{label} must be between {SCORE_MIN} and {SCORE_MAX}", RANGE)
        return parsed

    def choice(self, path: str, value: Any, label: str, allowed: tuple[str, ...]) -> str:
        if not isinstance(value, str) or value not in allowed:
            self.fail(path, f"{label} must be one of: {', '.join(allowed)}")
            return allowed[0]
        return value

    # -- arrays --------------------------------------------------------------

    def elements(self, data: Mapping[str, Any], key: str, path: str,
                 empty_message: str) -> Iterator[tuple[str, Mapping[str, Any]]]:
        p = _key(path, key)
        value = data.get(key)
        if value is None or (isinstance(value, list) and not value):
            self.fail(p, empty_message, SHAPE)
            return
        if not isinstance(value, list):
            self.fail(p, f"{key} must be a list", SHAPE)
            return
        for i, item in enumerate(value):
            ip = f"{p}[{i}]"
            if not isinstance(item, Mapping):
                self.fail(ip, "Must be an object", SHAPE)
                continue
            yield ip, item

    def compass_tags(self, data: Mapping[str, Any], path: str) -> list[str]:
        p = _key(path, "compassTags")
        value = data.get("compassTags")
        if value is None:
            return []
        if not isinstance(value, list):
            self.fail(p, "Compass tags must be a list", SHAPE)
            return []
        tags: list[str] = []
        duplicates: list[str] = []
        for i, tag in enumerate(value):
            if not isinstance(tag, str) or tag not in COMPASS_TAGS:
                self.fail(f"{p}[{i}]", f"Unknown compass tag {tag!r}")
                continue
            if tag in tags:
                if tag not in duplicates:
                    duplicates.append(tag)
                continue
            tags.append(tag)
        for tag in duplicates:
            self.fail(p, f"Duplicate compass tag {tag!r}")
        return tags

    # -- nodes ---------------------------------------------------------------

    def journey(self, data: Any) -> Journey | None:
        if not isinstance(data, Mapping):
            self.fail("", "Journey must be an object", SHAPE)
            return None
        title = self.text("title", data.get("title"), "Title", min_len=1)
        nps = self.score("npsScore", data.get("npsScore"), "NPS score")
        sentiment = self.score("customerSentiment", data.get("customerSentiment"), "Customer sentiment")
        insight = self.text("keyInsight", data.get("keyInsight"), "Key insight", min_len=10)
        indicators = [
            self.indicator(p, item) for p, item in self.elements(
                data, "performanceIndicators", "", "At least one performance indicator is required")
        ]
        stages = [
            self.stage(p, item) for p, item in self.elements(
                data, "stages", "", "At least one stage is required")
        ]
        return Journey(
            title=title or "", nps_score=nps, customer_sentiment=sentiment,
            key_insight=insight or "", performance_indicators=indicators, stages=stages,
        )

    def indicator(self, path: str, data: Mapping[str, Any]) -> PerformanceIndicator:
        name = self.text(_key(path, "name"), data.get("name"), "Name", min_len=2)
        value = self.score(_key(path, "value"), data.get("value"), "Value")
        return PerformanceIndicator(name=name or "", value=value)

    def stage(self, path: str, data: Mapping[str, Any]) -> Stage:
        name = self.text(_key(path, "name"), data.get("name"), "Stage name")
        description = self.text(_key(path, "description"), data.get("description"), "Description", min_len=10)
        touchpoints = [
            self.touchpoint(p, item) for p, item in self.elements(
                data, "touchpoints", path, "At least one touchpoint is required")
        ]
        return Stage(name=name or "", description=description or "", touchpoints=touchpoints)

    def touchpoint(self, path: str, data: Mapping[str, Any]) -> Touchpoint:
        title = self.text(_key(path, "title"), data.get("title"), "Title", min_len=2)
        kind = self.text(_key(path, "type"), data.get("type"), "Type", min_len=2)
        duration = self.text(_key(path, "duration"), _duration_text(data.get("duration")), "Duration", min_len=1)
        comment = self.text(_key(path, "comment"), data.get("comment"), "Comment", optional=True)
        tags = self.compass_tags(data, path)
        actions = [
            self.action(p, item) for p, item in self.elements(
                data, "actions", path, "At least one action is required")
        ]
        return Touchpoint(
            title=title or "", type=kind or "", duration=duration or "",
            comment=comment, compass_tags=tags, actions=actions,
        )

    def action(self, path: str, data: Mapping[str, Any]) -> Action:
        title = self.text(_key(path, "title"), data.get("title"), "Title", min_len=2)
        description = self.text(_key(path, "description"), data.get("description"), "Description", min_len=10)
        image_url = self.text(_key(path, "imageUrl"), data.get("imageUrl"), "Image URL", optional=True)
        kind = self.choice(_key(path, "type"), data.get("type"), "Action type", ACTION_TYPES)
        return Action(title=title or "", description=description or "", image_url=image_url, type=kind)


def validate(candidate: Any, *, strict_numbers: bool = False) -> ValidationResult:
    """Validate a wire-shaped journey document.

    Returns the parsed ``Journey`` when there are no errors, otherwise
    ``journey`` is ``None`` and ``errors`` lists every problem in walk order.
    Store-owned keys (``id``, ``createdAt``, ``updatedAt``) are ignored.
    """
    checker = _Checker(strict_numbers)
    journey = checker.journey(candidate)
    if checker.errors:
        return ValidationResult(journey=None, errors=checker.errors)
    return ValidationResult(journey=journey)


# ---------------------------------------------------------------------------
# Read-view helpers
# ---------------------------------------------------------------------------


def actions_by_type(touchpoint: Touchpoint) -> dict[str, list[Action]]:
    """Partition actions into the customer / backoffice tabs."""
    grouped: dict[str, list[Action]] = {t: [] for t in ACTION_TYPES}
    for action in touchpoint.actions:
        grouped.setdefault(action.type, []).append(action)
    return grouped


def find_stage(journey: Journey, name: str) -> Stage | None:
    """First stage whose name matches *name*, ignoring case and padding."""
    wanted = name.strip().casefold()
    return next((s for s in journey.stages if s.name.strip().casefold() == wanted), None)


def stage_names(journey: Journey) -> list[str]:
    return [s.name for s in journey.stages]
