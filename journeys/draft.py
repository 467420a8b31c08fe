"""Journey form state: an explicitly owned, mutable draft and its edit operations.

A ``JourneyDraftController`` owns exactly one draft ``Journey``. Structural
edits never leave a required array empty: removing the last stage,
touchpoint, action or performance indicator is rejected with a warning and
the draft stays as it was. Every add seeds the new element with default
children, so the draft always has the right *shape* even while its text
fields are still blank.

Scalar edits go through ``set_field`` with a typed path (``JourneyField``,
``IndicatorField``, ``StageField``, ``TouchpointField``, ``ActionField``)
instead of a free-form string.

The controller also keeps which sections are expanded in the editor. New
sections start expanded; this is display bookkeeping and never part of the
submitted document.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Union

from journeys.auth import is_admin
from journeys.config import settings
from journeys.document import (
    Action,
    CompassTag,
    FieldError,
    Journey,
    PerformanceIndicator,
    Stage,
    Touchpoint,
    clamp_score,
    coerce_score,
    validate,
)
from journeys.errors import NotFoundError, TransportError, ValidationError
from journeys.store import JourneyStore

log = logging.getLogger(__name__)

MIN_INDICATORS_MESSAGE = "You need at least one performance indicator"
MIN_STAGES_MESSAGE = "You need at least one stage"
MIN_TOUCHPOINTS_MESSAGE = "You need at least one touchpoint per stage"
MIN_ACTIONS_MESSAGE = "You need at least one action per touchpoint"


# ---------------------------------------------------------------------------
# Field paths
# ---------------------------------------------------------------------------

JourneyFieldName = Literal["title", "npsScore", "customerSentiment", "keyInsight"]
IndicatorFieldName = Literal["name", "value"]
StageFieldName = Literal["name", "description"]
TouchpointFieldName = Literal["title", "type", "duration", "comment"]
ActionFieldName = Literal["title", "description", "imageUrl", "type"]


@dataclass(frozen=True)
class JourneyField:
    name: JourneyFieldName

    def render(self) -> str:
        return self.name


@dataclass(frozen=True)
class IndicatorField:
    index: int
    name: IndicatorFieldName

    def render(self) -> str:
        return f"performanceIndicators[{self.index}].{self.name}"


@dataclass(frozen=True)
class StageField:
    stage: int
    name: StageFieldName

    def render(self) -> str:
        return f"stages[{self.stage}].{self.name}"


@dataclass(frozen=True)
class TouchpointField:
    stage: int
    touchpoint: int
    name: TouchpointFieldName

    def render(self) -> str:
        return f"stages[{self.stage}].touchpoints[{self.touchpoint}].{self.name}"


@dataclass(frozen=True)
class ActionField:
    stage: int
    touchpoint: int
    action: int
    name: ActionFieldName

    def render(self) -> str:
        return f"stages[{self.stage}].touchpoints[{self.touchpoint}].actions[{self.action}].{self.name}"


FieldPath = Union[JourneyField, IndicatorField, StageField, TouchpointField, ActionField]

# wire name -> (attribute, kind)
_JOURNEY_ATTRS = {
    "title": ("title", "text"), "npsScore": ("nps_score", "score"),
    "customerSentiment": ("customer_sentiment", "score"), "keyInsight": ("key_insight", "text"),
}
_INDICATOR_ATTRS = {"name": ("name", "text"), "value": ("value", "score")}
_STAGE_ATTRS = {"name": ("name", "text"), "description": ("description", "text")}
_TOUCHPOINT_ATTRS = {
    "title": ("title", "text"), "type": ("type", "text"),
    "duration": ("duration", "text"), "comment": ("comment", "optional"),
}
_ACTION_ATTRS = {
    "title": ("title", "text"), "description": ("description", "text"),
    "imageUrl": ("image_url", "optional"), "type": ("type", "text"),
}


def _position(items: list, index: int) -> int:
    """Resolve a possibly negative index; raises ``IndexError`` when out of range."""
    return range(len(items))[index]


def _coerce(kind: str, value: Any) -> Any:
    if kind == "score":
        return clamp_score(coerce_score(value))
    if value is None:
        return None if kind == "optional" else ""
    return value if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# Notifications & results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Notice:
    level: str  # "success" | "warning" | "error"
    message: str


Notifier = Callable[[Notice], None]


def log_notice(notice: Notice) -> None:
    level = {"success": logging.INFO, "warning": logging.WARNING}.get(notice.level, logging.ERROR)
    log.log(level, "%s", notice.message)


@dataclass
class SubmitResult:
    ok: bool
    errors: list[FieldError] = field(default_factory=list)
    document: dict[str, Any] | None = None
    message: str = ""


class ImageUploader(Protocol):
    async def upload_image(self, data: bytes, filename: str = ...,
                           content_type: str = ...) -> dict[str, str]: ...


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class JourneyDraftController:
    def __init__(
        self,
        store: JourneyStore | None = None,
        notifier: Notifier | None = None,
        *,
        journey: Journey | None = None,
        journey_id: str | None = None,
        strict_numbers: bool | None = None,
    ):
        self.store = store
        self.notifier = notifier or log_notice
        self.draft = journey or Journey()
        self.journey_id = journey_id
        self.strict_numbers = settings.STRICT_NUMBERS if strict_numbers is None else strict_numbers
        self.errors: list[FieldError] = []
        self._expanded: set[tuple[int, ...]] = set()

    # -- helpers -------------------------------------------------------------

    @property
    def editing(self) -> bool:
        return self.journey_id is not None

    def _notify(self, level: str, message: str) -> None:
        self.notifier(Notice(level, message))

    def _reject(self, message: str) -> bool:
        self._notify("warning", message)
        return False

    def _stage(self, stage_index: int) -> Stage:
        return self.draft.stages[stage_index]

    def _touchpoint(self, stage_index: int, touchpoint_index: int) -> Touchpoint:
        return self.draft.stages[stage_index].touchpoints[touchpoint_index]

    def _touchpoint_position(self, stage_index: int, touchpoint_index: int) -> tuple[int, int]:
        stage_index = _position(self.draft.stages, stage_index)
        return stage_index, _position(self._stage(stage_index).touchpoints, touchpoint_index)

    def reset(self) -> None:
        """Back to an empty create-mode draft."""
        self.draft = Journey()
        self.journey_id = None
        self.errors = []
        self._expanded.clear()

    def to_document(self) -> dict[str, Any]:
        return self.draft.to_dict()

    # -- expanded sections ---------------------------------------------------

    @staticmethod
    def section_key(*indices: int) -> str:
        """``stage-0``, ``stage-0-touchpoint-1``, ``stage-0-touchpoint-1-action-2``."""
        labels = ("stage", "touchpoint", "action")
        return "-".join(f"{label}-{i}" for label, i in zip(labels, indices))

    def is_expanded(self, *indices: int) -> bool:
        return tuple(indices) in self._expanded

    def toggle_section(self, *indices: int) -> bool:
        key = tuple(indices)
        if key in self._expanded:
            self._expanded.discard(key)
            return False
        self._expanded.add(key)
        return True

    def expanded_sections(self) -> list[str]:
        return sorted(self.section_key(*k) for k in self._expanded)

    def _expand_subtree(self, *indices: int) -> None:
        self._expanded.add(indices)
        if len(indices) == 1:
            for t in range(len(self._stage(indices[0]).touchpoints)):
                self._expand_subtree(indices[0], t)
        elif len(indices) == 2:
            for a in range(len(self._touchpoint(*indices).actions)):
                self._expanded.add((*indices, a))

    def _drop_expanded(self, parent: tuple[int, ...], removed: int) -> None:
        """Forget the removed subtree and shift later siblings down by one."""
        depth = len(parent)
        updated: set[tuple[int, ...]] = set()
        for key in self._expanded:
            if len(key) > depth and key[:depth] == parent:
                idx = key[depth]
                if idx == removed:
                    continue
                if idx > removed:
                    key = (*parent, idx - 1, *key[depth + 1:])
            updated.add(key)
        self._expanded = updated

    # -- performance indicators ----------------------------------------------

    def add_performance_indicator(self) -> int:
        self.draft.performance_indicators.append(PerformanceIndicator())
        return len(self.draft.performance_indicators) - 1

    def remove_performance_indicator(self, index: int) -> bool:
        indicators = self.draft.performance_indicators
        if len(indicators) <= 1:
            return self._reject(MIN_INDICATORS_MESSAGE)
        index = _position(indicators, index)
        del indicators[index]
        return True

    # -- stages --------------------------------------------------------------

    def add_stage(self) -> int:
        self.draft.stages.append(Stage())
        index = len(self.draft.stages) - 1
        self._expand_subtree(index)
        return index

    def remove_stage(self, index: int) -> bool:
        if len(self.draft.stages) <= 1:
            return self._reject(MIN_STAGES_MESSAGE)
        index = _position(self.draft.stages, index)
        del self.draft.stages[index]
        self._drop_expanded((), index)
        return True

    # -- touchpoints ---------------------------------------------------------

    def add_touchpoint(self, stage_index: int) -> int:
        stage_index = _position(self.draft.stages, stage_index)
        touchpoints = self._stage(stage_index).touchpoints
        touchpoints.append(Touchpoint())
        index = len(touchpoints) - 1
        self._expand_subtree(stage_index, index)
        return index

    def remove_touchpoint(self, stage_index: int, touchpoint_index: int) -> bool:
        stage_index = _position(self.draft.stages, stage_index)
        touchpoints = self._stage(stage_index).touchpoints
        if len(touchpoints) <= 1:
            return self._reject(MIN_TOUCHPOINTS_MESSAGE)
        touchpoint_index = _position(touchpoints, touchpoint_index)
        del touchpoints[touchpoint_index]
        self._drop_expanded((stage_index,), touchpoint_index)
        return True

    # -- actions -------------------------------------------------------------

    def add_action(self, stage_index: int, touchpoint_index: int) -> int:
        stage_index, touchpoint_index = self._touchpoint_position(stage_index, touchpoint_index)
        actions = self._touchpoint(stage_index, touchpoint_index).actions
        actions.append(Action())
        index = len(actions) - 1
        self._expanded.add((stage_index, touchpoint_index, index))
        return index

    def remove_action(self, stage_index: int, touchpoint_index: int, action_index: int) -> bool:
        stage_index, touchpoint_index = self._touchpoint_position(stage_index, touchpoint_index)
        actions = self._touchpoint(stage_index, touchpoint_index).actions
        if len(actions) <= 1:
            return self._reject(MIN_ACTIONS_MESSAGE)
        action_index = _position(actions, action_index)
        del actions[action_index]
        self._drop_expanded((stage_index, touchpoint_index), action_index)
        return True

    # -- leaves --------------------------------------------------------------

    def _target(self, path: FieldPath) -> tuple[object, dict[str, tuple[str, str]]]:
        if isinstance(path, JourneyField):
            return self.draft, _JOURNEY_ATTRS
        if isinstance(path, IndicatorField):
            return self.draft.performance_indicators[path.index], _INDICATOR_ATTRS
        if isinstance(path, StageField):
            return self._stage(path.stage), _STAGE_ATTRS
        if isinstance(path, TouchpointField):
            return self._touchpoint(path.stage, path.touchpoint), _TOUCHPOINT_ATTRS
        if isinstance(path, ActionField):
            return self._touchpoint(path.stage, path.touchpoint).actions[path.action], _ACTION_ATTRS
        raise TypeError(f"Unsupported field path: {path!r}")

    def set_field(self, path: FieldPath, value: Any) -> Any:
        """Set one scalar leaf; returns the value actually stored.

        Scores are parsed like a number input (unparsable -> 0) and clamped
        to 0..100.
        """
        target, attrs = self._target(path)
        if path.name not in attrs:
            raise ValueError(f"{path.name!r} is not an editable field at {path.render()}")
        attr, kind = attrs[path.name]
        stored = _coerce(kind, value)
        setattr(target, attr, stored)
        return stored

    def get_field(self, path: FieldPath) -> Any:
        target, attrs = self._target(path)
        if path.name not in attrs:
            raise ValueError(f"{path.name!r} is not an editable field at {path.render()}")
        return getattr(target, attrs[path.name][0])

    def toggle_compass_tag(self, stage_index: int, touchpoint_index: int, tag: CompassTag | str) -> bool:
        """Add *tag* if absent, remove one occurrence if present.

        Returns whether the tag is still set afterwards. A legacy document
        holding the same tag twice needs two toggles to clear it.
        """
        value = CompassTag(tag).value
        touchpoint = self._touchpoint(stage_index, touchpoint_index)
        tags = list(touchpoint.compass_tags)
        if value in tags:
            tags.remove(value)
        else:
            tags.append(value)
        touchpoint.compass_tags = tags
        return value in tags

    def errors_for(self, path: FieldPath) -> list[FieldError]:
        rendered = path.render()
        return [e for e in self.errors if e.path == rendered]

    # -- collaborators -------------------------------------------------------

    async def attach_image(self, stage_index: int, touchpoint_index: int, action_index: int,
                           data: bytes, uploader: ImageUploader, filename: str = "image") -> bool:
        """Upload an action image; on failure the image stays unset and the user may retry."""
        action = self._touchpoint(stage_index, touchpoint_index).actions[action_index]
        try:
            uploaded = await uploader.upload_image(data, filename)
        except TransportError as exc:
            log.warning("Image upload failed: %s", exc)
            return self._reject("Image upload failed, please try again")
        action.image_url = uploaded["url"]
        return True

    async def load(self, journey_id: str) -> None:
        """Switch to edit mode on a stored journey. ``NotFoundError`` propagates."""
        if self.store is None:
            raise RuntimeError("No journey store bound to this draft")
        doc = await self.store.get_journey(journey_id)
        self.draft = Journey.from_dict(doc)
        self.journey_id = doc.get("id", journey_id)
        self.errors = []
        self._expanded.clear()

    def validate(self) -> list[FieldError]:
        result = validate(self.draft.to_dict(), strict_numbers=self.strict_numbers)
        self.errors = result.errors
        return self.errors

    async def submit(self) -> SubmitResult:
        """Validate, then create or update through the store.

        All field errors come back together. A transport failure keeps the
        draft intact so the user can retry.
        """
        if self.store is None:
            raise RuntimeError("No journey store bound to this draft")
        errors = self.validate()
        if errors:
            message = f"Please fix {len(errors)} field error(s) before saving"
            self._notify("error", message)
            return SubmitResult(ok=False, errors=errors, message=message)

        document = self.draft.to_dict()
        try:
            if self.editing:
                saved = await self.store.update_journey(self.journey_id, document)  # type: ignore[arg-type]
            else:
                saved = await self.store.create_journey(document)
        except ValidationError as exc:
            self.errors = exc.errors
            self._notify("error", exc.message)
            return SubmitResult(ok=False, errors=exc.errors, message=exc.message)
        except NotFoundError as exc:
            self._notify("error", exc.message)
            return SubmitResult(ok=False, message=exc.message)
        except TransportError as exc:
            log.warning("Journey submit failed: %s", exc)
            self._notify("error", str(exc))
            return SubmitResult(ok=False, message=str(exc))

        if self.editing:
            self.draft = Journey.from_dict(saved)
            message = "Journey updated successfully!"
        else:
            self.reset()
            message = "Journey created successfully!"
        self.errors = []
        self._notify("success", message)
        return SubmitResult(ok=True, document=saved, message=message)


def can_mutate(user: Any) -> bool:
    """Whether *user* may see the create / edit entry points."""
    return is_admin(user)
