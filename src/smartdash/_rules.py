"""Automation rules: typed model, pure evaluation and a persisted rule book.

A rule fires when **all** of its triggers match the current snapshot
(and it has at least one trigger).  Firing rules contribute their full
action lists to the output, in rule order and then action order, so a
replay of the same rules against the same state always yields the same
list.

Evaluation is a pure function of ``(rules, state, now)``: no I/O, no
mutation.  Turning actions into MQTT publishes is the dispatcher's job.

Trigger kinds::

    {"type": "motion"}
    {"type": "temperature" | "humidity", "condition": ">" | "<" | "=", "value": 30}
    {"type": "time", "hour": 7}

Action kinds::

    {"type": "bulb" | "fan", "value": true}
    {"type": "fanSpeed", "value": 60}
    {"type": "color", "value": "#FF0000"}
    {"type": "mode", "value": "MANUAL"}

Storage key::

    automation-rules   ← list of AutomationRule dicts
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from smartdash._persistence import KeyValueStore
from smartdash._state import DeviceState, Motion, parse_number

logger = logging.getLogger(__name__)

STORAGE_KEY = "automation-rules"

# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class MotionTrigger(_Frozen):
    """Matches while the motion sensor reads DETECTED (level-triggered)."""

    type: Literal["motion"] = "motion"


class ThresholdTrigger(_Frozen):
    """Compares a sensor reading with a number.

    ``=`` is exact float equality; no tolerance is applied.
    """

    type: Literal["temperature", "humidity"]
    condition: Literal[">", "<", "="]
    value: float


class TimeTrigger(_Frozen):
    """Matches during every evaluation within the given local hour."""

    type: Literal["time"] = "time"
    hour: Annotated[int, Field(ge=0, le=23)]


Trigger = Annotated[
    MotionTrigger | ThresholdTrigger | TimeTrigger,
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class SwitchAction(_Frozen):
    type: Literal["bulb", "fan"]
    value: bool


class FanSpeedAction(_Frozen):
    type: Literal["fanSpeed"] = "fanSpeed"
    value: int


class ColorAction(_Frozen):
    type: Literal["color"] = "color"
    value: str


class ModeAction(_Frozen):
    type: Literal["mode"] = "mode"
    value: str


Action = Annotated[
    SwitchAction | FanSpeedAction | ColorAction | ModeAction,
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# Rule
# ---------------------------------------------------------------------------


class AutomationRule(_Frozen):
    id: str
    name: str
    enabled: bool = True
    triggers: tuple[Trigger, ...] = ()
    actions: tuple[Action, ...] = ()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _compare(reading: float, condition: str, value: float) -> bool:
    match condition:
        case ">":
            return reading > value
        case "<":
            return reading < value
        case "=":
            return reading == value
        case _:
            return False


def trigger_matches(trigger: Trigger, state: DeviceState, now: datetime) -> bool:
    """Evaluate a single trigger.  Never raises on bad readings."""
    match trigger:
        case MotionTrigger():
            return state.motion == Motion.DETECTED
        case ThresholdTrigger(type=sensor, condition=condition, value=value):
            raw = state.temperature if sensor == "temperature" else state.humidity
            reading = parse_number(raw)
            return reading is not None and _compare(reading, condition, value)
        case TimeTrigger(hour=hour):
            return now.hour == hour
    return False


def rule_fires(rule: AutomationRule, state: DeviceState, now: datetime) -> bool:
    """True when *rule* is enabled, has triggers, and all of them match."""
    if not rule.enabled or not rule.triggers:
        return False
    return all(trigger_matches(t, state, now) for t in rule.triggers)


def evaluate(
    rules: Iterable[AutomationRule],
    state: DeviceState,
    now: datetime,
) -> list[Action]:
    """Return the actions of every firing rule, in rule then action order.

    Callers run this only after a message has changed a device
    attribute.  A rule whose triggers become true through the clock
    alone (a ``time`` trigger reaching its hour) therefore waits for
    the next attribute change, and a repeated ``DETECTED`` motion
    reading, which changes nothing, does not re-run the rules.
    """
    actions: list[Action] = []
    for rule in rules:
        if rule_fires(rule, state, now):
            logger.debug("Rule %r fired", rule.name, extra={"rule_id": rule.id})
            actions.extend(rule.actions)
    return actions


# ---------------------------------------------------------------------------
# Rule book
# ---------------------------------------------------------------------------


class RuleBook:
    """User-managed, ordered rule collection.

    Every mutation is saved to the store immediately.  Ids are random
    uuid4 hex strings, unique for the process lifetime.

    The dashboard evaluates the book after each device-attribute
    change, never on a timer; see :func:`evaluate`.
    """

    def __init__(self, *, store: KeyValueStore | None = None) -> None:
        self._store = store
        self._rules: list[AutomationRule] = []

    @property
    def rules(self) -> list[AutomationRule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> AutomationRule | None:
        return next((r for r in self._rules if r.id == rule_id), None)

    def add(
        self,
        name: str,
        *,
        triggers: Sequence[Trigger | dict[str, Any]] = (),
        actions: Sequence[Action | dict[str, Any]] = (),
        enabled: bool = True,
    ) -> AutomationRule:
        """Append a new rule and return it.

        Triggers and actions may be given as models or plain dicts.

        Raises:
            pydantic.ValidationError: If a trigger or action is invalid.
        """
        rule = AutomationRule.model_validate(
            {
                "id": self._new_id(),
                "name": name,
                "enabled": enabled,
                "triggers": list(triggers),
                "actions": list(actions),
            },
        )
        self._rules.append(rule)
        logger.info("Added rule %r (%s)", rule.name, rule.id)
        self._save()
        return rule

    def delete(self, rule_id: str) -> bool:
        """Remove a rule.  Deleting an unknown id is a no-op."""
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        if len(self._rules) == before:
            return False
        logger.info("Deleted rule %s", rule_id)
        self._save()
        return True

    def toggle(self, rule_id: str) -> AutomationRule | None:
        """Flip a rule's ``enabled`` flag."""
        rule = self.get(rule_id)
        if rule is None:
            return None
        return self.update(rule_id, enabled=not rule.enabled)

    def update(self, rule_id: str, **changes: Any) -> AutomationRule | None:
        """Replace fields of a rule.  The id cannot be changed.

        Raises:
            pydantic.ValidationError: If the updated rule is invalid.
        """
        changes.pop("id", None)
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                data = rule.model_dump() | changes
                updated = AutomationRule.model_validate(data)
                self._rules[index] = updated
                self._save()
                return updated
        return None

    def evaluate(self, state: DeviceState, now: datetime) -> list[Action]:
        """Actions for *state* at *now*.  Only call after an attribute change."""
        return evaluate(self._rules, state, now)

    # -- Persistence --------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory rules with the stored list, if any."""
        if self._store is None:
            return
        rules: list[AutomationRule] = []
        for item in self._store.load(STORAGE_KEY, []):
            try:
                rules.append(AutomationRule.model_validate(item))
            except ValidationError:
                logger.warning("Skipping invalid stored rule: %r", item)
        self._rules = rules
        logger.info("Loaded %d automation rule(s)", len(rules))

    def _save(self) -> None:
        if self._store is not None:
            self._store.save(
                STORAGE_KEY,
                [r.model_dump(mode="json") for r in self._rules],
            )

    def _new_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex
            if self.get(candidate) is None:
                return candidate
