"""Immutable routing configuration.

A RoutingConfiguration is assembled once, by the builder or from a
declarative mapping, and then shared read-only by every routing call. Build
time is where configuration mistakes fail fast; there is also a separate
non-throwing lint pass (``validate_rules``) for softer issues.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .matching import environment_mismatch
from .rules import RoutingRule
from .sampling import check_sample_rate, sample_rate_error
from .schemas import PREDEFINED_CATEGORIES, EventCategory, TrackerGroup

logger = logging.getLogger(__name__)

AUTO_DEFAULT_PRIORITY = -1000
AUTO_DEFAULT_DESCRIPTION = "Auto-generated default rule"


def predefined_groups() -> Dict[str, TrackerGroup]:
    return {g.name: g for g in (TrackerGroup.all(), TrackerGroup.development())}


def ensure_default_rule(
    rules: Sequence[RoutingRule], default_group: Optional[TrackerGroup]
) -> Tuple[RoutingRule, ...]:
    """Append a lowest-priority catch-all rule when nothing else provides a fallback."""
    if any(rule.is_default for rule in rules) or default_group is not None:
        return tuple(rules)
    logger.info("No default rule or group configured; adding catch-all rule to all trackers")
    return tuple(rules) + (
        RoutingRule(
            is_default=True,
            target_group=TrackerGroup.all(),
            priority=AUTO_DEFAULT_PRIORITY,
            description=AUTO_DEFAULT_DESCRIPTION,
        ),
    )


class RoutingConfiguration(BaseModel):
    """Validated collection of rules plus global toggles.

    Rules are kept sorted by descending priority; ties keep their declaration
    order.
    """

    model_config = ConfigDict(frozen=True)

    rules: Tuple[RoutingRule, ...] = ()
    custom_groups: Dict[str, TrackerGroup] = Field(default_factory=dict)
    custom_categories: Dict[str, EventCategory] = Field(default_factory=dict)
    default_group: Optional[TrackerGroup] = None
    enable_sampling: bool = True
    enable_consent_checking: bool = True
    is_debug_mode: bool = False

    @field_validator("rules")
    @classmethod
    def sort_rules(cls, v: Tuple[RoutingRule, ...]) -> Tuple[RoutingRule, ...]:
        return tuple(sorted(v, key=lambda rule: -rule.priority))

    # -- lookups -----------------------------------------------------------

    def get_group(self, name: str) -> Optional[TrackerGroup]:
        if name in self.custom_groups:
            return self.custom_groups[name]
        return predefined_groups().get(name)

    def get_category(self, name: str) -> Optional[EventCategory]:
        if name in self.custom_categories:
            return self.custom_categories[name]
        return PREDEFINED_CATEGORIES.get(name)

    def all_groups(self) -> List[TrackerGroup]:
        return [*predefined_groups().values(), *self.custom_groups.values()]

    def all_categories(self) -> List[EventCategory]:
        return [*PREDEFINED_CATEGORIES.values(), *self.custom_categories.values()]

    @property
    def default_rules(self) -> List[RoutingRule]:
        return [rule for rule in self.rules if rule.is_default]

    # -- lint --------------------------------------------------------------

    def validate_rules(self) -> List[str]:
        """Non-throwing lint pass over the configuration.

        Returns:
            Human-readable issues; empty when the configuration looks sound.
        """
        issues: List[str] = []

        ids = Counter(rule.id for rule in self.rules if rule.id is not None)
        duplicates = [rule_id for rule_id, count in ids.items() if count > 1]
        if duplicates:
            issues.append(f"Duplicate rule IDs found: {', '.join(duplicates)}")

        invalid_rates = [
            rule.id or "unnamed" for rule in self.rules if sample_rate_error(rule.sample_rate)
        ]
        if invalid_rates:
            issues.append(f"Invalid sample rates in rules: {', '.join(invalid_rates)}")

        if not self.default_rules and self.default_group is None:
            issues.append("No default rule or default group specified")

        referenced = {rule.target_group.name for rule in self.rules}
        if self.default_group is not None:
            referenced.add(self.default_group.name)
        unreferenced = [name for name in self.custom_groups if name not in referenced]
        if unreferenced:
            issues.append(f"Unreferenced custom groups: {', '.join(unreferenced)}")

        mode = "debug" if self.is_debug_mode else "production"
        unreachable = [
            rule.label for rule in self.rules if environment_mismatch(rule, self.is_debug_mode)
        ]
        if unreachable:
            issues.append(f"Rules that never apply in {mode} mode: {', '.join(unreachable)}")

        catch_all = [rule.label for rule in self.rules if not rule.is_default and not rule.predicates]
        if catch_all:
            issues.append(f"Non-default rules without predicates match every event: {', '.join(catch_all)}")

        return issues

    # -- serialization -----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoutingConfiguration":
        """Build a configuration from a declarative mapping.

        Rules may name their target group (``"target_group": "analytics"``)
        instead of embedding it; names resolve against custom groups first,
        then the predefined ``all`` and ``development`` groups.

        Raises:
            ConfigurationError: On unknown groups or categories, invalid sample
                rates, empty identifiers, or any other invalid field.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(
                f"Routing configuration must be a mapping, got {type(data).__name__}",
                config_type="configuration",
            )

        custom_groups: Dict[str, TrackerGroup] = {}
        for name, raw in require_mapping(data.get("custom_groups"), "custom_groups", "group").items():
            if isinstance(raw, (list, tuple)):
                raw = {"tracker_ids": raw}
            raw = require_mapping(raw, f"group {name}", "group")
            custom_groups[name] = validate_model(TrackerGroup, {"name": name, **raw}, "group", name)

        custom_categories: Dict[str, EventCategory] = {}
        for name, raw in require_mapping(data.get("custom_categories"), "custom_categories", "category").items():
            if raw is None or isinstance(raw, str):
                raw = {"description": raw}
            raw = require_mapping(raw, f"category {name}", "category")
            custom_categories[name] = validate_model(EventCategory, {"name": name, **raw}, "category", name)

        def resolve_group(ref: Any, where: str) -> TrackerGroup:
            if isinstance(ref, TrackerGroup):
                return ref
            if isinstance(ref, str):
                group = custom_groups.get(ref) or predefined_groups().get(ref)
                if group is None:
                    raise ConfigurationError(
                        f"Unknown tracker group '{ref}' referenced by {where}",
                        field_name="target_group",
                        config_type="group",
                    )
                return group
            return validate_model(TrackerGroup, ref, "group", where)

        known_categories = set(PREDEFINED_CATEGORIES) | set(custom_categories)

        raw_rules = data.get("rules") or []
        if not isinstance(raw_rules, (list, tuple)):
            raise ConfigurationError(
                f"rules must be a list, got {type(raw_rules).__name__}", config_type="rule"
            )

        rules: List[RoutingRule] = []
        for index, raw_rule in enumerate(raw_rules):
            if isinstance(raw_rule, RoutingRule):
                rules.append(raw_rule)
                continue
            raw_rule = dict(require_mapping(raw_rule, f"rule {index}", "rule"))
            where = f"rule {raw_rule.get('id') or index}"
            if "target_group" not in raw_rule:
                raise ConfigurationError(
                    f"{where} has no target_group", field_name="target_group", config_type="rule"
                )
            raw_rule["target_group"] = resolve_group(raw_rule["target_group"], where)
            if "sample_rate" in raw_rule:
                raw_rule["sample_rate"] = check_sample_rate(raw_rule["sample_rate"])
            rule = validate_model(RoutingRule, raw_rule, "rule", where)
            for predicate in rule.predicates_of("category"):
                if predicate.category not in known_categories:
                    raise ConfigurationError(
                        f"Unknown category '{predicate.category}' referenced by {where}",
                        field_name="category",
                        config_type="category",
                    )
            rules.append(rule)

        default_group = None
        if data.get("default_group") is not None:
            default_group = resolve_group(data["default_group"], "default_group")

        return validate_model(
            cls,
            {
                "rules": ensure_default_rule(rules, default_group),
                "custom_groups": custom_groups,
                "custom_categories": custom_categories,
                "default_group": default_group,
                "enable_sampling": data.get("enable_sampling", True),
                "enable_consent_checking": data.get("enable_consent_checking", True),
                "is_debug_mode": data.get("is_debug_mode", False),
            },
            "configuration",
            "toggles",
        )

    def __str__(self) -> str:
        return (
            f"RoutingConfiguration({len(self.rules)} rules, "
            f"{len(self.custom_groups)} custom groups, "
            f"{len(self.custom_categories)} custom categories)"
        )


def require_mapping(value: Any, where: str, config_type: str) -> Mapping[str, Any]:
    """Treat None as empty; reject anything else that is not a mapping."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(
            f"{where} must be a mapping, got {type(value).__name__}",
            config_type=config_type,
        )
    return value


def validate_model(model: type, raw: Any, config_type: str, where: str):
    """Validate a pydantic model, reporting failures as ConfigurationError."""
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid {config_type} '{where}': {exc.errors()[0]['msg']}",
            config_type=config_type,
            cause=exc,
        ) from exc


def load_configuration(path: Union[str, Path]) -> RoutingConfiguration:
    """Read a declarative JSON routing configuration from disk.

    Raises:
        ConfigurationError: If the file is not valid JSON or not a valid configuration.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}", cause=exc) from exc
    logger.info(f"Loaded routing configuration from {path}")
    return RoutingConfiguration.from_dict(data)
