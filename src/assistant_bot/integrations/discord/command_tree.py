"""Command definitions and the two-way indexed registry built from them.

Command nodes are keyed by a stable internal ``id``. The externally visible
``name`` can be changed through configuration overrides, so routing is done
against a name index that is built in the same pass as the id index and never
mutated afterwards.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from .constants import CHOICE_OPTION_TYPES, RANGE_OPTION_TYPES, VALUE_OPTION_TYPES
from .errors import DiscordConfigError

KIND_COMMAND = "command"
KIND_SUB_COMMAND = "sub_command"
KIND_SUB_COMMAND_GROUP = "sub_command_group"
KIND_OPTION = "option"

NODE_KINDS = frozenset(
    {KIND_COMMAND, KIND_SUB_COMMAND, KIND_SUB_COMMAND_GROUP, KIND_OPTION}
)
BRANCH_KINDS = frozenset({KIND_COMMAND, KIND_SUB_COMMAND, KIND_SUB_COMMAND_GROUP})

ChoiceValue = Union[str, int, float]

# Descriptive fields an override may change. Everything else is structure.
OVERRIDABLE_NODE_FIELDS = frozenset(
    {
        "name",
        "description",
        "name_localizations",
        "description_localizations",
        "required",
        "min_value",
        "max_value",
        "dm_permission",
    }
)
OVERRIDABLE_CHOICE_FIELDS = frozenset({"name", "name_localizations"})


@dataclass(frozen=True)
class CommandChoice:
    id: str
    name: str
    value: ChoiceValue
    name_localizations: Optional[Mapping[str, str]] = None


@dataclass(frozen=True)
class CommandNode:
    id: str
    name: str
    kind: str
    description: str = ""
    option_type: Optional[int] = None
    children: tuple["CommandNode", ...] = ()
    choices: tuple[CommandChoice, ...] = ()
    required: Optional[bool] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    name_localizations: Optional[Mapping[str, str]] = None
    description_localizations: Optional[Mapping[str, str]] = None
    dm_permission: Optional[bool] = None


@dataclass(frozen=True)
class RegistryEntry:
    node: CommandNode
    children: "RegistryLevel"

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def name(self) -> str:
        return self.node.name

    def choice_by_id(self, choice_id: str) -> Optional[CommandChoice]:
        for choice in self.node.choices:
            if choice.id == choice_id:
                return choice
        return None

    def choice_for_value(self, value: Any) -> Optional[CommandChoice]:
        for choice in self.node.choices:
            # bool is an int subclass; True must not match a choice of 1.
            if isinstance(value, bool) != isinstance(choice.value, bool):
                continue
            if choice.value == value:
                return choice
        return None


@dataclass(frozen=True)
class RegistryLevel:
    """One set of siblings, indexed both by id and by name."""

    entries: tuple[RegistryEntry, ...] = ()
    by_id: Mapping[str, RegistryEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )
    by_name: Mapping[str, RegistryEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, node_id: str) -> Optional[RegistryEntry]:
        return self.by_id.get(node_id)

    def find(self, name: str) -> Optional[RegistryEntry]:
        return self.by_name.get(name)


@dataclass(frozen=True)
class Registry:
    root: RegistryLevel

    def resolve(self, path: Sequence[str]) -> Optional[RegistryEntry]:
        """Follow a path of internal ids from the root."""
        level = self.root
        entry: Optional[RegistryEntry] = None
        for node_id in path:
            entry = level.get(node_id)
            if entry is None:
                return None
            level = entry.children
        return entry


def _describe(path: tuple[str, ...]) -> str:
    return ".".join(path) if path else "<root>"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_localizations(value: Any, where: str, key: str) -> None:
    if value is None:
        return
    if not isinstance(value, Mapping) or not all(
        isinstance(locale, str) and isinstance(text, str)
        for locale, text in value.items()
    ):
        raise DiscordConfigError(f"{key} of {where} must map locales to strings")


def _validate_fields(node: CommandNode, where: str) -> None:
    """Check descriptive fields against the node's kind and option type."""
    if not isinstance(node.description, str):
        raise DiscordConfigError(f"description of {where} must be a string")
    _validate_localizations(node.name_localizations, where, "name_localizations")
    _validate_localizations(
        node.description_localizations, where, "description_localizations"
    )
    if node.required is not None:
        if node.kind != KIND_OPTION:
            raise DiscordConfigError(f"{node.kind} {where} cannot set required")
        if not isinstance(node.required, bool):
            raise DiscordConfigError(f"required of {where} must be a boolean")
    if node.dm_permission is not None:
        if node.kind != KIND_COMMAND:
            raise DiscordConfigError(f"{node.kind} {where} cannot set dm_permission")
        if not isinstance(node.dm_permission, bool):
            raise DiscordConfigError(f"dm_permission of {where} must be a boolean")
    for key in ("min_value", "max_value"):
        value = getattr(node, key)
        if value is None:
            continue
        if node.kind != KIND_OPTION or node.option_type not in RANGE_OPTION_TYPES:
            raise DiscordConfigError(
                f"{key} is only valid on integer or number options, not {where}"
            )
        if not _is_number(value):
            raise DiscordConfigError(f"{key} of {where} must be a number")
    if (
        node.min_value is not None
        and node.max_value is not None
        and node.min_value > node.max_value
    ):
        raise DiscordConfigError(f"min_value of {where} exceeds max_value")
    for choice in node.choices:
        choice_where = f"{where} choice {choice.id!r}"
        if not isinstance(choice.name, str) or not choice.name.strip():
            raise DiscordConfigError(f"{choice_where} has an empty name")
        _validate_localizations(
            choice.name_localizations, choice_where, "name_localizations"
        )


def _validate_node(node: CommandNode, path: tuple[str, ...]) -> None:
    where = _describe(path)
    if not node.id:
        raise DiscordConfigError(f"command node at {where} has an empty id")
    if not isinstance(node.name, str) or not node.name.strip():
        raise DiscordConfigError(f"command node {where} has an empty name")
    if node.kind not in NODE_KINDS:
        raise DiscordConfigError(f"command node {where} has unknown kind {node.kind!r}")
    if node.kind == KIND_OPTION:
        if node.option_type not in VALUE_OPTION_TYPES:
            raise DiscordConfigError(
                f"option {where} has invalid option_type {node.option_type!r}"
            )
        if node.children:
            raise DiscordConfigError(f"option {where} cannot have children")
        if node.choices and node.option_type not in CHOICE_OPTION_TYPES:
            raise DiscordConfigError(
                f"option {where} cannot declare choices for option_type "
                f"{node.option_type}"
            )
    else:
        if node.option_type is not None:
            raise DiscordConfigError(f"{node.kind} {where} cannot set option_type")
        if node.choices:
            raise DiscordConfigError(f"{node.kind} {where} cannot declare choices")
    if node.kind == KIND_COMMAND and len(path) != 1:
        raise DiscordConfigError(f"command {where} must be declared at the top level")
    if node.kind != KIND_COMMAND and len(path) == 1:
        raise DiscordConfigError(f"top-level node {where} must be a command")
    if node.kind == KIND_SUB_COMMAND_GROUP:
        for child in node.children:
            if child.kind != KIND_SUB_COMMAND:
                raise DiscordConfigError(
                    f"sub_command_group {where} may only contain sub_commands"
                )
    seen_choice_ids: set[str] = set()
    for choice in node.choices:
        if choice.id in seen_choice_ids:
            raise DiscordConfigError(f"option {where} has duplicate choice id {choice.id!r}")
        seen_choice_ids.add(choice.id)
    _validate_fields(node, where)


def _as_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DiscordConfigError(f"override for {where} must be a mapping")
    return value


def _merge_choices(
    node: CommandNode, raw: Any, path: tuple[str, ...]
) -> tuple[CommandChoice, ...]:
    overrides = _as_mapping(raw, f"{_describe(path)}.choices")
    known = {choice.id for choice in node.choices}
    for choice_id in overrides:
        if choice_id not in known:
            raise DiscordConfigError(
                f"override references unknown choice {choice_id!r} under "
                f"{_describe(path)}"
            )
    merged: list[CommandChoice] = []
    for choice in node.choices:
        patch = _as_mapping(
            overrides.get(choice.id), f"{_describe(path)}.choices.{choice.id}"
        )
        unknown = set(patch) - OVERRIDABLE_CHOICE_FIELDS
        if unknown:
            raise DiscordConfigError(
                f"choice {choice.id!r} under {_describe(path)} cannot override "
                f"{', '.join(sorted(unknown))}"
            )
        merged.append(dataclasses.replace(choice, **patch) if patch else choice)
    return tuple(merged)


def _merge_node(
    node: CommandNode, override: Mapping[str, Any], path: tuple[str, ...]
) -> CommandNode:
    changes: dict[str, Any] = {}
    for key, value in override.items():
        if key in OVERRIDABLE_NODE_FIELDS:
            changes[key] = value
        elif key not in ("options", "choices"):
            raise DiscordConfigError(
                f"override for {_describe(path)} cannot change {key!r}"
            )
    if "name" in changes and (
        not isinstance(changes["name"], str) or not changes["name"].strip()
    ):
        raise DiscordConfigError(
            f"override for {_describe(path)} must set a non-empty name"
        )
    if "choices" in override:
        changes["choices"] = _merge_choices(node, override["choices"], path)
    child_overrides = _as_mapping(override.get("options"), f"{_describe(path)}.options")
    known_children = {child.id for child in node.children}
    for child_id in child_overrides:
        if child_id not in known_children:
            raise DiscordConfigError(
                f"override references unknown id {child_id!r} under {_describe(path)}"
            )
    if child_overrides:
        changes["children"] = tuple(
            _merge_node(
                child,
                _as_mapping(
                    child_overrides.get(child.id), _describe((*path, child.id))
                ),
                (*path, child.id),
            )
            for child in node.children
        )
    return dataclasses.replace(node, **changes) if changes else node


def _build_level(
    nodes: Sequence[CommandNode], parent: tuple[str, ...]
) -> RegistryLevel:
    entries: list[RegistryEntry] = []
    by_id: dict[str, RegistryEntry] = {}
    by_name: dict[str, RegistryEntry] = {}
    for node in nodes:
        path = (*parent, node.id)
        _validate_node(node, path)
        entry = RegistryEntry(node=node, children=_build_level(node.children, path))
        if node.id in by_id:
            raise DiscordConfigError(
                f"duplicate id {node.id!r} under {_describe(parent)}"
            )
        existing = by_name.get(node.name)
        if existing is not None:
            raise DiscordConfigError(
                f"name {node.name!r} is used by both {existing.id!r} and "
                f"{node.id!r} under {_describe(parent)}"
            )
        entries.append(entry)
        by_id[node.id] = entry
        by_name[node.name] = entry
    return RegistryLevel(
        entries=tuple(entries),
        by_id=MappingProxyType(by_id),
        by_name=MappingProxyType(by_name),
    )


def build_registry(
    defaults: Sequence[CommandNode],
    overrides: Optional[Mapping[str, Any]] = None,
) -> Registry:
    """Merge ``overrides`` onto ``defaults`` and index the result.

    ``overrides`` is keyed by top-level command id; each value may set the
    descriptive fields in ``OVERRIDABLE_NODE_FIELDS``, relabel choices by
    choice id under ``choices`` and recurse into children by id under
    ``options``. Raises DiscordConfigError on unknown ids or keys and on
    sibling id or name collisions.
    """
    top = _as_mapping(overrides, "commands")
    known = {node.id for node in defaults}
    for command_id in top:
        if command_id not in known:
            raise DiscordConfigError(
                f"override references unknown command id {command_id!r}"
            )
    merged = [
        _merge_node(node, _as_mapping(top.get(node.id), node.id), (node.id,))
        if node.id in top
        else node
        for node in defaults
    ]
    return Registry(root=_build_level(merged, ()))


__all__ = [
    "BRANCH_KINDS",
    "CommandChoice",
    "CommandNode",
    "KIND_COMMAND",
    "KIND_OPTION",
    "KIND_SUB_COMMAND",
    "KIND_SUB_COMMAND_GROUP",
    "Registry",
    "RegistryEntry",
    "RegistryLevel",
    "build_registry",
]
