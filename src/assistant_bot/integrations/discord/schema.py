from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .command_tree import (
    KIND_COMMAND,
    KIND_SUB_COMMAND,
    KIND_SUB_COMMAND_GROUP,
    Registry,
    RegistryEntry,
    RegistryLevel,
)
from .constants import (
    APPLICATION_COMMAND_CHAT_INPUT,
    OPTION_SUB_COMMAND,
    OPTION_SUB_COMMAND_GROUP,
)
from .errors import DiscordConfigError


@dataclass(frozen=True)
class UploadSpec:
    """Which ids to upload, and in which order.

    ``options``/``choices`` of None include every child/choice in registry
    order; a tuple selects and orders them explicitly.
    """

    id: str
    options: Optional[tuple["UploadSpec", ...]] = None
    choices: Optional[tuple[str, ...]] = None


def _wire_type(entry: RegistryEntry) -> int:
    kind = entry.node.kind
    if kind == KIND_COMMAND:
        return APPLICATION_COMMAND_CHAT_INPUT
    if kind == KIND_SUB_COMMAND:
        return OPTION_SUB_COMMAND
    if kind == KIND_SUB_COMMAND_GROUP:
        return OPTION_SUB_COMMAND_GROUP
    assert entry.node.option_type is not None
    return entry.node.option_type


def _project_choices(
    entry: RegistryEntry, choice_ids: Optional[tuple[str, ...]]
) -> list[dict[str, Any]]:
    if choice_ids is None:
        selected = list(entry.node.choices)
    else:
        selected = []
        for choice_id in choice_ids:
            choice = entry.choice_by_id(choice_id)
            if choice is None:
                raise DiscordConfigError(
                    f"upload spec names unknown choice {choice_id!r} under "
                    f"{entry.id!r}"
                )
            selected.append(choice)
    projected: list[dict[str, Any]] = []
    for choice in selected:
        item: dict[str, Any] = {"name": choice.name, "value": choice.value}
        if choice.name_localizations is not None:
            item["name_localizations"] = dict(choice.name_localizations)
        projected.append(item)
    return projected


def project(entry: RegistryEntry, spec: UploadSpec) -> dict[str, Any]:
    """Project one registry entry into Discord's application command schema."""
    if spec.id != entry.id:
        raise DiscordConfigError(
            f"upload spec {spec.id!r} does not match registry entry {entry.id!r}"
        )
    node = entry.node
    payload: dict[str, Any] = {
        "type": _wire_type(entry),
        "name": node.name,
        "description": node.description,
    }
    if node.name_localizations is not None:
        payload["name_localizations"] = dict(node.name_localizations)
    if node.description_localizations is not None:
        payload["description_localizations"] = dict(node.description_localizations)
    if node.kind == KIND_COMMAND:
        if node.dm_permission is not None:
            payload["dm_permission"] = node.dm_permission
    else:
        if node.required is not None:
            payload["required"] = node.required
    if node.min_value is not None:
        payload["min_value"] = node.min_value
    if node.max_value is not None:
        payload["max_value"] = node.max_value
    if node.choices:
        payload["choices"] = _project_choices(entry, spec.choices)
    elif spec.choices:
        raise DiscordConfigError(f"upload spec lists choices for {entry.id!r}")
    options = _project_level(entry.children, spec.options, parent=entry.id)
    if options:
        payload["options"] = options
    return payload


def _project_level(
    level: RegistryLevel,
    specs: Optional[Sequence[UploadSpec]],
    *,
    parent: str,
) -> list[dict[str, Any]]:
    if specs is None:
        return [project(entry, UploadSpec(id=entry.id)) for entry in level]
    projected: list[dict[str, Any]] = []
    for spec in specs:
        entry = level.get(spec.id)
        if entry is None:
            raise DiscordConfigError(
                f"upload spec names unknown id {spec.id!r} under {parent}"
            )
        projected.append(project(entry, spec))
    return projected


def project_commands(
    registry: Registry, specs: Optional[Sequence[UploadSpec]] = None
) -> list[dict[str, Any]]:
    """Project the top-level commands named by ``specs`` (all when None)."""
    return _project_level(registry.root, specs, parent="<root>")


def full_upload_spec(registry: Registry) -> tuple[UploadSpec, ...]:
    def _spec(entry: RegistryEntry) -> UploadSpec:
        return UploadSpec(
            id=entry.id,
            options=tuple(_spec(child) for child in entry.children),
            choices=tuple(choice.id for choice in entry.node.choices) or None,
        )

    return tuple(_spec(entry) for entry in registry.root)


__all__ = ["UploadSpec", "full_upload_spec", "project", "project_commands"]
