from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .command_tree import Registry, RegistryLevel
from .constants import OPTION_SUB_COMMAND, OPTION_SUB_COMMAND_GROUP
from .errors import DiscordRouteError

ROUTE_RESOLVED = "resolved"
ROUTE_UNMATCHED = "unmatched"

_SUB_OPTION_TYPES = frozenset({OPTION_SUB_COMMAND, OPTION_SUB_COMMAND_GROUP})


@dataclass(frozen=True)
class InboundOption:
    """Name-keyed interaction node as sent by Discord.

    The root (the invoked command) has ``type=None``.
    """

    name: str
    type: Optional[int] = None
    value: Any = None
    options: tuple["InboundOption", ...] = ()

    @property
    def is_sub_command(self) -> bool:
        return self.type in _SUB_OPTION_TYPES


@dataclass(frozen=True)
class RouteResult:
    # ROUTE_RESOLVED: every inbound level matched and the walk stopped at the
    # value options. ROUTE_UNMATCHED: a name lookup missed; ``option`` is the
    # inbound node that missed and ``cursor`` the level it was looked up in.
    status: str
    path: tuple[str, ...]
    option: InboundOption
    cursor: RegistryLevel

    @property
    def resolved(self) -> bool:
        return self.status == ROUTE_RESOLVED


@dataclass(frozen=True)
class SuppliedOption:
    id: str
    name: str
    value: Any = None
    choice_id: Optional[str] = None
    options: tuple[InboundOption, ...] = ()


def route(interaction: InboundOption, registry: Registry) -> RouteResult:
    """Walk ``interaction`` down the registry by name.

    The returned path holds internal ids starting with the root command, so a
    command without sub-commands routes to a path of length one.
    """
    node = interaction
    level = registry.root
    path: list[str] = []
    while True:
        entry = level.find(node.name)
        if entry is None:
            return RouteResult(
                status=ROUTE_UNMATCHED,
                path=tuple(path),
                option=node,
                cursor=level,
            )
        path.append(entry.id)
        level = entry.children
        # Discord sends at most one active sub-command per level, always first.
        child = node.options[0] if node.options else None
        if child is None or not child.is_sub_command:
            return RouteResult(
                status=ROUTE_RESOLVED,
                path=tuple(path),
                option=node,
                cursor=level,
            )
        node = child


def remap(option: InboundOption, cursor: RegistryLevel) -> dict[str, SuppliedOption]:
    """Key the supplied value options of ``option`` by internal id."""
    mapped: dict[str, SuppliedOption] = {}
    for supplied in option.options:
        entry = cursor.find(supplied.name)
        if entry is None:
            raise DiscordRouteError(
                f"option {supplied.name!r} under {option.name!r} is not registered"
            )
        choice_id: Optional[str] = None
        if entry.node.choices and supplied.value is not None:
            choice = entry.choice_for_value(supplied.value)
            if choice is None:
                raise DiscordRouteError(
                    f"option {supplied.name!r} value {supplied.value!r} matches no "
                    "registered choice"
                )
            choice_id = choice.id
        mapped[entry.id] = SuppliedOption(
            id=entry.id,
            name=supplied.name,
            value=supplied.value,
            choice_id=choice_id,
            options=supplied.options,
        )
    return mapped


__all__ = [
    "InboundOption",
    "ROUTE_RESOLVED",
    "ROUTE_UNMATCHED",
    "RouteResult",
    "SuppliedOption",
    "remap",
    "route",
]
