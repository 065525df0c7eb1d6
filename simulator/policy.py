"""
Capability policy: the denied identifier set, the advisory source scan,
inert placeholders for denied names, and the built-in allow-list.
"""

from __future__ import annotations

import builtins
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from simulator.errors import CapabilityDeniedError


class Capability(str, Enum):
    TIMERS = "timers"
    WORKERS = "workers"
    NETWORK = "network"
    STORAGE = "storage"
    CRYPTO = "crypto"
    DYNAMIC_CODE = "dynamic_code"


DENIED_CAPABILITIES: dict[Capability, tuple[str, ...]] = {
    Capability.TIMERS: (
        "setTimeout",
        "setInterval",
        "clearTimeout",
        "clearInterval",
        "sched",
    ),
    Capability.WORKERS: (
        "Worker",
        "SharedWorker",
        "ServiceWorker",
        "threading",
        "multiprocessing",
        "asyncio",
        "concurrent",
    ),
    Capability.NETWORK: (
        "fetch",
        "XMLHttpRequest",
        "WebSocket",
        "socket",
        "urllib",
        "requests",
        "http",
    ),
    Capability.STORAGE: (
        "localStorage",
        "sessionStorage",
        "indexedDB",
        "open",
        "sqlite3",
        "shelve",
        "pickle",
    ),
    Capability.CRYPTO: (
        "crypto",
        "SubtleCrypto",
        "hashlib",
        "secrets",
        "ssl",
    ),
    Capability.DYNAMIC_CODE: (
        "eval",
        "exec",
        "compile",
        "Function",
        "WebAssembly",
        "__import__",
        "importlib",
        "globals",
        "locals",
        "vars",
        "breakpoint",
    ),
}

DENIED_IDENTIFIERS: tuple[str, ...] = tuple(
    name for names in DENIED_CAPABILITIES.values() for name in names
)

ALLOWED_BUILTINS: tuple[str, ...] = (
    "abs",
    "all",
    "any",
    "bool",
    "bytes",
    "callable",
    "chr",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "hash",
    "int",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "list",
    "map",
    "max",
    "min",
    "next",
    "object",
    "ord",
    "pow",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "__build_class__",
    "ArithmeticError",
    "AssertionError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "RuntimeError",
    "StopIteration",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)


@dataclass(frozen=True)
class CapabilityFinding:
    identifier: str
    capability: Capability

    @property
    def message(self) -> str:
        return f"Code references denied capability '{self.identifier}' ({self.capability.value})"


def capability_of(identifier: str) -> Capability | None:
    for capability, names in DENIED_CAPABILITIES.items():
        if identifier in names:
            return capability
    return None


def _word_pattern(identifier: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![A-Za-z0-9_]){re.escape(identifier)}(?![A-Za-z0-9_])")


_PATTERNS: dict[str, re.Pattern[str]] = {name: _word_pattern(name) for name in DENIED_IDENTIFIERS}


def mentions_identifier(text: str, identifier: str) -> bool:
    pattern = _PATTERNS.get(identifier) or _word_pattern(identifier)
    return pattern.search(text) is not None


def scan_source(source: str) -> list[CapabilityFinding]:
    """
    Whole-word textual scan for denied identifiers.

    Advisory only: a local name that shadows a denied one is reported, and a
    name assembled at runtime is missed. Enforcement is done by
    neutralized_bindings().
    """
    findings: list[CapabilityFinding] = []
    for capability, names in DENIED_CAPABILITIES.items():
        for name in names:
            if mentions_identifier(source, name):
                findings.append(CapabilityFinding(identifier=name, capability=capability))
    return findings


class DeniedCapability:
    """Inert stand-in bound to every denied identifier."""

    __slots__ = ("_identifier", "_capability")

    def __init__(self, identifier: str, capability: Capability) -> None:
        object.__setattr__(self, "_identifier", identifier)
        object.__setattr__(self, "_capability", capability)

    def _deny(self) -> CapabilityDeniedError:
        return CapabilityDeniedError(self._identifier, self._capability.value)

    def __call__(self, *_args: object, **_kwargs: object) -> None:
        raise self._deny()

    def __getattr__(self, _name: str) -> None:
        raise self._deny()

    def __setattr__(self, _name: str, _value: object) -> None:
        raise self._deny()

    def __getitem__(self, _key: object) -> None:
        raise self._deny()

    def __iter__(self) -> Iterator[object]:
        raise self._deny()

    def __repr__(self) -> str:
        return f"<denied capability {self._identifier}>"


def neutralized_bindings(identifiers: Iterable[str] | None = None) -> dict[str, DeniedCapability]:
    bindings: dict[str, DeniedCapability] = {}
    for name in identifiers or DENIED_IDENTIFIERS:
        capability = capability_of(name) or Capability.DYNAMIC_CODE
        bindings[name] = DeniedCapability(name, capability)
    return bindings


def build_builtins() -> dict[str, object]:
    """Allow-listed built-ins with every denied identifier neutralized."""
    allowed = {name: getattr(builtins, name) for name in ALLOWED_BUILTINS}
    allowed.update(neutralized_bindings())
    return allowed
