"""
OS fingerprint matcher.

Definitions are loaded once from YAML into an immutable
:class:`OsRuleCorpus`, indexed by rule type:

* a prefix tree over sysObjectID values (longest match wins),
* an ordered list of sysDescr regexes,
* complex rules split into a cheap tier and a "network" tier,
* a registry of custom async matcher functions.

Match order (first hit wins):

1. recheck fast path: the prior OS's own complex rules
2. cheap complex rules, in definition order
3. sysObjectID prefix tree
4. sysDescr regexes
5. network complex rules
6. custom matchers (prior OS first)
7. ``generic``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

import yaml

from device_inventory.services.snmp import (
    OID_SYS_DESCR,
    OID_SYS_OBJECT_ID,
    SnmpClient,
    SnmpResponse,
    SnmpStatus,
    SnmpTarget,
    is_numeric_oid,
    oid_startswith,
    translate_oid,
)
from device_inventory.utils.logging import get_logger

log = get_logger("os_detect")

GENERIC_OS = "generic"
DEFAULT_DEFINITIONS = Path(__file__).resolve().parent.parent / "data" / "os_definitions.yaml"

_REGEX_RE = re.compile(r"^/(?P<body>.*)/(?P<flags>[imsx]*)$", re.DOTALL)
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


class OsDefinitionError(ValueError):
    """Malformed OS definition file."""


# ────────────────────────────────────────────────
# Rule primitives
# ────────────────────────────────────────────────

@dataclass(frozen=True)
class Pattern:
    """A ``/regex/flags`` or a literal value.

    Literal numeric OIDs match the same OID or anything below it.
    """

    source: str
    regex: re.Pattern | None = None

    @classmethod
    def parse(cls, raw: Any) -> "Pattern":
        text = str(raw).strip()
        m = _REGEX_RE.match(text)
        if not m:
            return cls(text)
        flags = 0
        for ch in m.group("flags"):
            flags |= _FLAG_MAP[ch]
        try:
            return cls(text, re.compile(m.group("body"), flags))
        except re.error as exc:
            raise OsDefinitionError(f"Invalid regex {text}: {exc}") from exc

    def matches(self, value: str | None) -> bool:
        if value is None:
            return False
        if self.regex is not None:
            return self.regex.search(value) is not None
        if is_numeric_oid(self.source):
            return is_numeric_oid(value) and oid_startswith(value, self.source)
        return value.strip() == self.source


@dataclass(frozen=True)
class Condition:
    """One key of a complex rule; any of ``patterns`` may match."""

    key: str                    # "sysObjectID", "sysDescr" or a numeric OID
    patterns: tuple[Pattern, ...]

    def matches(self, value: str | None) -> bool:
        return any(p.matches(value) for p in self.patterns)


@dataclass(frozen=True)
class ComplexRule:
    os: str
    conditions: tuple[Condition, ...]
    network: bool = False

    @property
    def extra_oids(self) -> tuple[str, ...]:
        return tuple(c.key for c in self.conditions if c.key not in ("sysObjectID", "sysDescr"))

    async def evaluate(self, ctx: "MatchContext") -> bool:
        # cheap keys first so most rules stop before any extra SNMP request
        ordered = sorted(self.conditions, key=lambda c: {"sysObjectID": 0, "sysDescr": 1}.get(c.key, 2))
        for cond in ordered:
            if cond.key == "sysObjectID":
                value = ctx.sys_object_id
            elif cond.key == "sysDescr":
                value = ctx.sys_descr
            else:
                response = await ctx.get(cond.key)
                if not response.ok:
                    return False
                value = response.value
            if not cond.matches(value):
                return False
        return True


@dataclass(frozen=True)
class OsDefinition:
    name: str
    text: str
    vendor: str | None = None
    group: str | None = None
    sys_object_ids: tuple[str, ...] = ()
    sys_descr: tuple[Pattern, ...] = ()
    rules: tuple[ComplexRule, ...] = ()


class OidPrefixTree:
    """Trie over OID components mapping a sysObjectID to the longest defined prefix."""

    def __init__(self):
        self._root: dict = {}

    def insert(self, oid: str, os_name: str):
        node = self._root
        for part in oid.strip(".").split("."):
            node = node.setdefault(part, {})
        # first definition wins for an identical OID
        node.setdefault(None, (oid.strip("."), os_name))

    def longest_match(self, oid: str | None) -> tuple[str, str] | None:
        """Return ``(defined_oid, os)`` for the deepest matching prefix."""
        if not oid or not is_numeric_oid(oid):
            return None
        node, best = self._root, None
        for part in oid.strip(".").split("."):
            node = node.get(part)
            if node is None:
                break
            best = node.get(None, best)
        return best


def _parse_rule(os_name: str, raw: dict) -> ComplexRule:
    if not isinstance(raw, dict) or not raw:
        raise OsDefinitionError(f"{os_name}: discovery rule must be a non-empty mapping")
    explicit_network = raw.get("network")
    conditions = []
    for key, value in raw.items():
        if key == "network":
            continue
        key = str(key)
        if key not in ("sysObjectID", "sysDescr"):
            numeric = translate_oid(key)
            if numeric is None:
                raise OsDefinitionError(f"{os_name}: cannot resolve OID {key}")
            key = numeric
        values = value if isinstance(value, list) else [value]
        conditions.append(Condition(key, tuple(Pattern.parse(v) for v in values)))

    fields = {c.key for c in conditions}
    auto_network = "sysObjectID" not in fields and bool(fields - {"sysDescr"})
    network = auto_network if explicit_network is None else bool(explicit_network)
    return ComplexRule(os_name, tuple(conditions), network)


# ────────────────────────────────────────────────
# Corpus
# ────────────────────────────────────────────────

class OsRuleCorpus:
    """Immutable, indexed set of OS definitions."""

    def __init__(self, definitions: Iterable[OsDefinition]):
        self._definitions: dict[str, OsDefinition] = {}
        self._tree = OidPrefixTree()
        sys_descr: list[tuple[str, Pattern]] = []
        cheap: list[ComplexRule] = []
        network: list[ComplexRule] = []

        for definition in definitions:
            if definition.name in self._definitions:
                raise OsDefinitionError(f"Duplicate OS definition {definition.name}")
            self._definitions[definition.name] = definition
            for oid in definition.sys_object_ids:
                self._tree.insert(oid, definition.name)
            sys_descr.extend((definition.name, p) for p in definition.sys_descr)
            for rule in definition.rules:
                (network if rule.network else cheap).append(rule)

        self.sys_descr_rules: tuple[tuple[str, Pattern], ...] = tuple(sys_descr)
        self.complex_rules: tuple[ComplexRule, ...] = tuple(cheap)
        self.network_rules: tuple[ComplexRule, ...] = tuple(network)

    def __contains__(self, os_name: object) -> bool:
        return os_name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, os_name: str) -> OsDefinition | None:
        return self._definitions.get(os_name)

    @property
    def names(self) -> list[str]:
        return list(self._definitions)

    def match_sys_object_id(self, sys_object_id: str | None) -> tuple[str, str] | None:
        return self._tree.longest_match(sys_object_id)

    def rules_for(self, os_name: str) -> list[ComplexRule]:
        """The OS's cheap rules followed by its network rules."""
        definition = self._definitions.get(os_name)
        if definition is None:
            return []
        rules = list(definition.rules)
        return [r for r in rules if not r.network] + [r for r in rules if r.network]

    @classmethod
    def from_mapping(cls, data: dict) -> "OsRuleCorpus":
        entries = data.get("os", data) if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            raise OsDefinitionError("OS definitions must be a mapping of os name -> definition")

        definitions = []
        for name, raw in entries.items():
            raw = raw or {}
            name = str(name)
            sys_object_ids = raw.get("sysObjectID", [])
            if isinstance(sys_object_ids, str):
                sys_object_ids = [sys_object_ids]
            for oid in sys_object_ids:
                if not is_numeric_oid(str(oid)):
                    raise OsDefinitionError(f"{name}: sysObjectID {oid} is not numeric")
            descr = raw.get("sysDescr", [])
            if isinstance(descr, str):
                descr = [descr]
            definitions.append(OsDefinition(
                name=name,
                text=raw.get("text", name),
                vendor=raw.get("vendor"),
                group=raw.get("group"),
                sys_object_ids=tuple(str(o).strip(".") for o in sys_object_ids),
                sys_descr=tuple(Pattern.parse(p) for p in descr),
                rules=tuple(_parse_rule(name, r) for r in raw.get("discovery", [])),
            ))
        return cls(definitions)

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "OsRuleCorpus":
        path = Path(path) if path else DEFAULT_DEFINITIONS
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        corpus = cls.from_mapping(data or {})
        log.info("os_definitions_loaded", path=str(path), count=len(corpus),
                 complex=len(corpus.complex_rules), network=len(corpus.network_rules))
        return corpus


# ────────────────────────────────────────────────
# Custom matchers
# ────────────────────────────────────────────────

CustomMatcher = Callable[["MatchContext"], Awaitable[str | None]]


class CustomMatcherRegistry:
    """Named async matchers for devices the declarative rules cannot describe."""

    def __init__(self):
        self._matchers: dict[str, CustomMatcher] = {}

    def register(self, os_name: str):
        def decorator(fn: CustomMatcher) -> CustomMatcher:
            self._matchers[os_name] = fn
            return fn
        return decorator

    def ordered(self, prior_os: str | None = None) -> list[tuple[str, CustomMatcher]]:
        items = list(self._matchers.items())
        if prior_os in self._matchers:
            items.sort(key=lambda item: item[0] != prior_os)
        return items

    def __contains__(self, os_name: object) -> bool:
        return os_name in self._matchers


default_registry = CustomMatcherRegistry()


@default_registry.register("hikvision-cam")
async def _match_hikvision(ctx: "MatchContext") -> str | None:
    # Hikvision cameras report a net-snmp sysObjectID; the vendor tree gives them away
    response = await ctx.get("1.3.6.1.4.1.39165.1.1.0")
    if response.ok and response.value:
        return "hikvision-cam"
    return None


# ────────────────────────────────────────────────
# Matcher
# ────────────────────────────────────────────────

@dataclass
class DeviceFacts:
    target: SnmpTarget
    sys_object_id: str | None = None
    sys_descr: str | None = None


@dataclass
class MatchContext:
    """Per-identification view of a device, caching every OID fetched."""

    snmp: SnmpClient
    target: SnmpTarget
    sys_object_id: str | None
    sys_descr: str | None
    _cache: dict[str, SnmpResponse] = field(default_factory=dict)

    async def get(self, oid: str) -> SnmpResponse:
        if oid not in self._cache:
            self._cache[oid] = await self.snmp.get(self.target, oid)
        return self._cache[oid]


@dataclass(frozen=True)
class OsMatch:
    os: str
    matched_by: str
    definition: str | None = None


class OsFingerprintMatcher:
    def __init__(
        self,
        corpus: OsRuleCorpus,
        snmp: SnmpClient,
        registry: CustomMatcherRegistry | None = None,
    ):
        self.corpus = corpus
        self.snmp = snmp
        self.registry = registry if registry is not None else default_registry

    async def facts(self, target: SnmpTarget) -> DeviceFacts:
        sys_descr = await self.snmp.get(target, OID_SYS_DESCR)
        # an empty sysDescr is a valid answer, a timeout is not
        descr = (sys_descr.value or "") if sys_descr.status in (SnmpStatus.OK, SnmpStatus.EMPTY) else None
        sys_object_id = await self.snmp.get_value(target, OID_SYS_OBJECT_ID)
        return DeviceFacts(target, sys_object_id, descr)

    async def detect(self, target: SnmpTarget, prior_os: str | None = None) -> str:
        """Fetch sysObjectID/sysDescr from ``target`` and identify its OS."""
        match = await self.identify(await self.facts(target), prior_os)
        return match.os

    async def identify(self, facts: DeviceFacts, prior_os: str | None = None) -> OsMatch:
        ctx = MatchContext(self.snmp, facts.target, facts.sys_object_id, facts.sys_descr)
        match = await self._identify(ctx, prior_os)
        log.info("os_detected", hostname=facts.target.hostname, os=match.os,
                 matched_by=match.matched_by, definition=match.definition, prior_os=prior_os)
        return match

    async def _identify(self, ctx: MatchContext, prior_os: str | None) -> OsMatch:
        if prior_os and prior_os in self.corpus:
            for rule in self.corpus.rules_for(prior_os):
                if await rule.evaluate(ctx):
                    return OsMatch(prior_os, "recheck")

        for rule in self.corpus.complex_rules:
            if await rule.evaluate(ctx):
                return OsMatch(rule.os, "complex")

        found = self.corpus.match_sys_object_id(ctx.sys_object_id)
        if found:
            defined_oid, os_name = found
            return OsMatch(os_name, "sysObjectID", defined_oid)

        if ctx.sys_descr:
            for os_name, pattern in self.corpus.sys_descr_rules:
                if pattern.matches(ctx.sys_descr):
                    return OsMatch(os_name, "sysDescr", pattern.source)

        for rule in self.corpus.network_rules:
            if await rule.evaluate(ctx):
                return OsMatch(rule.os, "network")

        for name, matcher in self.registry.ordered(prior_os):
            os_name = await matcher(ctx)
            if os_name:
                return OsMatch(os_name, "custom", name)

        return OsMatch(GENERIC_OS, "generic")
