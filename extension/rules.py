"""Serialized rewrites of the blocking rule set.

The platform rule store rejects duplicate rule ids, so two interleaved
rewrites would fail. Every rewrite therefore waits for the previous one to
finish (or fail) before it starts, and each rewrite replaces the whole rule set.
"""
from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol
from urllib.parse import quote

from core.log import get_logger
from core.settings import EXTENSION

_SCHEME_RE = re.compile(r"^https?://")
_WWW_RE = re.compile(r"^www\.")
_TAIL_RE = re.compile(r"[/?#:].*$")


def normalize_domain(value: str) -> str:
    domain = value.strip().lower()
    domain = _SCHEME_RE.sub("", domain)
    domain = _WWW_RE.sub("", domain)
    domain = _TAIL_RE.sub("", domain)
    return domain


def rules_active(enabled: bool, mode: str, session_active: bool) -> bool:
    return bool(enabled) and (mode == "always" or bool(session_active))


def build_rules(
    blocklist: Iterable[str],
    enabled: bool,
    mode: str = "work",
    session_active: bool = False,
    *,
    block_page: str = EXTENSION.block_page,
) -> List[Dict[str, Any]]:
    if not rules_active(enabled, mode, session_active):
        return []
    domains: List[str] = []
    for entry in blocklist:
        domain = normalize_domain(entry) if isinstance(entry, str) else ""
        if domain and domain not in domains:
            domains.append(domain)
    return [
        {
            "id": index + 1,
            "priority": 1,
            "action": {
                "type": "redirect",
                "redirect": {"extensionPath": f"{block_page}?domain={quote(domain, safe='')}"},
            },
            "condition": {"urlFilter": f"||{domain}", "resourceTypes": ["main_frame"]},
        }
        for index, domain in enumerate(domains)
    ]


class RuleStore(Protocol):
    async def get_dynamic_rules(self) -> List[Dict[str, Any]]: ...

    async def update_dynamic_rules(
        self,
        remove_rule_ids: List[int],
        add_rules: List[Dict[str, Any]],
    ) -> None: ...


class DuplicateRuleIdError(ValueError):
    pass


class InMemoryRuleStore:
    """Process-local rule store with the platform's duplicate-id check."""

    def __init__(self):
        self.rules: Dict[int, Dict[str, Any]] = {}
        self.updates = 0

    async def get_dynamic_rules(self) -> List[Dict[str, Any]]:
        return [dict(rule) for rule in self.rules.values()]

    async def update_dynamic_rules(self, remove_rule_ids, add_rules) -> None:
        remaining = {rid: rule for rid, rule in self.rules.items() if rid not in set(remove_rule_ids)}
        for rule in add_rules:
            if rule["id"] in remaining:
                raise DuplicateRuleIdError(f"Rule with id {rule['id']} already exists")
            remaining[rule["id"]] = dict(rule)
        self.rules = remaining
        self.updates += 1


class RuleScheduler:
    def __init__(self, store: RuleStore, *, block_page: str = EXTENSION.block_page):
        self.store = store
        self.block_page = block_page
        self.session_active = False
        self._last: Optional[tuple[List[str], bool, str]] = None
        self._tail: Optional[asyncio.Future] = None
        self.logger = get_logger("rules")

    def schedule_update(
        self,
        blocklist: Iterable[str],
        enabled: bool,
        mode: str = "work",
        session_active: Optional[bool] = None,
    ) -> asyncio.Future:
        """Queue a full rewrite behind whatever rewrite is already queued."""
        if session_active is not None:
            self.session_active = bool(session_active)
        domains = list(blocklist)
        self._last = (domains, bool(enabled), mode)
        rules = build_rules(domains, enabled, mode, self.session_active, block_page=self.block_page)
        previous = self._tail
        self._tail = asyncio.ensure_future(self._run_after(previous, rules))
        return self._tail

    def set_session_active(self, active: bool) -> Optional[asyncio.Future]:
        if bool(active) == self.session_active:
            return None
        self.session_active = bool(active)
        if self._last is None:
            return None
        blocklist, enabled, mode = self._last
        return self.schedule_update(blocklist, enabled, mode)

    async def idle(self) -> None:
        while self._tail is not None and not self._tail.done():
            await asyncio.wait([self._tail])

    async def _run_after(self, previous: Optional[asyncio.Future], rules: List[Dict[str, Any]]) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self._rewrite(rules)
        except Exception as exc:
            self.logger.warning("Rule rewrite failed: %s", exc)

    async def _rewrite(self, rules: List[Dict[str, Any]]) -> None:
        existing = await self.store.get_dynamic_rules()
        await self.store.update_dynamic_rules(
            remove_rule_ids=[rule["id"] for rule in existing],
            add_rules=rules,
        )
        self.logger.info("Applied %s blocking rule(s)", len(rules))


__all__ = [
    "DuplicateRuleIdError",
    "InMemoryRuleStore",
    "RuleScheduler",
    "RuleStore",
    "build_rules",
    "normalize_domain",
    "rules_active",
]
