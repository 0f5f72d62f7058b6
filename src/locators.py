"""Cascading element resolution on top of Playwright locators.

A TargetDescriptor names one UI affordance and lists every selector we know
for it, most reliable first. resolve() probes them in order with a short
timeout each and stops at the first hit, so a missing control costs at most
len(candidates) probes and is reported as NotFound rather than raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_MS = 2000

# Substrings Playwright uses when the page/frame itself went away
_FAULT_MARKERS = (
    "has been closed",
    "target closed",
    "was detached",
    "crashed",
)


@dataclass(frozen=True)
class SelectorCandidate:
    query: str
    visible_only: bool = True
    require_enabled: bool = False
    pick: str = "first"


@dataclass(frozen=True)
class TargetDescriptor:
    name: str
    candidates: tuple[SelectorCandidate, ...]

    def __post_init__(self):
        if not self.candidates:
            raise ValueError(f"Target {self.name!r} needs at least one selector candidate")

    def with_priority(self, queries: list[str]) -> "TargetDescriptor":
        """Return a copy with extra candidates tried before the built-in ones."""
        extra = tuple(SelectorCandidate(q) for q in queries if q)
        return TargetDescriptor(self.name, extra + self.candidates)


def target(name: str, *queries: str, visible_only: bool = True, require_enabled: bool = False, pick: str = "first") -> TargetDescriptor:
    return TargetDescriptor(
        name,
        tuple(SelectorCandidate(q, visible_only=visible_only, require_enabled=require_enabled, pick=pick) for q in queries),
    )


@dataclass(frozen=True)
class Found:
    locator: Any
    index: int
    query: str


@dataclass(frozen=True)
class NotFound:
    target: str
    tried: int


@dataclass(frozen=True)
class Fault:
    target: str
    reason: str


ResolutionResult = Union[Found, NotFound, Fault]


def is_fault(scope, exc: Exception) -> bool:
    """True when exc means the page/frame is unusable, not that an element is absent."""
    message = str(exc).lower()
    if any(marker in message for marker in _FAULT_MARKERS):
        return True
    probe = getattr(scope, "is_closed", None) or getattr(scope, "is_detached", None)
    if probe is None:
        return False
    try:
        return bool(probe())
    except PlaywrightError:
        return True


def _pick(locator, pick: str):
    if pick == "last":
        return locator.last
    return locator.first


async def resolve(scope, descriptor: TargetDescriptor, timeout_ms: int = PROBE_TIMEOUT_MS) -> ResolutionResult:
    """Return the first candidate of descriptor that is present in scope.

    scope is a Playwright Page or Frame. Nothing is clicked or typed.
    """
    for index, candidate in enumerate(descriptor.candidates):
        state = "visible" if candidate.visible_only else "attached"
        try:
            loc = _pick(scope.locator(candidate.query), candidate.pick)
            await loc.wait_for(state=state, timeout=timeout_ms)
            if candidate.require_enabled and not await loc.is_enabled():
                logger.debug(f"  {descriptor.name}: candidate {index + 1} present but disabled ({candidate.query})")
                continue
        except PlaywrightTimeoutError:
            logger.debug(f"  {descriptor.name}: candidate {index + 1} missed ({candidate.query})")
            continue
        except PlaywrightError as e:
            if is_fault(scope, e):
                logger.warning(f"❌ {descriptor.name}: page unavailable while resolving: {e}")
                return Fault(descriptor.name, str(e))
            logger.debug(f"  {descriptor.name}: candidate {index + 1} errored ({candidate.query}): {e}")
            continue
        logger.debug(f"🔍 {descriptor.name} resolved with candidate {index + 1}: {candidate.query}")
        return Found(loc, index, candidate.query)
    return NotFound(descriptor.name, len(descriptor.candidates))


async def is_present(scope, descriptor: TargetDescriptor, timeout_ms: int = PROBE_TIMEOUT_MS) -> bool:
    return isinstance(await resolve(scope, descriptor, timeout_ms), Found)


async def click_target(scope, descriptor: TargetDescriptor, timeout_ms: int = PROBE_TIMEOUT_MS, force: bool = True) -> ResolutionResult:
    """Resolve descriptor and click the match. The result says what happened."""
    result = await resolve(scope, descriptor, timeout_ms)
    if isinstance(result, Found):
        await result.locator.click(force=force, timeout=max(timeout_ms, 5000))
    return result


async def dismiss_overlays(scope, descriptor: TargetDescriptor, max_clicks: int = 3, settle_ms: int = 500) -> int:
    """Click up to max_clicks visible close buttons. Never raises."""
    closed = 0
    for candidate in descriptor.candidates:
        if closed >= max_clicks:
            break
        try:
            matches = scope.locator(candidate.query)
            count = await matches.count()
            for i in range(min(count, max_clicks - closed)):
                button = matches.nth(i)
                if not await button.is_visible():
                    continue
                await button.click(timeout=1000)
                closed += 1
                await scope.wait_for_timeout(settle_ms)
        except PlaywrightError as e:
            logger.debug(f"  Overlay dismissal via {candidate.query} skipped: {e}")
            continue
    if closed:
        logger.info(f"🧹 Closed {closed} overlay(s)")
    return closed


async def describe_visible_controls(scope, limit: int = 20) -> list[str]:
    """Collect a short inventory of visible buttons and inputs for debug logs."""
    inventory: list[str] = []
    try:
        controls = await scope.locator("button, input, select").all()
    except PlaywrightError:
        return inventory
    for control in controls:
        if len(inventory) >= limit:
            break
        try:
            if not await control.is_visible():
                continue
            text = (await control.inner_text()).strip()
            name = await control.get_attribute("name") or ""
            aria = await control.get_attribute("aria-label") or ""
        except PlaywrightError:
            continue
        label = text or aria or name
        if label:
            inventory.append(label)
    return inventory
