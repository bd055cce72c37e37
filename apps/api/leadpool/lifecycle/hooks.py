"""Best-effort steps that run after a primary write has committed.

The primary customer update and its follow-up writes (history rows, sibling
DISABLED propagation, project visibility cascade, domain events) are separate
commits. A failed step never undoes the primary write and never stops later
steps; every step reports a :class:`HookOutcome` so callers can decide whether
to surface it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from leadpool.metrics import observe_hook_failure


logger = logging.getLogger("leadpool.lifecycle")


@dataclass(frozen=True)
class HookOutcome:
    name: str
    ok: bool
    error: BaseException | None = None
    result: Any = None


@dataclass
class PostCommitHooks:
    steps: list[tuple[str, Callable[[], Any]]] = field(default_factory=list)

    def add(self, name: str, step: Callable[[], Any]) -> None:
        self.steps.append((name, step))

    def run(self, session: Session) -> list[HookOutcome]:
        outcomes: list[HookOutcome] = []
        for name, step in self.steps:
            try:
                result = step()
            except Exception as exc:
                session.rollback()
                observe_hook_failure(name)
                logger.exception(
                    "customer.post_commit_hook_failed",
                    extra={"hook": name, "error": str(exc)},
                )
                outcomes.append(HookOutcome(name=name, ok=False, error=exc))
                continue
            outcomes.append(HookOutcome(name=name, ok=True, result=result))
        return outcomes


def first_failure(outcomes: list[HookOutcome], name: str) -> HookOutcome | None:
    for outcome in outcomes:
        if outcome.name == name and not outcome.ok:
            return outcome
    return None
