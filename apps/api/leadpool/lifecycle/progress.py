"""Customer progress vocabulary and transition rules.

Stored progress values are display strings (for example "初步接触"). Code works
with :class:`ProgressState` and maps to the stored strings through a
:class:`ProgressVocabulary`, which is built from settings so deployments that
use a different vocabulary only change configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from leadpool.core.config import Settings, get_settings
from leadpool.lifecycle.errors import ValidationError
from leadpool.lifecycle.models import Customer, utcnow


logger = logging.getLogger("leadpool.lifecycle")


class ProgressState(str, Enum):
    INITIAL_CONTACT = "INITIAL_CONTACT"
    NORMAL = "NORMAL"
    PUBLIC_POOL = "PUBLIC_POOL"
    DISABLED = "DISABLED"
    SAMPLE_EVALUATION = "SAMPLE_EVALUATION"


@dataclass(frozen=True)
class ProgressVocabulary:
    initial_contact: str
    normal: str
    public_pool: str
    disabled: str
    sample_evaluation: str

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ProgressVocabulary:
        resolved = settings or get_settings()
        vocabulary = cls(
            initial_contact=resolved.progress_initial_contact,
            normal=resolved.progress_normal,
            public_pool=resolved.progress_public_pool,
            disabled=resolved.progress_disabled,
            sample_evaluation=resolved.progress_sample_evaluation,
        )
        if len(set(vocabulary.labels())) != len(ProgressState):
            raise ValueError("progress vocabulary labels must be distinct")
        return vocabulary

    def label(self, state: ProgressState) -> str:
        return {
            ProgressState.INITIAL_CONTACT: self.initial_contact,
            ProgressState.NORMAL: self.normal,
            ProgressState.PUBLIC_POOL: self.public_pool,
            ProgressState.DISABLED: self.disabled,
            ProgressState.SAMPLE_EVALUATION: self.sample_evaluation,
        }[state]

    def labels(self) -> list[str]:
        return [self.label(state) for state in ProgressState]

    def state_of(self, value: str | None) -> ProgressState | None:
        if not value:
            return None
        for state in ProgressState:
            if value == self.label(state) or value == state.value:
                return state
        return None

    def resolve(self, value: str | None) -> ProgressState:
        state = self.state_of(value)
        if state is None:
            raise ValidationError("invalid progress value", details={"allowed": self.labels()})
        return state


@dataclass(frozen=True)
class ProgressTransition:
    from_state: ProgressState | None
    to_state: ProgressState
    from_label: str
    to_label: str


class ProgressStateMachine:
    def __init__(self, vocabulary: ProgressVocabulary | None = None) -> None:
        self._vocabulary = vocabulary

    @property
    def vocabulary(self) -> ProgressVocabulary:
        return self._vocabulary or ProgressVocabulary.from_settings()

    def on_assignment(self, has_work_items: bool) -> ProgressState:
        return ProgressState.NORMAL if has_work_items else ProgressState.INITIAL_CONTACT

    def plan_change(self, current: str, target: str | None) -> ProgressTransition | None:
        """Validate an operator-driven change; ``None`` means the change is a no-op."""
        to_state = self.vocabulary.resolve(target)
        from_state = self.vocabulary.state_of(current)
        if from_state is to_state:
            return None
        if from_state is ProgressState.PUBLIC_POOL:
            raise ValidationError("customer in public pool can only leave it through redistribution")
        return ProgressTransition(
            from_state=from_state,
            to_state=to_state,
            from_label=current,
            to_label=self.vocabulary.label(to_state),
        )

    def transition(self, current: str, to_state: ProgressState) -> ProgressTransition:
        return ProgressTransition(
            from_state=self.vocabulary.state_of(current),
            to_state=to_state,
            from_label=current,
            to_label=self.vocabulary.label(to_state),
        )

    def disable_siblings(self, session: Session, customer_id, customer_name: str) -> list[str]:
        """Flip same-named INITIAL_CONTACT customers to DISABLED and return their ids.

        Runs after the primary write has committed and is not atomic with it.
        """
        initial_label = self.vocabulary.label(ProgressState.INITIAL_CONTACT)
        siblings = list(
            session.scalars(
                select(Customer).where(
                    and_(
                        Customer.name == customer_name,
                        Customer.progress == initial_label,
                        Customer.id != customer_id,
                    )
                )
            ).all()
        )
        sibling_ids = [sibling.id for sibling in siblings]
        if not sibling_ids:
            return []

        now = utcnow()
        session.execute(
            update(Customer)
            .where(
                and_(
                    Customer.id.in_(sibling_ids),
                    Customer.progress == initial_label,
                )
            )
            .values(
                progress=self.vocabulary.label(ProgressState.DISABLED),
                last_update_time=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        logger.info(
            "customer.siblings_disabled",
            extra={"customer_id": str(customer_id), "customer_name": customer_name, "count": len(sibling_ids)},
        )
        return [str(sibling_id) for sibling_id in sibling_ids]
