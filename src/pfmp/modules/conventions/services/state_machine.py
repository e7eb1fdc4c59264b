"""
Signature workflow of a convention.

Every question about who may act on a convention in which state is answered
from the TRANSITIONS table below: actionability, the status reached after a
signature, the pending signers and the labels shown to users.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Optional, Tuple

from pfmp.modules.conventions.exceptions import InvalidTransition
from pfmp.modules.conventions.models.enums import ConventionStatus, Role

logger = logging.getLogger(__name__)

S = ConventionStatus


@dataclass(frozen=True)
class SigningState:
    """What the workflow needs to know about a convention, detached from the ORM."""
    status: ConventionStatus
    est_mineur: bool
    signed_roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def of(cls, convention) -> "SigningState":
        if isinstance(convention, SigningState):
            return convention
        return cls(
            status=convention.status,
            est_mineur=bool(convention.est_mineur),
            signed_roles=frozenset(convention.signed_roles),
        )

    def has_signed(self, role: Role) -> bool:
        return role in self.signed_roles


def _partners_target(state: SigningState) -> ConventionStatus:
    # Tutor present means the "partner" bucket is SIGNED_TUTOR whatever the order.
    if state.has_signed(Role.TUTOR):
        return S.SIGNED_TUTOR
    return S.SIGNED_COMPANY


@dataclass(frozen=True)
class Transition:
    role: Role
    sources: frozenset
    target: Callable[[SigningState], ConventionStatus]
    guard: Callable[[SigningState], bool] = lambda state: True

    def allows(self, state: SigningState) -> bool:
        return state.status in self.sources and self.guard(state)


_PARTNER_SOURCES = frozenset({S.VALIDATED_TEACHER, S.SIGNED_COMPANY, S.SIGNED_TUTOR})

TRANSITIONS: Tuple[Transition, ...] = (
    Transition(Role.PARENT, frozenset({S.SUBMITTED}), lambda s: S.SIGNED_PARENT,
               guard=lambda s: s.est_mineur),
    Transition(Role.TEACHER, frozenset({S.SUBMITTED}), lambda s: S.VALIDATED_TEACHER,
               guard=lambda s: not s.est_mineur),
    Transition(Role.TEACHER, frozenset({S.SIGNED_PARENT}), lambda s: S.VALIDATED_TEACHER),
    Transition(Role.COMPANY_HEAD, _PARTNER_SOURCES, _partners_target),
    Transition(Role.TUTOR, _PARTNER_SOURCES, _partners_target),
    Transition(Role.SCHOOL_HEAD, frozenset({S.SIGNED_TUTOR}), lambda s: S.VALIDATED_HEAD,
               guard=lambda s: s.has_signed(Role.COMPANY_HEAD) and s.has_signed(Role.TUTOR)),
)

REJECTABLE_STATUSES = frozenset({
    S.SUBMITTED, S.SIGNED_PARENT, S.VALIDATED_TEACHER, S.SIGNED_COMPANY, S.SIGNED_TUTOR,
})

# Order in which parties normally sign; used to rebuild a status from signatures.
SIGNING_ORDER = (
    Role.PARENT, Role.TEACHER, Role.COMPANY_HEAD, Role.TUTOR, Role.SCHOOL_HEAD,
)


class ConventionStateMachine:

    @staticmethod
    def find_transition(role: Role, state: SigningState) -> Optional[Transition]:
        for transition in TRANSITIONS:
            if transition.role is role and transition.allows(state):
                return transition
        return None

    @staticmethod
    def is_actionable(role: Role, convention) -> bool:
        """
        True when ``role`` may sign ``convention`` right now.
        False as soon as the role's signature key is present.
        """
        state = SigningState.of(convention)
        if state.has_signed(role):
            return False
        return ConventionStateMachine.find_transition(role, state) is not None

    @staticmethod
    def apply(role: Role, convention) -> SigningState:
        """
        Returns the state reached once ``role`` has signed.
        Raises InvalidTransition when the role may not sign.
        """
        state = SigningState.of(convention)
        if state.has_signed(role):
            raise InvalidTransition(f"Le rôle {role.label} a déjà signé cette convention.")
        transition = ConventionStateMachine.find_transition(role, state)
        if transition is None:
            raise InvalidTransition(
                f"La signature n'a pas pu être prise en compte. "
                f"Statut : {state.status.value}, Rôle : {role.value}."
            )
        signed = replace(state, signed_roles=state.signed_roles | {role})
        new_status = transition.target(signed)
        logger.debug("%s signs: %s -> %s", role.value, state.status.value, new_status.value)
        return replace(signed, status=new_status)

    @staticmethod
    def apply_many(roles: Iterable[Role], convention) -> List[Tuple[Role, SigningState]]:
        """Applies several signatures in sequence, each guarded on its own."""
        state = SigningState.of(convention)
        steps = []
        for role in roles:
            state = ConventionStateMachine.apply(role, state)
            steps.append((role, state))
        return steps

    @staticmethod
    def can_reject(role: Role, convention) -> bool:
        state = SigningState.of(convention)
        return role is Role.TEACHER and state.status in REJECTABLE_STATUSES

    @staticmethod
    def reject(role: Role, convention) -> SigningState:
        state = SigningState.of(convention)
        if not ConventionStateMachine.can_reject(role, state):
            raise InvalidTransition(
                f"Le rôle {role.label} ne peut pas rejeter une convention au statut {state.status.value}."
            )
        return replace(state, status=S.REJECTED)

    @staticmethod
    def pending_roles(convention) -> List[Role]:
        """Roles expected to act next, in signing order."""
        return [role for role in SIGNING_ORDER if ConventionStateMachine.is_actionable(role, convention)]

    @staticmethod
    def derive_status(signed_roles: Iterable[Role], est_mineur: bool) -> ConventionStatus:
        """
        Furthest status reachable from SUBMITTED using only the given signatures.
        """
        remaining = set(signed_roles)
        state = SigningState(status=S.SUBMITTED, est_mineur=est_mineur)
        progressed = True
        while progressed:
            progressed = False
            for role in SIGNING_ORDER:
                if role in remaining and ConventionStateMachine.is_actionable(role, state):
                    state = ConventionStateMachine.apply(role, state)
                    remaining.discard(role)
                    progressed = True
        return state.status

    @staticmethod
    def action_label(role: Role, convention) -> str:
        state = SigningState.of(convention)
        if role is Role.TEACHER and state.status is S.REJECTED:
            return "Voir les motifs"
        if not ConventionStateMachine.is_actionable(role, state):
            return "Voir le dossier"
        if role is Role.TEACHER:
            return "Valider le projet"
        if role is Role.PARENT:
            return "Vérifier et signer"
        return "Signer la convention"

    @staticmethod
    def status_label(convention) -> str:
        state = SigningState.of(convention)
        if state.status is S.VALIDATED_HEAD:
            return "Convention signée par tous et validée"
        if state.status is S.REJECTED:
            return "Demande rejetée / À corriger"
        pending = ConventionStateMachine.pending_roles(state)
        if not pending:
            return "En attente"
        return "En attente de signature : " + " et ".join(role.label for role in pending)
