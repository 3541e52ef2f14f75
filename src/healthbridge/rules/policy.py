"""Ordered policy gate for canonical events."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from ..events.models import CanonicalEvent

logger = structlog.get_logger()


@dataclass(frozen=True)
class Policy:
    """Named predicate an event must satisfy to be admitted downstream."""
    name: str
    check: Callable[[CanonicalEvent], bool]
    reason: str


@dataclass
class PolicyResult:
    """Outcome of evaluating one event."""
    allowed: bool
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def violated_policy(self) -> Optional[str]:
        return self.metadata.get("violated_policy")


class PolicyGate:
    """Evaluates policies in declaration order.

    The first failing policy short-circuits evaluation and is reported as
    the violator, so attribution does not depend on which later policies
    would also have failed.
    """

    def __init__(self, policies: Optional[Iterable[Policy]] = None):
        self._policies: List[Policy] = []
        for policy in policies or ():
            self.register(policy)

    def register(self, policy: Policy) -> None:
        if any(p.name == policy.name for p in self._policies):
            raise ValueError(f"Policy already registered: {policy.name}")
        self._policies.append(policy)

    @property
    def policies(self) -> List[Policy]:
        return list(self._policies)

    def evaluate(self, event: CanonicalEvent) -> PolicyResult:
        logger.debug(f"Validating policy for event: {event.id}")

        for policy in self._policies:
            try:
                passed = bool(policy.check(event))
                reason = policy.reason
            except Exception as e:
                passed = False
                reason = f"{policy.reason} (check failed: {e})"

            if not passed:
                logger.info(f"Policy violation: {policy.name} - {reason}", event_id=event.id)
                return PolicyResult(
                    allowed=False,
                    reason=reason,
                    metadata={"violated_policy": policy.name},
                )

        return PolicyResult(
            allowed=True,
            reason="All policies passed",
            metadata={"policies_checked": len(self._policies)},
        )

    @classmethod
    def from_config(cls, config) -> "PolicyGate":
        return cls(default_policies(config))


def default_policies(config) -> List[Policy]:
    """Built-in admission policies, in evaluation order."""
    whitelist = frozenset(config.policy.facility_whitelist)
    required_type = config.policy.required_message_type

    return [
        Policy(
            name="patient-mrn-required",
            check=lambda event: bool(event.payload.patient_mrn),
            reason="Patient MRN is required",
        ),
        Policy(
            name="valid-message-type",
            check=lambda event: bool(event.payload.message_type) and required_type in event.payload.message_type,
            reason=f"Invalid message type - must be {required_type}",
        ),
        Policy(
            name="facility-whitelist",
            check=lambda event: event.facility_id in whitelist,
            reason="Facility not in whitelist",
        ),
    ]
