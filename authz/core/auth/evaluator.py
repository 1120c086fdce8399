"""
Policy evaluator.

Selects the single authoritative ResourcePolicy (if any) for a request:

1. Load candidates for the resource (global + the given instance)
2. Keep those targeting the action and the acting role
3. Evaluate conditions; drop non-matching, skip malformed
4. Sort by precedence and take the top one

Usage:
    evaluator = PolicyEvaluator(policy_store)
    verdict = await evaluator.evaluate("events", PermissionAction.DELETE, "event-123", Role.CLIENT, user_id)
    if verdict is not None:
        verdict.effect  # PolicyEffect.ALLOW / PolicyEffect.DENY
"""

from dataclasses import dataclass

import structlog

from authz.core.errors import AuthorizationError, InvalidPolicy, StoreUnavailable
from authz.core.interfaces.stores import PolicyStore

# Import to register built-in conditions
from . import conditions  # noqa: F401
from .interfaces import DecisionContext
from .models import PolicyEffect, ResourcePolicy
from .permissions import PermissionAction
from .registry import AuthRegistry
from .roles import Role

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PolicyVerdict:
    """The winning policy of an evaluation."""
    policy: ResourcePolicy

    @property
    def effect(self) -> PolicyEffect:
        return self.policy.effect

    @property
    def allowed(self) -> bool:
        return self.policy.effect is PolicyEffect.ALLOW


class PolicyEvaluator:
    """
    Resolves resource policies into at most one verdict.

    Only logs; never mutates the store.
    """

    def __init__(self, policy_store: PolicyStore):
        self.policy_store = policy_store

    async def evaluate(
        self,
        resource: str,
        action: PermissionAction,
        resource_id: str | None,
        role: Role,
        user_id: str,
        context: DecisionContext | None = None,
    ) -> PolicyVerdict | None:
        """
        Find the authoritative policy.

        Returns:
            PolicyVerdict for the top-ranked matching policy, or None when no
            policy applies (the engine then falls back to role/grant permissions)

        Raises:
            StoreUnavailable: If the policy store cannot be reached
        """
        context = context or DecisionContext()

        try:
            candidates = await self.policy_store.list_policies(resource, resource_id)
        except AuthorizationError:
            raise
        except Exception as e:
            logger.error("Policy store failed", resource=resource, error=str(e))
            raise StoreUnavailable(f"Policy store failed: {e}") from e

        matching = [
            policy
            for policy in candidates
            if policy.applies_to(resource, resource_id)
            and policy.targets(action, role)
            and self._conditions_hold(policy, context, user_id)
        ]

        if not matching:
            return None

        winner = min(matching, key=ResourcePolicy.precedence)
        logger.debug(
            "Policy selected",
            policy_id=winner.id,
            effect=winner.effect.value,
            priority=winner.priority,
            user_id=user_id,
            resource=resource,
            resource_id=resource_id,
        )
        return PolicyVerdict(policy=winner)

    @staticmethod
    def validate(policy: ResourcePolicy) -> None:
        """
        Check that every condition of a policy is known and well-formed.

        Raises:
            InvalidPolicy: If a condition type is unknown or its configuration is malformed
        """
        if not policy.actions:
            raise InvalidPolicy("Policy targets no actions", policy_id=policy.id)

        context = DecisionContext()
        for condition_type, expected in policy.conditions.items():
            if not AuthRegistry.has_condition(condition_type):
                raise InvalidPolicy(
                    f"Unknown condition type: {condition_type!r}. "
                    f"Available: {AuthRegistry.list_conditions()}",
                    policy_id=policy.id,
                )
            try:
                AuthRegistry.get_condition_evaluator(condition_type).evaluate(expected, context)
            except InvalidPolicy as e:
                raise InvalidPolicy(e.detail, policy_id=policy.id) from e

    def _conditions_hold(
        self,
        policy: ResourcePolicy,
        context: DecisionContext,
        user_id: str,
    ) -> bool:
        """
        Evaluate every condition of a policy.

        An indeterminate condition (context lacks the attribute) keeps a DENY
        policy and drops an ALLOW policy. Malformed policies are skipped.
        """
        indeterminate = False

        for condition_type, expected in policy.conditions.items():
            try:
                if not AuthRegistry.has_condition(condition_type):
                    raise InvalidPolicy(f"Unknown condition type: {condition_type!r}")
                evaluator = AuthRegistry.get_condition_evaluator(condition_type)
                result = evaluator.evaluate(expected, context)
            except InvalidPolicy as e:
                logger.warning(
                    "Skipping invalid policy",
                    policy_id=policy.id,
                    condition=condition_type,
                    error=e.detail,
                    user_id=user_id,
                )
                return False

            if result is None:
                indeterminate = True
            elif not result:
                return False

        if indeterminate:
            return policy.effect is PolicyEffect.DENY
        return True
