"""
Decision engine.

The single public entry point for authorization decisions. Combines:
- role hierarchy + default role permissions
- per-user direct grants
- per-resource conditional policies (authoritative when one applies)

Any failure degrades to DENY with a stable reason; the failure detail only
reaches logs and the audit sink.

Usage:
    engine = DecisionEngine(grant_store, policy_store, cache=MemoryDecisionCache())

    verdict = await engine.authorize(user_id, "events", PermissionAction.DELETE, "event-123")
    if not verdict.allowed:
        raise HTTPException(403, verdict.reason)
"""

import asyncio
from datetime import datetime

import structlog

from authz.core.errors import AuthorizationError, Cancelled, StoreUnavailable
from authz.core.interfaces.audit import AuditEvent, AuditSink
from authz.core.interfaces.cache import DecisionCache
from authz.core.interfaces.stores import GrantStore, PolicyStore

from .evaluator import PolicyEvaluator, PolicyVerdict
from .interfaces import DecisionContext, Reason, Verdict
from .models import EffectivePermissionSet
from .permissions import PermissionAction, parse_action, permission_id
from .resolver import EffectivePermissionResolver
from .roles import RoleHierarchy

logger = structlog.get_logger(__name__)


class DecisionEngine:
    """
    Authorization decision engine.

    Safe for concurrent use from many tasks: the only shared mutable state
    is the injected cache, and no lock is held across store I/O.

    Configuration:
        cache: Per-engine DecisionCache (None disables caching)
        audit_sink: Receives every DENY and every policy-driven verdict
        hierarchy: RoleHierarchy (super admin peer management flag)
        cache_ttl: TTL of cached permission sets (seconds)
        default_timeout: Deadline applied when authorize() gets none (seconds)
    """

    def __init__(
        self,
        grant_store: GrantStore,
        policy_store: PolicyStore,
        cache: DecisionCache | None = None,
        audit_sink: AuditSink | None = None,
        hierarchy: RoleHierarchy | None = None,
        cache_ttl: int = 300,
        default_timeout: float | None = None,
    ):
        self.hierarchy = hierarchy or RoleHierarchy()
        self.cache = cache
        self.audit_sink = audit_sink
        self.default_timeout = default_timeout
        self.resolver = EffectivePermissionResolver(
            grant_store,
            cache=cache,
            cache_ttl=cache_ttl,
            hierarchy=self.hierarchy,
        )
        self.evaluator = PolicyEvaluator(policy_store)

    # ============================================================
    # DECISIONS
    # ============================================================

    async def authorize(
        self,
        user_id: str,
        resource: str,
        action: PermissionAction | str,
        resource_id: str | None = None,
        *,
        context: DecisionContext | None = None,
        timeout: float | None = None,
    ) -> Verdict:
        """
        Decide whether a user may perform an action on a resource.

        Args:
            user_id: Authenticated user
            resource: Resource type (e.g. "events")
            action: PermissionAction or its name
            resource_id: Optional resource instance
            context: Request attributes for policy conditions
            timeout: Deadline in seconds (defaults to the engine's default)

        Returns:
            Verdict; never raises for decision-path failures. Cancelling the
            awaiting task propagates CancelledError instead of a verdict.
        """
        context = context or DecisionContext()
        timeout = timeout if timeout is not None else self.default_timeout
        policy: PolicyVerdict | None = None

        try:
            async with asyncio.timeout(timeout):
                verdict, policy = await self._decide(
                    user_id, resource, action, resource_id, context
                )
        except TimeoutError:
            error = Cancelled(f"No decision within {timeout}s")
            logger.warning("Authorization timed out", user_id=user_id, resource=resource, timeout=timeout)
            verdict = Verdict.deny(error.reason)
            await self._audit(user_id, resource, action, resource_id, context, verdict, detail=error.detail)
            return verdict
        except AuthorizationError as e:
            self._log_failure(e, user_id, resource)
            verdict = Verdict.deny(e.reason)
            await self._audit(user_id, resource, action, resource_id, context, verdict, detail=e.detail)
            return verdict
        except Exception as e:
            logger.exception("Authorization failed", user_id=user_id, resource=resource)
            error = StoreUnavailable(str(e))
            verdict = Verdict.deny(error.reason)
            await self._audit(user_id, resource, action, resource_id, context, verdict, detail=error.detail)
            return verdict

        if not verdict.allowed or verdict.policy_driven:
            await self._audit(
                user_id,
                resource,
                action,
                resource_id,
                context,
                verdict,
                policy_id=policy.policy.id if policy else None,
            )

        return verdict

    async def _decide(
        self,
        user_id: str,
        resource: str,
        action: PermissionAction | str,
        resource_id: str | None,
        context: DecisionContext,
    ) -> tuple[Verdict, PolicyVerdict | None]:
        action = parse_action(action)
        required = permission_id(resource, action)

        permissions = await self.resolver.resolve(user_id, now=context.now)

        policy = await self.evaluator.evaluate(
            resource,
            action,
            resource_id,
            permissions.role,
            user_id,
            context,
        )
        if policy is not None:
            if policy.allowed:
                return Verdict.allow(Reason.POLICY_ALLOW), policy
            return Verdict.deny(Reason.POLICY_DENY), policy

        if permissions.has(required):
            return Verdict.allow(Reason.ROLE_OR_GRANT), None
        return Verdict.deny(Reason.NO_PERMISSION), None

    # ============================================================
    # MANAGEMENT GUARD
    # ============================================================

    async def can_manage_user(
        self,
        actor_id: str,
        target_user_id: str,
        now: datetime | None = None,
    ) -> bool:
        """
        Check if actor may mutate the target's roles and permissions.

        Resolves both users' effective roles and compares them in the
        hierarchy. Any resolution failure returns False.
        """
        try:
            actor = await self.resolver.resolve(actor_id, now=now)
            target = await self.resolver.resolve(target_user_id, now=now)
        except AuthorizationError as e:
            self._log_failure(e, actor_id, "users")
            return False

        return self.hierarchy.can_manage_levels(
            actor.role,
            actor.level,
            target.role,
            target.level,
        )

    async def effective_permissions(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> EffectivePermissionSet:
        """
        Get a user's effective role and permission ids.

        Raises:
            AuthorizationError: If the user's grants cannot be resolved
        """
        return await self.resolver.resolve(user_id, now=now)

    # ============================================================
    # HELPERS
    # ============================================================

    def _log_failure(self, error: AuthorizationError, user_id: str, resource: str) -> None:
        if isinstance(error, StoreUnavailable):
            logger.error("Authorization store failure", user_id=user_id, resource=resource, error=error.detail)
        else:
            # Undefined roles/permissions in stored data
            logger.warning(
                "Authorization data integrity problem",
                user_id=user_id,
                resource=resource,
                reason=error.reason,
                error=error.detail,
            )

    async def _audit(
        self,
        user_id: str,
        resource: str,
        action: PermissionAction | str,
        resource_id: str | None,
        context: DecisionContext,
        verdict: Verdict,
        detail: str | None = None,
        policy_id: str | None = None,
    ) -> None:
        if self.audit_sink is None:
            return

        event = AuditEvent(
            user_id=user_id,
            resource=resource,
            action=action.value if isinstance(action, PermissionAction) else str(action),
            verdict="ALLOW" if verdict.allowed else "DENY",
            reason=verdict.reason,
            resource_id=resource_id,
            actor_ip=context.client_ip,
            detail=detail,
            policy_id=policy_id,
        )
        try:
            await self.audit_sink.emit(event)
        except Exception as e:
            # Sink failures never change the verdict
            logger.error("Audit sink failed", user_id=user_id, error=str(e))
