"""
Authorization plugin registry.

Allows registering condition evaluators and decision cache backends
without modifying core code. Implementations register themselves
using decorators.

Usage:
    @AuthRegistry.condition("ip_range")
    class IpRangeCondition(ConditionEvaluator):
        ...

    @AuthRegistry.decision_cache("memory")
    class MemoryDecisionCache:
        ...

    # Later, get by name:
    cache = AuthRegistry.get_decision_cache("memory", default_ttl=300)
"""

from typing import Type, Callable, Any

from .interfaces import ConditionEvaluator


class AuthRegistry:
    """
    Central registry for authorization components.

    Components register themselves using decorators.
    This enables extensibility without modifying factory code.
    """

    _condition_evaluators: dict[str, Type[ConditionEvaluator]] = {}
    _decision_caches: dict[str, Type[Any]] = {}

    # ============================================================
    # REGISTRATION DECORATORS
    # ============================================================

    @classmethod
    def condition(cls, condition_type: str) -> Callable[[Type[ConditionEvaluator]], Type[ConditionEvaluator]]:
        """
        Decorator to register a condition evaluator.

        Usage:
            @AuthRegistry.condition("time_window")
            class TimeWindowCondition(ConditionEvaluator):
                ...
        """
        def decorator(evaluator_class: Type[ConditionEvaluator]) -> Type[ConditionEvaluator]:
            cls._condition_evaluators[condition_type] = evaluator_class
            return evaluator_class
        return decorator

    @classmethod
    def decision_cache(cls, name: str) -> Callable[[Type[Any]], Type[Any]]:
        """
        Decorator to register a decision cache backend.

        Usage:
            @AuthRegistry.decision_cache("redis")
            class RedisDecisionCache:
                ...
        """
        def decorator(cache_class: Type[Any]) -> Type[Any]:
            cls._decision_caches[name] = cache_class
            return cache_class
        return decorator

    # ============================================================
    # GETTERS
    # ============================================================

    @classmethod
    def get_condition_evaluator(cls, condition_type: str, **kwargs: Any) -> ConditionEvaluator:
        """
        Get a condition evaluator by type.

        Args:
            condition_type: Registered type of the condition
            **kwargs: Arguments to pass to evaluator constructor

        Raises:
            ValueError: If condition type not found
        """
        evaluator_class = cls._condition_evaluators.get(condition_type)
        if not evaluator_class:
            available = list(cls._condition_evaluators.keys())
            raise ValueError(
                f"Unknown condition type: '{condition_type}'. "
                f"Available: {available}"
            )
        return evaluator_class(**kwargs)

    @classmethod
    def get_decision_cache(cls, name: str, **kwargs: Any) -> Any:
        """
        Get a decision cache backend by name.

        Args:
            name: Registered name of the backend
            **kwargs: Arguments to pass to backend constructor

        Raises:
            ValueError: If backend not found
        """
        cache_class = cls._decision_caches.get(name)
        if not cache_class:
            available = list(cls._decision_caches.keys())
            raise ValueError(
                f"Unknown decision cache: '{name}'. "
                f"Available: {available}"
            )
        return cache_class(**kwargs)

    # ============================================================
    # INTROSPECTION
    # ============================================================

    @classmethod
    def list_conditions(cls) -> list[str]:
        """List all registered condition types."""
        return list(cls._condition_evaluators.keys())

    @classmethod
    def list_decision_caches(cls) -> list[str]:
        """List all registered decision cache names."""
        return list(cls._decision_caches.keys())

    @classmethod
    def has_condition(cls, condition_type: str) -> bool:
        """Check if a condition type is registered."""
        return condition_type in cls._condition_evaluators
