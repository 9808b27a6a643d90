"""Persistence strategy for local state mutations."""

from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


async def apply_mutation(
    *,
    optimistic: bool,
    apply: Callable[[], None],
    rollback: Callable[[], None],
    persist: Callable[[], Awaitable[T]],
) -> T:
    """Apply a local change and persist it remotely.

    Optimistic: ``apply`` runs before ``persist``; if persisting raises,
    ``rollback`` restores the previous state and the error propagates.

    Confirmed (not optimistic): ``persist`` runs first and ``apply`` runs
    only after it succeeds, so a failure leaves local state untouched and
    ``rollback`` is never called.
    """
    if optimistic:
        apply()
        try:
            return await persist()
        except Exception:
            rollback()
            raise

    result = await persist()
    apply()
    return result
