from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

from range_vault.core.errors import VaultError

T = TypeVar("T")


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Wrap an async adapter method to return ``(True, result)`` or ``(False, error_str)``.

    Vault-level failures (bad input, guard trips) are expected and logged as
    warnings; anything else is an error (RPC down, malformed response).
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            result = await fn(self, *args, **kwargs)
            return (True, result)
        except VaultError as exc:
            self.logger.warning(f"{fn.__name__} rejected: {exc}")
            return (False, str(exc))
        except Exception as exc:
            self.logger.error(f"Error in {fn.__name__}: {exc}")
            return (False, str(exc))

    return wrapper  # type: ignore[return-value]
