import asyncio
from typing import Callable, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking function in the default executor.

    Central helper so storage calls never block the event loop and the
    offloading strategy can change in one place.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
