"""
Price Stream Manager

Polling price streams. Each stream fetches prices for a fixed list of
identifiers once immediately and then every `interval` seconds, pushing one
PriceStreamUpdate per priced identifier to its on_update callback.

Stopping is deterministic: once stop_stream() returns, the stream emits nothing
more. A fetch that is already in flight is allowed to finish, but its result is
discarded.
"""

import asyncio
import inspect
import secrets
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.config import settings
from core.logging import get_logger
from core.schemas import PriceStreamUpdate
from core.utils.time import current_utc_timestamp

UpdateCallback = Callable[[PriceStreamUpdate], Any]
ErrorCallback = Callable[[Exception], Any]


@dataclass
class _PriceStream:
    handle: str
    identifiers: List[str]
    interval: float
    on_update: UpdateCallback
    on_error: Optional[ErrorCallback]
    chain_id: Optional[int]
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return not self.stopped.is_set()


async def _invoke(callback: Callable[[Any], Any], argument: Any) -> None:
    """Call a plain or coroutine callback."""
    result = callback(argument)
    if inspect.isawaitable(result):
        await result


class PriceStreamManager:
    """
    Registry of running price streams.

    Args:
        service: TokenPriceService used for each poll (defaults to the global one)

    Example:
        >>> manager = PriceStreamManager()
        >>> handle = manager.start_stream(["CAKE", "BNB"], interval=5.0, on_update=print)
        >>> ...
        >>> manager.stop_stream(handle)
        True
    """

    def __init__(self, service=None):
        if service is None:
            from services.token_price_service import get_token_price_service
            service = get_token_price_service()

        self.service = service
        self._streams: Dict[str, _PriceStream] = {}
        self._tasks: List[asyncio.Task] = []
        self._logger = get_logger(__name__)

    # ============================================
    # Public API
    # ============================================

    def start_stream(
        self,
        identifiers: List[str],
        interval: Optional[float] = None,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        chain_id: Optional[int] = None,
    ) -> str:
        """
        Start polling prices.

        Must be called from a running event loop.

        Args:
            identifiers: Symbols, market symbols or addresses
            interval: Seconds between polls (defaults to stream_interval)
            on_update: Called with each PriceStreamUpdate (plain function or coroutine)
            on_error: Called with the exception when a poll fails (optional)
            chain_id: Chain to price on (optional)

        Returns:
            Stream handle ("stream_<ms>_<hex>")

        Raises:
            ValueError: If identifiers is empty, interval is not positive or on_update is missing
        """
        if not identifiers:
            raise ValueError("At least one identifier is required")
        if on_update is None:
            raise ValueError("on_update callback is required")

        interval = interval if interval is not None else settings.stream_interval
        if interval <= 0:
            raise ValueError(f"Stream interval must be positive, got {interval}")

        handle = f"stream_{current_utc_timestamp(milliseconds=True)}_{secrets.token_hex(4)}"
        stream = _PriceStream(
            handle=handle,
            identifiers=list(dict.fromkeys(identifiers)),
            interval=interval,
            on_update=on_update,
            on_error=on_error,
            chain_id=chain_id,
        )
        stream.task = asyncio.create_task(self._run(stream), name=handle)
        self._streams[handle] = stream
        self._tasks.append(stream.task)
        stream.task.add_done_callback(self._tasks.remove)

        self._logger.info(f"Started price stream {handle} for {len(stream.identifiers)} identifier(s) every {interval}s")
        return handle

    def stop_stream(self, handle: str) -> bool:
        """
        Stop one stream.

        Returns:
            True if the stream was running, False for an unknown handle
        """
        stream = self._streams.pop(handle, None)
        if stream is None:
            return False
        stream.stopped.set()
        self._logger.info(f"Stopped price stream {handle}")
        return True

    def stop_all(self) -> int:
        """Stop every stream; returns how many were stopped."""
        handles = list(self._streams.keys())
        for handle in handles:
            self.stop_stream(handle)
        return len(handles)

    def active_streams(self) -> List[str]:
        return list(self._streams.keys())

    async def shutdown(self) -> None:
        """Stop every stream and wait for their loops to exit."""
        self.stop_all()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ============================================
    # Core Loop
    # ============================================

    async def _run(self, stream: _PriceStream) -> None:
        while stream.active:
            try:
                prices = await self.service.get_multiple_prices(stream.identifiers, stream.chain_id)
            except Exception as e:
                if not stream.active:
                    break
                self._logger.warning(f"Price stream {stream.handle} poll failed: {e}")
                if stream.on_error is not None:
                    await self._safe_invoke(stream, stream.on_error, e)
            else:
                for identifier in stream.identifiers:
                    if not stream.active:
                        break
                    price = prices.get(identifier)
                    if price is None:
                        continue
                    update = PriceStreamUpdate(
                        stream_id=stream.handle,
                        identifier=identifier,
                        token_address=price.token_address,
                        symbol=price.symbol,
                        price_usd=price.price_usd,
                        price_native=price.price_native,
                        source=price.source,
                        confidence=price.confidence,
                        timestamp=current_utc_timestamp(milliseconds=True),
                    )
                    await self._safe_invoke(stream, stream.on_update, update)

            try:
                await asyncio.wait_for(stream.stopped.wait(), timeout=stream.interval)
            except asyncio.TimeoutError:
                pass

        self._logger.debug(f"Price stream {stream.handle} loop exited")

    async def _safe_invoke(self, stream: _PriceStream, callback: Callable[[Any], Any], argument: Any) -> None:
        """Run a callback; a failing callback is logged and does not end the stream."""
        try:
            await _invoke(callback, argument)
        except Exception as e:
            self._logger.error(f"Price stream {stream.handle} callback failed: {e}")
