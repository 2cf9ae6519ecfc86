import asyncio
import logging
import signal
import sys
import threading
import weakref
from typing import Any

logger = logging.getLogger(__name__)


class SignalHandler:
    """
    Cancels event bus work on SIGINT/SIGTERM.

    On the first signal:
    1. Every tracked task of every registered bus is cancelled
    2. Background event loops are stopped
    3. The previously installed handler is chained to

    A second signal exits immediately.
    """

    def __init__(self):
        self._original_handlers: dict[int, Any] = {}
        self._registered_buses: set[weakref.ref] = set()
        self._shutdown_initiated = False
        self._shutdown_event = threading.Event()
        self._lock = threading.Lock()

    def register_bus(self, bus: Any) -> None:
        """
        Register an EventBus instance for signal handling.

        Args:
            bus: EventBus instance to track
        """
        with self._lock:
            # Use weak reference to avoid keeping buses alive
            self._registered_buses.add(weakref.ref(bus, self._on_bus_deleted))

            # Install signal handlers on first registration
            if len(self._registered_buses) == 1:
                self._install_handlers()

    def unregister_bus(self, bus: Any) -> None:
        with self._lock:
            for ref in list(self._registered_buses):
                if ref() is bus:
                    self._registered_buses.discard(ref)
                    break

            if not self._registered_buses:
                self._restore_handlers()

    def _on_bus_deleted(self, ref: weakref.ref) -> None:
        with self._lock:
            self._registered_buses.discard(ref)
            if not self._registered_buses:
                self._restore_handlers()

    def _install_handlers(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in the main thread, signal handlers not installed")
            return

        self._original_handlers[signal.SIGINT] = signal.signal(
            signal.SIGINT, self._handle_signal
        )
        if sys.platform != "win32":
            self._original_handlers[signal.SIGTERM] = signal.signal(
                signal.SIGTERM, self._handle_signal
            )

    def _restore_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        with self._lock:
            if self._shutdown_initiated:
                logger.warning("Forced shutdown requested")
                sys.exit(1)

            self._shutdown_initiated = True
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating graceful shutdown...")

        self._cancel_all_tasks()
        self._shutdown_event.set()

        original = self._original_handlers.get(signum)
        if callable(original):
            original(signum, frame)
        elif signum == signal.SIGINT and original != signal.SIG_IGN:
            raise KeyboardInterrupt()

    def _cancel_all_tasks(self) -> None:
        """Cancel all tasks in all registered buses."""
        cancelled_count = 0
        bus_count = 0

        with self._lock:
            buses = [ref() for ref in self._registered_buses]

        for bus in buses:
            if bus is None:
                continue
            bus_count += 1

            for task in list(bus._tasks):
                if task.done():
                    continue
                loop = task.get_loop()
                if loop.is_closed():
                    continue
                # tasks on the background loop must be cancelled from its thread
                loop.call_soon_threadsafe(task.cancel)
                cancelled_count += 1

            # Stop event loop if running in thread
            loop = bus._event_loop
            if loop is not None and loop.is_running():
                loop.call_soon_threadsafe(loop.stop)

        if cancelled_count > 0:
            logger.info(f"Cancelled {cancelled_count} tasks in {bus_count} buses")

    def is_shutdown_initiated(self) -> bool:
        return self._shutdown_initiated

    def wait_for_shutdown(self, timeout: float | None = None) -> bool:
        """
        Wait for shutdown signal.

        Returns:
            True if shutdown was initiated, False if timeout
        """
        return self._shutdown_event.wait(timeout)

    async def wait_for_shutdown_async(self) -> None:
        await asyncio.to_thread(self._shutdown_event.wait)


# Global signal handler instance
_global_handler = SignalHandler()


def register_for_signals(bus: Any) -> None:
    """Register an EventBus for signal handling."""
    _global_handler.register_bus(bus)


def unregister_from_signals(bus: Any) -> None:
    _global_handler.unregister_bus(bus)


def is_shutdown_requested() -> bool:
    """Check if a shutdown signal has been received."""
    return _global_handler.is_shutdown_initiated()


async def wait_for_shutdown() -> None:
    """Wait for a shutdown signal asynchronously."""
    await _global_handler.wait_for_shutdown_async()
