"""
Periodic trigger running an async task at a fixed interval
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import periodic_trigger_running


class TriggerState(str, Enum):
    """Lifecycle of a periodic trigger"""
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


class TriggerContext:
    """
    Cancellation context handed to every task invocation of one generation

    ``stop()`` cancels the context together with the asyncio task running the
    invocation, so awaiting code sees ``CancelledError``; code between awaits
    can poll ``cancelled`` instead.
    """

    def __init__(self, generation: int):
        self.generation = generation
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()


TriggerTask = Callable[[TriggerContext], Awaitable[Any]]


class _Generation:
    """Synchronization state of one start/stop cycle"""

    def __init__(self, number: int):
        self.number = number
        self.stop_event = asyncio.Event()
        self.context = TriggerContext(number)
        self.loop_task: Optional[asyncio.Task] = None
        self.initial_run_done = asyncio.Event()


class PeriodicTrigger:
    """
    Runs ``task`` once on ``start()`` and then once per ``interval``

    States go Idle -> Running -> Stopping -> Idle. ``start()`` only acts from
    Idle and ``stop()`` only from Running; other calls are no-ops returning
    False. Every return to Idle builds a fresh generation (stop signal,
    context, loop task) so nothing leaks into the next ``start()``.

    Invocations never overlap. When one overruns the interval, the ticks it
    missed are dropped and the next invocation waits for the next tick on the
    original grid. A failing invocation is logged and the loop goes on.
    """

    def __init__(
        self,
        name: str,
        task: TriggerTask,
        interval: float,
        logger: Optional[logging.Logger] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.task = task
        self.interval = interval
        self.logger = LoggingConfig.get_component_logger(
            __name__, "PeriodicTrigger", logger=logger, trigger=name
        )
        self._state = TriggerState.IDLE
        self._generation_count = 0
        self._reset()

    def _reset(self):
        """Build fresh synchronization state for the next generation"""
        self._generation = _Generation(self._generation_count + 1)

    @property
    def state(self) -> TriggerState:
        return self._state

    @property
    def generation(self) -> int:
        """Number of generations started so far"""
        return self._generation_count

    @property
    def is_running(self) -> bool:
        return self._state is TriggerState.RUNNING

    async def start(self) -> bool:
        """
        Start a new generation

        Returns once the first invocation has finished; the periodic loop
        keeps running in the background until ``stop()``.
        """
        if self._state is not TriggerState.IDLE:
            self.logger.debug("Periodic trigger already started", extra={"state": self._state.value})
            return False

        generation = self._generation
        self._generation_count = generation.number
        self._state = TriggerState.RUNNING
        periodic_trigger_running.labels(trigger=self.name).set(1)

        self.logger.info(
            "Periodic trigger started",
            extra={"interval": self.interval, "generation": generation.number}
        )
        generation.loop_task = asyncio.create_task(
            self._run(generation), name=f"{self.name}-{generation.number}"
        )
        await generation.initial_run_done.wait()
        return True

    async def stop(self) -> bool:
        """Stop the running generation and wait for its loop to finish"""
        if self._state is not TriggerState.RUNNING:
            self.logger.debug("Periodic trigger not running", extra={"state": self._state.value})
            return False

        self._state = TriggerState.STOPPING
        generation = self._generation
        self.logger.info("Periodic trigger stopping", extra={"generation": generation.number})

        generation.stop_event.set()
        generation.context.cancel()
        loop_task = generation.loop_task
        if loop_task is not None and loop_task is not asyncio.current_task():
            loop_task.cancel()
            await asyncio.wait([loop_task])

        self._reset()
        self._state = TriggerState.IDLE
        periodic_trigger_running.labels(trigger=self.name).set(0)
        self.logger.info("Periodic trigger stopped", extra={"generation": generation.number})
        return True

    async def _invoke(self, generation: _Generation, initial: bool):
        try:
            await self.task(generation.context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = (
                "Periodic trigger initial run error" if initial
                else "Periodic trigger run error"
            )
            self.logger.error(
                message,
                exc_info=True,
                extra={"error": str(e), "generation": generation.number}
            )

    async def _run(self, generation: _Generation):
        loop = asyncio.get_running_loop()
        try:
            await self._invoke(generation, initial=True)
        finally:
            generation.initial_run_done.set()

        next_tick = loop.time() + self.interval
        while not generation.stop_event.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(generation.stop_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass

            self.logger.debug("Periodic trigger tick", extra={"generation": generation.number})
            await self._invoke(generation, initial=False)

            # drop the ticks missed while the invocation was running
            now = loop.time()
            next_tick += self.interval
            if next_tick <= now:
                skipped = int((now - next_tick) // self.interval) + 1
                next_tick += skipped * self.interval
