# concurrent.py - Concurrent Dispatcher
#
# Fans independent agent runs out as asyncio tasks sharing one RunContext.
#   - one run's error never cancels the others
#   - results are collected by a single consumer loop as they complete
#   - a cancelled context returns whatever finished so far
#   - an optional max_workers bound caps how many runs are in flight

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, TYPE_CHECKING

from .models import Message, Response
from .cancel import RunContext
from .engine import TurnExecutor
from ..config import SwarmConfig
from ..errors import RunCancelledError

if TYPE_CHECKING:
    from ..agent import Agent
    from ..llm.base import ModelClient

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """One independent agent invocation."""
    agent: Optional["Agent"]
    messages: list[Message] = field(default_factory=list)
    context_variables: dict[str, Any] = field(default_factory=dict)
    model_override: str = ""
    max_turns: Optional[int] = None
    execute_tools: bool = True


@dataclass
class ConcurrentResult:
    agent_name: str
    response: Optional[Response] = None
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


class ConcurrentDispatcher:
    """
    Runs several agents at once against the turn executor.

    Usage:
        dispatcher = ConcurrentDispatcher(client, SwarmConfig(max_workers=4))
        results = await dispatcher.run_concurrent({
            "summarizer": AgentConfig(summarizer, [Message(role="user", content=text)]),
            "translator": AgentConfig(translator, [Message(role="user", content=text)]),
        })
        for r in results:
            print(r.agent_name, r.error or r.response.last_content)
    """

    def __init__(
        self,
        client: Optional["ModelClient"],
        config: Optional[SwarmConfig] = None,
        executor: Optional[TurnExecutor] = None,
    ):
        self.config = config or SwarmConfig()
        self.executor = executor or TurnExecutor(client, self.config)

    async def _run_one(
        self,
        name: str,
        config: AgentConfig,
        ctx: RunContext,
        semaphore: Optional[asyncio.Semaphore],
    ) -> ConcurrentResult:
        try:
            if semaphore is None:
                response = await self._invoke(config, ctx)
            else:
                async with semaphore:
                    response = await self._invoke(config, ctx)
        except Exception as e:
            logger.debug("Concurrent run %s failed: %s", name, e)
            return ConcurrentResult(agent_name=name, error=e)
        return ConcurrentResult(agent_name=name, response=response)

    async def _invoke(self, config: AgentConfig, ctx: RunContext) -> Response:
        ctx.raise_if_cancelled()
        return await self.executor.run(
            config.agent,
            config.messages,
            context_variables=config.context_variables,
            model_override=config.model_override,
            max_turns=config.max_turns,
            execute_tools=config.execute_tools,
            ctx=ctx,
        )

    async def run_concurrent(
        self,
        configs: dict[str, AgentConfig],
        ctx: Optional[RunContext] = None,
    ) -> list[ConcurrentResult]:
        """
        Run every config concurrently. Results come back in completion order.

        If `ctx` is cancelled, returns the results gathered so far and
        cancels the runs still in flight.
        """
        ctx = ctx or RunContext()
        if not configs:
            return []

        limit = self.config.max_workers
        semaphore = asyncio.Semaphore(limit) if limit else None
        pending = {
            asyncio.ensure_future(self._run_one(name, config, ctx, semaphore))
            for name, config in configs.items()
        }
        cancel_waiter = asyncio.ensure_future(ctx.wait())
        results: list[ConcurrentResult] = []

        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done:
                    if task is cancel_waiter:
                        continue
                    pending.discard(task)
                    results.append(task.result())
                if cancel_waiter in done:
                    logger.debug(
                        "Dispatcher cancelled (%s); returning %d of %d results",
                        ctx.reason, len(results), len(configs),
                    )
                    break
        finally:
            for task in pending:
                task.cancel()
            if not cancel_waiter.done():
                cancel_waiter.cancel()

        return results

    async def run_concurrent_ordered(
        self,
        ordered: Sequence[tuple[str, AgentConfig]],
        ctx: Optional[RunContext] = None,
    ) -> list[ConcurrentResult]:
        """
        Like run_concurrent, but results follow the order of `ordered`.

        Execution is still concurrent; only the output is reordered. A name
        with no result (the context was cancelled first) gets a result whose
        error is RunCancelledError.
        """
        ctx = ctx or RunContext()
        results = await self.run_concurrent(dict(ordered), ctx)
        by_name = {r.agent_name: r for r in results}
        return [
            by_name.get(name) or ConcurrentResult(
                agent_name=name,
                error=RunCancelledError(ctx.reason or "run cancelled"),
            )
            for name, _ in ordered
        ]
