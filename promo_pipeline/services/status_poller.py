"""Status Poller for provider generation tasks.

Repeatedly asks the provider client for the status of submitted tasks until
every task is terminal (success or failed) or a wall-clock budget runs out.
Tasks still processing when the budget is exhausted are reported as failed
with a timeout reason.

Error isolation:
    Status checks for several tasks run concurrently with
    asyncio.gather(return_exceptions=True); one failing check never aborts
    its siblings. Transient errors are retried on the next tick, permanent
    errors (bad credentials, rejected request) fail that task only.

Idempotence:
    ``on_result`` is invoked at most once per task id, on its first terminal
    result, so side effects such as cost recording are never repeated.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from promo_pipeline.clients.runware import ProviderTaskStatus, RunwareClient, TaskStatusResult
from promo_pipeline.exceptions import classify_error
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

ResultCallback = Callable[[TaskStatusResult], Awaitable[None]]


class StatusPoller:
    """Polls provider task status on a fixed interval.

    Attributes:
        client: Provider client used for status checks
        interval_seconds: Delay between polling rounds
    """

    def __init__(self, client: RunwareClient, interval_seconds: float = 3.0) -> None:
        self.client = client
        self.interval_seconds = interval_seconds

    async def check(self, task_id: str) -> TaskStatusResult:
        """Issue one status check for a single task."""
        return await self.client.get_task_status(task_id)

    async def check_many(
        self, task_ids: Iterable[str]
    ) -> dict[str, TaskStatusResult | Exception]:
        """Check several tasks concurrently, isolating per-task errors.

        Returns:
            Mapping of task id to its result, or to the exception its check raised.
        """
        ids = list(task_ids)
        outcomes = await asyncio.gather(
            *(self.check(task_id) for task_id in ids), return_exceptions=True
        )
        results: dict[str, TaskStatusResult | Exception] = {}
        for task_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results[task_id] = outcome
        return results

    async def poll_until_terminal(
        self,
        task_ids: Iterable[str],
        budget_seconds: float,
        on_result: ResultCallback | None = None,
        timeout_message: str = "Generation timed out",
    ) -> dict[str, TaskStatusResult]:
        """Poll until every task is terminal or the budget elapses.

        Args:
            task_ids: Provider task ids to track
            budget_seconds: Maximum wall-clock time to keep polling
            on_result: Awaited once per task on its first terminal result
                (including the forced timeout result)
            timeout_message: Error recorded for tasks that never finished

        Returns:
            Terminal result for every tracked task id.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        pending = set(task_ids)
        results: dict[str, TaskStatusResult] = {}

        async def settle(result: TaskStatusResult) -> None:
            results[result.task_id] = result
            pending.discard(result.task_id)
            if on_result is not None:
                await on_result(result)

        while pending:
            outcomes = await self.check_many(sorted(pending))
            for task_id, outcome in outcomes.items():
                if isinstance(outcome, Exception):
                    is_transient, error_type = classify_error(outcome)
                    if is_transient:
                        log.warning(
                            "status_check_failed",
                            task_id=task_id,
                            error=str(outcome),
                            error_type=error_type,
                        )
                        continue
                    log.error(
                        "status_check_permanent_error",
                        task_id=task_id,
                        error=str(outcome),
                        error_type=error_type,
                    )
                    await settle(
                        TaskStatusResult(
                            task_id=task_id,
                            status=ProviderTaskStatus.FAILED,
                            error=str(outcome),
                        )
                    )
                elif outcome.is_terminal:
                    await settle(outcome)

            if not pending:
                break
            if loop.time() - started >= budget_seconds:
                break
            await asyncio.sleep(self.interval_seconds)

        for task_id in sorted(pending):
            log.warning("task_poll_timeout", task_id=task_id, budget_seconds=budget_seconds)
            await settle(
                TaskStatusResult(
                    task_id=task_id,
                    status=ProviderTaskStatus.FAILED,
                    error=timeout_message,
                )
            )

        return results
