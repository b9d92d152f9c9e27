from typing import Optional

import httpx

from flowhook.config import settings
from flowhook.logging_config import get_logger
from flowhook.models import WorkflowDefinition, WorkflowExecution
from flowhook.services.errors import EngineError
from flowhook.services.ports import ExecutionEngine

logger = get_logger("engine_client")


class HttpExecutionEngine(ExecutionEngine):
    """Hands executions to the workflow engine service over HTTP."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.engine_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    async def _post(self, path: str, payload: dict) -> None:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise EngineError(f"Engine request failed: {exc}") from exc
        if response.status_code >= 400:
            raise EngineError(f"Engine returned {response.status_code} for {path}")

    async def start(self, definition: WorkflowDefinition, execution: WorkflowExecution, initiator: str) -> None:
        logger.info(
            "Starting execution",
            extra={"context": {"execution_id": str(execution.id), "workflow": definition.name}},
        )
        await self._post(
            f"/executions/{execution.id}/start",
            {"workflow_definition_id": str(definition.id), "initiator": initiator},
        )

    async def resume(self, execution: WorkflowExecution, message: Optional[dict]) -> None:
        logger.info("Resuming execution", extra={"context": {"execution_id": str(execution.id)}})
        await self._post(f"/executions/{execution.id}/resume", {"message": message})
