# backend/convoflow/services/service_registry.py

import inspect
import logging
from typing import Any, Dict

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from convoflow.models.results import ServiceResult
from convoflow.utils.metrics import service_call_counter
from convoflow.workflows.errors import ServiceCallError, ServiceNotFoundError, ServiceUnavailableError

# This registry is the single entry point service steps use to reach business
# collaborators. It looks services up by name, retries transient failures and
# validates every payload into a ServiceResult.

logger = logging.getLogger(__name__)


class ServiceRegistry:
    def __init__(self, retry_attempts: int = 3, max_wait: float = 10):
        self._services: Dict[str, Any] = {}
        self.retry_attempts = max(1, retry_attempts)
        self.max_wait = max_wait

    def register(self, name: str, service: Any) -> None:
        """Registers a service object; its public methods become callable by name."""
        if name in self._services:
            logger.warning(f"Service '{name}' is being replaced in the registry.")
        self._services[name] = service
        logger.info(f"Registered business service '{name}'.")

    def has(self, name: str, method: str) -> bool:
        service = self._services.get(name)
        return service is not None and not method.startswith("_") and callable(getattr(service, method, None))

    def get(self, name: str) -> Any:
        return self._services[name]

    @property
    def names(self):
        return sorted(self._services)

    async def call(self, name: str, method: str, params: Dict[str, Any]) -> ServiceResult:
        """
        Calls `name.method(params)` and returns its validated result.

        Raises:
            ServiceNotFoundError: if the service or method is not registered.
            ServiceUnavailableError: if every retry attempt failed transiently.
            ServiceCallError: for any other failure, including malformed payloads.
        """
        if not self.has(name, method):
            service_call_counter.labels(service=name, method=method, status="not_found").inc()
            raise ServiceNotFoundError(name, method)

        func = getattr(self._services[name], method)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ServiceUnavailableError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self.max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    raw = await self._invoke(name, method, func, params)
        except ServiceCallError:
            service_call_counter.labels(service=name, method=method, status="error").inc()
            raise

        try:
            result = raw if isinstance(raw, ServiceResult) else ServiceResult.model_validate(raw or {})
        except ValidationError as e:
            service_call_counter.labels(service=name, method=method, status="invalid").inc()
            raise ServiceCallError(name, method, f"invalid result payload: {e.error_count()} error(s)") from e

        service_call_counter.labels(service=name, method=method, status=result.status).inc()
        return result

    async def _invoke(self, name: str, method: str, func, params: Dict[str, Any]) -> Any:
        try:
            outcome = func(dict(params))
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
        except ServiceCallError:
            raise
        except Exception as e:
            raise ServiceCallError(name, method, f"{type(e).__name__}: {e}") from e
