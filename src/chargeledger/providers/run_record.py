"""Run-record sources: the platform API or an injected mock."""

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from chargeledger.contracts.models import RunRecord

logger = logging.getLogger(__name__)


class RunRecordUnavailable(RuntimeError):
    """Raised when the run record cannot be fetched or parsed."""

    def __init__(self, message: str, run_id: str | None = None) -> None:
        super().__init__(message)
        self.run_id = run_id


class RunRecordProvider(Protocol):
    """Protocol for fetching the authoritative run record."""

    async def get_run(self) -> RunRecord:
        """Fetch the current run record.

        Raises:
            RunRecordUnavailable: If the record cannot be obtained
        """
        ...


class MockRunRecordProvider:
    """Returns an injected run record (local and offline runs)."""

    def __init__(self, run: RunRecord | dict) -> None:
        self._run = run if isinstance(run, RunRecord) else RunRecord.model_validate(run)
        self.call_count = 0

    async def get_run(self) -> RunRecord:
        self.call_count += 1
        return self._run


class ApiRunRecordProvider:
    """Fetches the run record from ``GET {base}v2/actor-runs/{run_id}``."""

    def __init__(
        self,
        base_url: str,
        run_id: str,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            base_url: Platform API base URL, ending with "/"
            run_id: Id of the current run
            token: API token, sent as a query parameter
            timeout_seconds: Transport timeout
            client: Optional preconfigured client (tests inject a MockTransport)
        """
        self.base_url = base_url
        self.run_id = run_id
        self.token = token
        self.timeout = timeout_seconds
        self._client = client

    @property
    def url(self) -> str:
        return f"{self.base_url}v2/actor-runs/{self.run_id}"

    async def get_run(self) -> RunRecord:
        params = {"token": self.token} if self.token else None
        try:
            if self._client is not None:
                response = await self._client.get(self.url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url, params=params)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RunRecordUnavailable(f"Failed to fetch run {self.run_id}: {e}", run_id=self.run_id) from e

        data = body.get("data", body) if isinstance(body, dict) else body
        try:
            run = RunRecord.model_validate(data)
        except ValidationError as e:
            raise RunRecordUnavailable(f"Malformed run record for {self.run_id}: {e}", run_id=self.run_id) from e
        logger.debug(f"Fetched run record {run.id} (pricing: {run.pricing_info is not None})")
        return run
