"""Async client for the tracker's constraints endpoint.

Used by :class:`~preorder_tracker.services.form_binding.FormSession` as its
fetcher, so the form resolves rules exactly the way the server does.
"""

import time
from typing import Optional

import httpx
from pydantic import ValidationError

from ..core.config import get_settings
from ..core.enums import MODEL_SOURCE
from ..core.logging import get_logger, log_external_call
from ..models.constraint import ConstraintRecord

logger = get_logger("constraints_client")


class ConstraintsClient:
    """Async client for ``GET /api/constraints``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = (base_url or get_settings().constraints_api_url).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_constraints(
        self,
        source_value: Optional[str] = None,
        vehicle_type: Optional[str] = None,
        source_type: str = MODEL_SOURCE,
    ) -> list[ConstraintRecord]:
        """Fetch active rules (global + ``vehicle_type``) for a source value.

        Raises:
            httpx.HTTPError: transport failure or non-2xx response.
        """
        params = {"sourceType": source_type}
        if source_value:
            params["sourceValue"] = source_value
        if vehicle_type:
            params["vehicleType"] = vehicle_type

        start = time.time()
        try:
            resp = await self.client.get(f"{self.base_url}/api/constraints", params=params)
            resp.raise_for_status()
        except httpx.HTTPError:
            log_external_call("constraints", "list", False, (time.time() - start) * 1000)
            raise
        log_external_call("constraints", "list", True, (time.time() - start) * 1000)

        records: list[ConstraintRecord] = []
        for item in resp.json():
            try:
                records.append(ConstraintRecord.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping malformed constraint from API: %s", e)
        return records

    async def __call__(
        self, source_value: str, vehicle_type: Optional[str]
    ) -> list[ConstraintRecord]:
        return await self.fetch_constraints(source_value, vehicle_type)

    async def close(self) -> None:
        await self.client.aclose()
