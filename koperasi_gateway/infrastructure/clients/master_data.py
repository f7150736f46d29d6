"""Member/plan master data HTTP client"""

import httpx
from datetime import date
from typing import List
from koperasi_gateway.domain.models import Plan
from koperasi_gateway.domain.exceptions import MasterDataAPIError
from koperasi_gateway.config import settings


class MasterDataClient:
    """Client for the member and bank-account master data service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.master_data_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _get_json(self, path: str) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(f"{self.base_url}{path}")
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise MasterDataAPIError(f"Master data API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise MasterDataAPIError(f"Master data API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise MasterDataAPIError(f"Master data API unreachable: {e}") from e
            except ValueError as e:
                raise MasterDataAPIError(f"Invalid JSON from master data API: {e}") from e

    async def get_plan_history(self, account_ref: str) -> List[Plan]:
        """
        Fetch every plan an account has been on, including upgrades.

        Raises:
            MasterDataAPIError: On timeout, HTTP errors, or invalid response
        """
        data = await self._get_json(f"/accounts/{account_ref}/plans")
        try:
            return [
                Plan(
                    plan_id=plan.get("plan_id"),
                    required_amount_per_slot=int(plan["required_amount_per_slot"]),
                    total_slots=plan.get("total_slots"),
                    effective_from=date.fromisoformat(plan["effective_from"]),
                )
                for plan in data.get("plans", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise MasterDataAPIError(f"Invalid plan data from master data API: {e}") from e

    async def get_opening_balance(self, account_ref: str) -> int:
        """
        Fetch the ledger opening balance of a bank account in minor units.

        Raises:
            MasterDataAPIError: On timeout, HTTP errors, or invalid response
        """
        data = await self._get_json(f"/accounts/{account_ref}/opening-balance")
        try:
            return int(data["opening_balance_minor"])
        except (KeyError, ValueError, TypeError) as e:
            raise MasterDataAPIError(f"Invalid opening balance from master data API: {e}") from e
