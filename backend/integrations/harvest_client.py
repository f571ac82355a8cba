"""Harvest v2 REST API client (async, retry-wrapped)."""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import httpx

from config import settings
from integrations.exceptions import (
    ConfigurationError,
    ConnectorAPIError,
    ConnectorAuthError,
    ConnectorConnectionError,
)
from integrations.harvest_protocol import (
    HarvestClient,
    HarvestProject,
    HarvestTask,
    HarvestUser,
    ProjectBudget,
)
from integrations.retry import RetryOutcome, RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Harvest"
PER_PAGE = 100


class HarvestAPIClient:
    """Thin async wrapper over the Harvest API.

    Every GET goes through :func:`execute_with_retry`, so 429/5xx answers
    are retried with backoff before surfacing as ``RetryExhaustedError``.
    Non-2xx responses are mapped to the connector exception hierarchy.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        account_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize with explicit credentials or fall back to settings.

        Raises:
            ConfigurationError: If the access token or account id is empty.
                Raised before any HTTP client is created.
        """
        access_token = access_token if access_token is not None else settings.HARVEST_ACCESS_TOKEN
        account_id = account_id if account_id is not None else settings.HARVEST_ACCOUNT_ID

        missing = tuple(
            name
            for name, value in (
                ("HARVEST_ACCESS_TOKEN", access_token),
                ("HARVEST_ACCOUNT_ID", account_id),
            )
            if not value
        )
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                provider_name=PROVIDER_NAME,
                missing=missing,
            )

        self.account_id = account_id
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.HARVEST_BASE_URL,
            headers={
                "Harvest-Account-Id": account_id,
                "Authorization": f"Bearer {access_token}",
                "User-Agent": user_agent or settings.HARVEST_USER_AGENT,
                "Accept": "application/json",
            },
            timeout=timeout or settings.HARVEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[dict[str, Any]]) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ConnectorConnectionError(
                f"Harvest request to {path} timed out", provider_name=PROVIDER_NAME
            ) from e
        except httpx.TransportError as e:
            raise ConnectorConnectionError(
                f"Harvest request to {path} failed: {e}", provider_name=PROVIDER_NAME
            ) from e

        status = response.status_code
        if status in (401, 403):
            raise ConnectorAuthError(
                f"Harvest rejected credentials (HTTP {status})",
                provider_name=PROVIDER_NAME,
            )
        if not response.is_success:
            raise ConnectorAPIError(
                f"Harvest {path} returned HTTP {status}",
                provider_name=PROVIDER_NAME,
                status_code=status,
                retry_after=response.headers.get("retry-after"),
            )
        return response.json()

    async def get_json(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        *,
        outcome: Optional[RetryOutcome] = None,
    ) -> dict[str, Any]:
        """GET ``path`` with retry; ``outcome`` receives the retry telemetry."""
        return await execute_with_retry(
            lambda: self._get(path, params),
            self.retry_policy,
            context=f"Harvest GET {path}",
            outcome=outcome,
            sleep=self._sleep,
            provider_name=PROVIDER_NAME,
        )

    async def iter_pages(
        self, path: str, key: str, params: Optional[dict[str, Any]] = None
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield the ``key`` array of each page until ``next_page`` is null."""
        page: Optional[int] = 1
        while page is not None:
            data = await self.get_json(path, {**(params or {}), "per_page": PER_PAGE, "page": page})
            yield data.get(key) or []
            page = data.get("next_page")

    async def get_clients(self, is_active: bool = True) -> list[HarvestClient]:
        clients = []
        async for rows in self.iter_pages("/clients", "clients", {"is_active": _flag(is_active)}):
            clients.extend(
                HarvestClient(id=c["id"], name=c.get("name") or "", is_active=bool(c.get("is_active")))
                for c in rows
            )
        return clients

    async def get_projects(self, is_active: bool = True) -> list[HarvestProject]:
        projects = []
        async for rows in self.iter_pages("/projects", "projects", {"is_active": _flag(is_active)}):
            for p in rows:
                client = p.get("client")
                client_id = client.get("id") if isinstance(client, dict) else p.get("client_id")
                projects.append(
                    HarvestProject(
                        id=p["id"],
                        name=p.get("name") or "",
                        client_id=client_id,
                        is_active=bool(p.get("is_active")),
                        code=p.get("code"),
                    )
                )
        return projects

    async def get_tasks(self) -> list[HarvestTask]:
        tasks = []
        async for rows in self.iter_pages("/tasks", "tasks"):
            tasks.extend(
                HarvestTask(
                    id=t["id"],
                    name=t.get("name") or "",
                    billable_by_default=bool(t.get("billable_by_default")),
                    is_active=bool(t.get("is_active")),
                    default_hourly_rate=t.get("default_hourly_rate"),
                )
                for t in rows
            )
        return tasks

    async def get_users(self, is_active: bool = True) -> list[HarvestUser]:
        users = []
        async for rows in self.iter_pages("/users", "users", {"is_active": _flag(is_active)}):
            users.extend(
                HarvestUser(
                    id=u["id"],
                    first_name=u.get("first_name") or "",
                    last_name=u.get("last_name") or "",
                    email=u.get("email") or "",
                    is_active=bool(u.get("is_active")),
                )
                for u in rows
            )
        return users

    async def get_project_budget(self, project_id: str) -> ProjectBudget:
        data = await self.get_json(f"/projects/{project_id}")
        # Harvest returns the project object at the top level
        project = data.get("project", data)
        return ProjectBudget(
            budget=project.get("budget"),
            budget_by=project.get("budget_by"),
            budget_is_monthly=bool(project.get("budget_is_monthly")),
        )

    async def test_connection(self) -> bool:
        """Return True if ``GET /company`` succeeds with these credentials."""
        try:
            await self.get_json("/company")
            return True
        except Exception:
            logger.warning("Harvest: connection test failed", exc_info=True)
            return False


def _flag(value: bool) -> str:
    return "true" if value else "false"
