"""CRAN registry lookups with caching, retries and bounded concurrency."""

import asyncio
from collections.abc import Iterable

import httpx
import structlog

from .config import ValidationConfig
from .errors import NetworkError, PackageNotFoundError
from .models import LookupResult, RegistryMetadata

log = structlog.get_logger("depsync.registry")

CANCELLED = "cancelled before the lookup completed"


class RegistryClient:
    """Async client for package metadata."""

    def __init__(
        self,
        config: ValidationConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize registry client.

        Args:
            config: Run configuration (URL, timeouts, retry and concurrency limits)
            transport: Optional httpx transport, used to fake the registry in tests
        """
        self.config = config
        self._transport = transport
        self._cache: dict[str, RegistryMetadata] = {}
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._client: httpx.AsyncClient | None = None

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def __aenter__(self) -> "RegistryClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.registry_url,
                timeout=self.config.request_timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    # ── public ─────────────────────────────────────────────────────────────

    async def lookup(self, name: str) -> RegistryMetadata:
        """Fetch metadata for one package.

        Raises:
            PackageNotFoundError: The registry answered 404
            NetworkError: Timeout, transport failure or non-2xx after all retries
        """
        if name in self._cache:
            return self._cache[name]

        response = await self._request_with_retry(name)
        metadata = self._parse(name, response)
        self._cache[name] = metadata
        return metadata

    async def resolve_many(
        self,
        names: Iterable[str],
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, LookupResult]:
        """Resolve many names concurrently.

        One name's failure never affects another. When ``timeout`` expires
        or ``cancel`` is set, lookups still in flight are cancelled and
        reported as unresolved.

        Args:
            names: Package names to resolve
            timeout: Overall deadline in seconds
            cancel: Event that aborts the batch when set

        Returns:
            Mapping of name to LookupResult, in sorted name order
        """
        unique = sorted(set(names))
        if not unique:
            return {}

        tasks = {asyncio.ensure_future(self._resolve_one(name)): name for name in unique}
        pending: set[asyncio.Future] = set(tasks)
        stopper = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        try:
            while pending:
                remaining = None if deadline is None else max(deadline - loop.time(), 0)
                waiting = pending | {stopper} if stopper is not None else pending
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if not done or (stopper is not None and stopper in done):
                    log.warning("registry.batch_cancelled", pending=len(pending))
                    break
        finally:
            leftovers = list(pending)
            if stopper is not None:
                leftovers.append(stopper)
            for future in leftovers:
                future.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

        results: dict[str, LookupResult] = {}
        for task, name in tasks.items():
            if task.cancelled():
                results[name] = LookupResult(name, error=CANCELLED)
            else:
                results[name] = task.result()
        return results

    # ── internal ───────────────────────────────────────────────────────────

    async def _resolve_one(self, name: str) -> LookupResult:
        async with self._semaphore:
            try:
                metadata = await self.lookup(name)
            except NetworkError as exc:
                log.warning("registry.unresolved", package=name, reason=exc.reason)
                return LookupResult(name, error=exc.reason)
        return LookupResult(name, metadata=metadata)

    async def _request_with_retry(self, name: str) -> httpx.Response:
        """GET with exponential backoff on 5xx, 429, timeout and transport errors."""
        client = self._ensure_client()
        # One initial attempt plus max_retries retries
        attempts = max(self.config.max_retries, 0) + 1
        last_exc: NetworkError | None = None

        for attempt in range(attempts):
            try:
                response = await client.get(f"/{name}")
                if response.status_code == 404:
                    raise PackageNotFoundError(name, "not found in registry")
                if response.is_success:
                    return response
                last_exc = NetworkError(name, f"HTTP {response.status_code}")
                if response.status_code < 500 and response.status_code != 429:
                    raise last_exc
            except httpx.TimeoutException:
                last_exc = NetworkError(name, "timed out")
            except httpx.TransportError as exc:
                last_exc = NetworkError(name, f"transport error: {exc}")

            log.warning(
                "registry.retry",
                package=name,
                reason=last_exc.reason,
                attempt=attempt + 1,
                attempts=attempts,
            )
            if attempt < attempts - 1:
                await asyncio.sleep(self.config.retry_base_delay * (2**attempt))

        raise last_exc  # type: ignore[misc]

    def _parse(self, name: str, response: httpx.Response) -> RegistryMetadata:
        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(name, "malformed registry response") from exc

        version = data.get("Version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version:
            raise NetworkError(name, "registry response has no version")

        return RegistryMetadata(
            name=name,
            latest_version=version,
            source_type=data.get("Repository") or self.config.repository,
        )
