"""
Batch transports.

- HttpTransport: POSTs the JSON payload with httpx (http:// and https:// endpoints)
- ObjectStoreTransport: writes the payload as a JSON object with obstore
  (s3://, gs:// and az:// endpoints)

send() returns False when the endpoint refuses the batch and raises
TransportFailure when it cannot be reached. Both mean "not delivered".
"""

import json
import logging
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from obstore.store import AzureStore, GCSStore, S3Store

from geospider.config.settings import (
    HTTP_SCHEMES,
    OBJECT_STORE_SCHEMES,
    RuntimeConfig,
    StorageConfig,
)
from geospider.errors import ConfigurationError, TransportFailure
from geospider.utils.logging import log_status


class Transport(Protocol):
    async def send(self, endpoint: str, payload: dict[str, Any]) -> bool: ...

    async def aclose(self) -> None: ...


class HttpTransport:
    """
    JSON-over-HTTP transport.

    A 2xx response means the batch was delivered. Pass a preconfigured
    httpx.AsyncClient to control retries, proxies or auth; otherwise one is
    created lazily and closed by aclose().
    """

    def __init__(
        self,
        timeout: float = 30.0,
        logger: logging.Logger | None = None,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.timeout = timeout
        self.logger = logger or logging.getLogger("geospider.transport")
        self.headers = headers or {}
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._client

    async def send(self, endpoint: str, payload: dict[str, Any]) -> bool:
        try:
            response = await self.client.post(endpoint, json=payload)
        except httpx.HTTPError as e:
            raise TransportFailure(f"POST {endpoint} failed: {e}") from e

        if response.is_success:
            self.logger.debug(
                f"Delivered {len(payload.get('locations', []))} samples "
                f"(HTTP {response.status_code})"
            )
            return True

        self.logger.warning(f"Server rejected batch: HTTP {response.status_code}")
        return False

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ObjectStoreTransport:
    """
    Object store transport using obstore.

    Each batch becomes one object named after its first and last timestamps
    and its size, so resending the same batch overwrites the same object.

    Supported endpoints:
    - s3://bucket/prefix (AWS S3 and S3-compatible services via storage_endpoint)
    - gs://bucket/prefix (Google Cloud Storage)
    - az://container/prefix (Azure Blob Storage)
    """

    def __init__(self, config: StorageConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.stores: dict[str, S3Store | GCSStore | AzureStore] = {}

    def _get_store(self, endpoint: str) -> S3Store | GCSStore | AzureStore:
        if endpoint not in self.stores:
            scheme = urlparse(endpoint).scheme.lower()
            if scheme == "s3":
                store = self._init_s3(endpoint)
            elif scheme == "gs":
                store = self._init_gcs(endpoint)
            elif scheme in ("az", "azure"):
                store = self._init_azure(endpoint)
            else:
                raise ConfigurationError(f"Unsupported object store URL: {endpoint}")

            self.stores[endpoint] = store
            log_status(f"Connected to {endpoint}", self.logger, "CLOUD")
        return self.stores[endpoint]

    def _init_s3(self, url: str) -> S3Store:
        """Initialize S3 or an S3-compatible store (R2, MinIO, Wasabi, etc.)."""
        config_dict: dict[str, Any] = {}

        if self.config.storage_region:
            config_dict["aws_region"] = self.config.storage_region

        endpoint = self.config.storage_endpoint
        if endpoint:
            config_dict["aws_endpoint"] = endpoint
            # Custom endpoints (MinIO, R2, ...) use path-style requests
            config_dict["aws_virtual_hosted_style_request"] = "false"
            if endpoint.startswith("http://"):
                config_dict["aws_allow_http"] = "true"

        # Static credentials through a provider, so obstore skips the AWS
        # credential chain (and its slow IMDS lookup off EC2)
        credential_provider = None
        if self.config.aws_access_key_id and self.config.aws_secret_access_key:
            access_key = self.config.aws_access_key_id
            secret_key = self.config.aws_secret_access_key

            def get_credentials() -> dict[str, Any]:
                return {
                    "access_key_id": access_key,
                    "secret_access_key": secret_key,
                    "token": None,
                    "expires_at": None,
                }

            credential_provider = get_credentials
        else:
            config_dict["skip_signature"] = "true"

        return S3Store.from_url(url, config=config_dict, credential_provider=credential_provider)

    def _init_gcs(self, url: str) -> GCSStore:
        """Initialize Google Cloud Storage store."""
        config_dict: dict[str, Any] = {}
        if self.config.gcs_service_account_path:
            config_dict["google_service_account_path"] = self.config.gcs_service_account_path
        return GCSStore.from_url(url, config=config_dict)

    def _init_azure(self, url: str) -> AzureStore:
        """Initialize Azure Blob Storage store."""
        account = self.config.azure_storage_account
        if not account:
            raise ConfigurationError("azure_storage_account is required for az:// endpoints")

        config_dict: dict[str, Any] = {"azure_storage_account_name": account}
        if self.config.azure_storage_key:
            config_dict["azure_storage_account_key"] = self.config.azure_storage_key
        elif self.config.azure_sas_token:
            config_dict["azure_storage_sas_key"] = self.config.azure_sas_token

        return AzureStore.from_url(url, config=config_dict)

    async def send(self, endpoint: str, payload: dict[str, Any]) -> bool:
        locations = payload.get("locations", [])
        if not locations:
            return True

        store = self._get_store(endpoint)
        path = batch_object_name(locations)
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")

        try:
            await store.put_async(path, data)
        except Exception as e:
            raise TransportFailure(f"Upload of {path} to {endpoint} failed: {e}") from e

        self.logger.debug(f"Uploaded {path} ({len(locations)} samples)")
        return True

    async def aclose(self) -> None:
        self.stores.clear()

    async def __aenter__(self) -> "ObjectStoreTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def batch_object_name(locations: list[dict[str, Any]]) -> str:
    """Deterministic object name for a batch: batch_<first>_<last>_<count>.json."""
    first = locations[0]["timestamp"]
    last = locations[-1]["timestamp"]
    return f"batch_{first}_{last}_{len(locations)}.json"


def build_transport(
    config: RuntimeConfig,
    storage_config: StorageConfig | None,
    logger: logging.Logger,
) -> HttpTransport | ObjectStoreTransport:
    """Select the transport for the configured server URL scheme."""
    scheme = urlparse(config.server_url).scheme.lower()

    if scheme in HTTP_SCHEMES:
        return HttpTransport(timeout=config.http_timeout_seconds, logger=logger)

    if scheme in OBJECT_STORE_SCHEMES:
        return ObjectStoreTransport(config=storage_config or StorageConfig(), logger=logger)

    raise ConfigurationError(f"No transport for URL scheme '{scheme}'")
