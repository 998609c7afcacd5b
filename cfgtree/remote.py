"""
Remote configuration sources for cfgtree.

RemoteLoader fetches a configuration payload from HTTP, S3 or Redis and
parses it into a mapping:
- from_http: httpx.AsyncClient GET, format chosen by the URL path extension
- from_s3: aiobotocore get_object, format chosen by the object key extension
- from_redis: redis.asyncio GET, payload is JSON

Invariants:
    - Every transport or parse failure surfaces as LoadDataError
    - One attempt per call; callers own retry policy
    - Clients are opened and closed per call

Example:
    >>> data = await RemoteLoader.from_http("https://config.example.com/app.json")
    >>> settings = Setting().load_from_dict(data)
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx
import redis.asyncio as aioredis
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError
from redis.exceptions import RedisError

from .errors import LoadDataError
from .loader import parse_payload

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_REDIS_PORT = 6379


class RemoteLoader:
    """Async loaders for remote configuration payloads."""

    @staticmethod
    async def from_http(
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Dict[str, Any]:
        """Load configuration from an HTTP(S) endpoint.

        Args:
            url: Endpoint URL; ``.yaml``/``.yml`` paths are parsed as YAML
            headers: Extra request headers
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests, proxies)

        Raises:
            LoadDataError: On connection errors, non-2xx status or bad payload
        """
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                response = await client.get(url, headers=dict(headers or {}))
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise LoadDataError(f"Failed to load configuration from HTTP: {e}", source=url) from e

        extension = PurePosixPath(urlparse(url).path).suffix
        logger.info(f"Loaded configuration from {url}", extra={"status": response.status_code})
        return parse_payload(response.text, extension, source=url)

    @staticmethod
    async def from_s3(
        bucket: str,
        key: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Load configuration from an S3 object.

        Args:
            bucket: Bucket name
            key: Object key; its extension selects JSON or YAML
            region: AWS region
            endpoint_url: Custom endpoint (e.g. MinIO)

        Raises:
            LoadDataError: On S3 errors or bad payload
        """
        client_kwargs: Dict[str, Any] = {}
        if region:
            client_kwargs["region_name"] = region
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        source = f"s3://{bucket}/{key}"
        session = get_session()
        try:
            async with session.create_client("s3", **client_kwargs) as s3:
                response = await s3.get_object(Bucket=bucket, Key=key)
                content = await response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise LoadDataError(f"Failed to load configuration from S3: {e}", source=source) from e

        logger.info(f"Loaded configuration from {source}", extra={"size": len(content)})
        return parse_payload(content, PurePosixPath(key).suffix, source=source)

    @staticmethod
    async def from_redis(
        key: str,
        host: str = "localhost",
        port: int = DEFAULT_REDIS_PORT,
        db: int = 0,
    ) -> Dict[str, Any]:
        """Load a JSON configuration stored under a Redis key.

        Raises:
            LoadDataError: If the key is missing, Redis fails or JSON is invalid
        """
        source = f"redis://{host}:{port}/{db}/{key}"
        try:
            async with aioredis.Redis(host=host, port=port, db=db) as client:
                payload = await client.get(key)
        except RedisError as e:
            raise LoadDataError(f"Failed to load configuration from Redis: {e}", source=source) from e

        if payload is None:
            raise LoadDataError(f"Key '{key}' not found in Redis", source=source)

        logger.info(f"Loaded configuration from {source}")
        return parse_payload(payload, ".json", source=source)
