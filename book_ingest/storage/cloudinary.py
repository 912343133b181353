# book_ingest/storage/cloudinary.py
# ============================================================
# Cloudinary REST Client
# ============================================================
# A small async client for the three Cloudinary operations the
# pipeline needs: signed upload, signed destroy, and delivery
# URL construction. It backs both the render provider (the
# source PDF is uploaded once and every page is derived from it
# through a `pg_<n>` transformation) and the object storage used
# to re-host page images.
#
# Credentials come from a CLOUDINARY_URL of the form
#   cloudinary://<api_key>:<api_secret>@<cloud_name>
# and are held per client, never in the SDK's global config.
# Signatures and delivery URLs come from cloudinary.utils;
# requests go through httpx so they share timeouts and test
# transports with the rest of the pipeline.
#
# Usage:
#   client = CloudinaryClient(CloudinaryCredentials.from_url(url))
#   result = await client.upload(Path("page-1.jpg"), folder="books/7/pages",
#                                public_id="page_7_1_...")
#   await client.aclose()
# ============================================================

import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import cloudinary.utils
import httpx

from book_ingest.errors import InvalidArgument, StorageError
from book_ingest.providers.base import ObjectStorage, StoredObject
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)

API_BASE_URL = "https://api.cloudinary.com/v1_1"

# Parameters Cloudinary excludes from the request signature.
_UNSIGNED_PARAMS = {"file", "api_key", "cloud_name", "resource_type"}


@dataclass(frozen=True)
class CloudinaryCredentials:
    cloud_name: str
    api_key: str
    api_secret: str

    @classmethod
    def from_url(cls, url: Optional[str]) -> "CloudinaryCredentials":
        """
        Parse a CLOUDINARY_URL.

        Raises:
            InvalidArgument: If the URL is missing or lacks any component.
        """
        if not url:
            raise InvalidArgument("CLOUDINARY_URL is not configured")

        parsed = urlparse(url)
        if parsed.scheme != "cloudinary" or not (
            parsed.hostname and parsed.username and parsed.password
        ):
            raise InvalidArgument(
                "CLOUDINARY_URL must look like cloudinary://<api_key>:<api_secret>@<cloud_name>"
            )
        return cls(
            cloud_name=parsed.hostname,
            api_key=parsed.username,
            api_secret=parsed.password,
        )


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """
    Compute a Cloudinary API signature.

    Values are rendered the way they are sent on the wire (booleans as
    ``true``/``false``), empty values and the parameters Cloudinary never
    signs are dropped, and the rest is signed by the SDK.
    """
    to_sign = {
        key: _param_value(value)
        for key, value in params.items()
        if key not in _UNSIGNED_PARAMS and value is not None and value != ""
    }
    return cloudinary.utils.api_sign_request(to_sign, api_secret)


class CloudinaryClient:
    """
    Async wrapper around Cloudinary's upload API.

    All requests go through one httpx.AsyncClient; pass ``transport`` to
    substitute an httpx.MockTransport in tests.
    """

    def __init__(
        self,
        credentials: CloudinaryCredentials,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=f"{API_BASE_URL}/{credentials.cloud_name}",
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def _signed(self, params: dict[str, Any]) -> dict[str, str]:
        params = {k: v for k, v in params.items() if v is not None}
        params["timestamp"] = int(time.time())
        signed = {k: _param_value(v) for k, v in params.items()}
        signed["signature"] = sign_params(params, self.credentials.api_secret)
        signed["api_key"] = self.credentials.api_key
        return signed

    async def _post(self, endpoint: str, data: dict[str, str], files: Optional[dict] = None) -> dict:
        try:
            response = await self._client.post(endpoint, data=data, files=files)
        except httpx.HTTPError as e:
            raise StorageError(f"{endpoint} request failed: {e!r}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            raise StorageError(
                f"{endpoint} rejected (HTTP {response.status_code}): {message or response.reason_phrase}"
            )
        if not isinstance(body, dict):
            raise StorageError(f"{endpoint} returned an unexpected payload: {body!r}")
        return body

    async def upload(
        self,
        local_path: Union[str, Path],
        folder: str,
        public_id: Optional[str] = None,
        overwrite: bool = False,
        use_filename: bool = False,
        unique_filename: bool = False,
    ) -> dict:
        """
        Upload a local file as an image resource.

        PDFs are accepted as multi-page image resources; the response then
        carries a ``pages`` count.

        Returns:
            The decoded JSON response (``public_id``, ``version``,
            ``secure_url``, optionally ``pages``).

        Raises:
            StorageError: On transport failure, timeout or rejection.
        """
        local_path = Path(local_path)
        start = time.perf_counter()

        data = self._signed({
            "folder": folder,
            "public_id": public_id,
            "overwrite": overwrite,
            "use_filename": use_filename,
            "unique_filename": unique_filename,
        })
        mime = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"
        files = {"file": (local_path.name, local_path.read_bytes(), mime)}

        body = await self._post("/image/upload", data=data, files=files)
        if not body.get("public_id"):
            raise StorageError(f"Upload of {local_path.name} returned no public_id")

        # A non-overwriting upload onto an existing id is acknowledged
        # without storing anything; treat it as a rejection.
        if body.get("existing") and not overwrite:
            raise StorageError(f"Object {body['public_id']} already exists")

        logger.debug(
            f"Uploaded {local_path.name} → {body['public_id']} "
            f"in {(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return body

    async def destroy(self, public_id: str) -> None:
        """Delete an image resource. A missing object is not an error."""
        body = await self._post("/image/destroy", data=self._signed({"public_id": public_id}))
        result = body.get("result")
        if result not in ("ok", "not found"):
            raise StorageError(f"Destroy of {public_id} failed: {result}")

    def delivery_url(
        self,
        public_id: str,
        version: Union[str, int],
        fmt: str,
        page_number: Optional[int] = None,
    ) -> str:
        """
        Build the secure delivery URL for an image resource.

        Built by the SDK without a request: the same arguments always
        produce the same URL. A page is selected with a ``pg_<n>``
        transformation.
        """
        options = {
            "cloud_name": self.credentials.cloud_name,
            "resource_type": "image",
            "type": "upload",
            "secure": True,
            "version": str(version).lstrip("v"),
            "format": fmt,
        }
        if page_number is not None:
            options["transformation"] = [{"page": page_number}]
        url, _ = cloudinary.utils.cloudinary_url(public_id, **options)
        return url

    async def aclose(self) -> None:
        await self._client.aclose()


class CloudinaryObjectStorage(ObjectStorage):
    """ObjectStorage backed by Cloudinary image uploads (never overwrites)."""

    def __init__(self, client: CloudinaryClient):
        self.client = client

    async def upload(self, local_path: Path, folder: str, object_id: str) -> StoredObject:
        body = await self.client.upload(local_path, folder=folder, public_id=object_id, overwrite=False)
        return StoredObject(
            public_url=body.get("secure_url") or body.get("url", ""),
            object_handle=body["public_id"],
        )

    async def delete(self, object_handle: str) -> None:
        await self.client.destroy(object_handle)
