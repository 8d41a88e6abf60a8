"""Document store on the Firebase Realtime Database REST API."""

from typing import Any
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError

from ..config import Config
from ..error_handling import ConfigurationError, DatabaseError
from ..logging_config import get_logger
from .document_store import validate_field_name
from .gcs_rest import TokenProvider, anonymous_token

logger = get_logger(__name__)


class FirebaseDocumentStore:
    """
    Stores each document at ``<database>/<collection>/<push id>.json``.

    The push id generated by the database becomes the document id. It is not
    stored in the body; reads add it back from the node key.
    """

    def __init__(
        self,
        database_url: str | None,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        if not database_url:
            raise ConfigurationError(
                "FIREBASE_DATABASE_URL environment variable is required for the Firebase document store",
                details={"key": "FIREBASE_DATABASE_URL"},
            )
        self.database_url = database_url.rstrip("/")
        self.token_provider = token_provider or anonymous_token
        self.client = client or httpx.AsyncClient(timeout=timeout)
        logger.info("document_store_connected", backend="firebase", database_url=self.database_url)

    @classmethod
    def from_config(cls, config: Config, token_provider: TokenProvider | None = None) -> "FirebaseDocumentStore":
        return cls(config.firebase_database_url, token_provider=token_provider, timeout=config.storage_timeout)

    def _url(self, collection: str, doc_id: str | None = None) -> str:
        path = quote(collection.strip("/"), safe="/")
        if doc_id is not None:
            path = f"{path}/{quote(doc_id, safe='')}"
        return f"{self.database_url}/{path}.json"

    async def _params(self) -> dict[str, str]:
        token = await self.token_provider()
        return {"auth": token} if token else {}

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        try:
            params = await self._params()
            response = await self.client.request(method, url, params=params, **kwargs)
        except (httpx.HTTPError, GoogleAuthError) as e:
            raise DatabaseError(
                f"Document store {operation} failed: {e}",
                details={"operation": operation, "url": url},
                original_exception=e,
            ) from e

        if response.is_error:
            raise DatabaseError(
                f"Document store {operation} failed with status {response.status_code}",
                code="database_unauthorized" if response.status_code in (401, 403) else None,
                details={"operation": operation, "url": url, "status": response.status_code},
            )
        return response.json() if response.content else None

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        body = {key: value for key, value in data.items() if key != "id"}
        pushed = await self._request("create", "POST", self._url(collection), json=body)
        doc_id = (pushed or {}).get("name")
        if not doc_id:
            raise DatabaseError(
                "Document store create returned no id",
                details={"operation": "create", "collection": collection},
            )
        logger.debug("document_created", collection=collection, doc_id=doc_id)
        return str(doc_id)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        document = await self._request("get", "GET", self._url(collection, doc_id))
        if document is None:
            return None
        return {**document, "id": doc_id}

    async def list(self, collection: str, order_by: str | None = None) -> list[dict[str, Any]]:
        tree = await self._request("list", "GET", self._url(collection)) or {}
        documents = [{**body, "id": doc_id} for doc_id, body in tree.items() if isinstance(body, dict)]
        if order_by:
            field = validate_field_name(order_by)
            # Missing values sort last, like NULLS LAST
            documents.sort(key=lambda d: (d.get(field) is None, str(d.get(field) or "")))
        return documents

    async def remove(self, collection: str, doc_id: str) -> None:
        await self._request("remove", "DELETE", self._url(collection, doc_id))
        logger.debug("document_removed", collection=collection, doc_id=doc_id)

    async def close(self) -> None:
        await self.client.aclose()
