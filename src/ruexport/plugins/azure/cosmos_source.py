# src/ruexport/plugins/azure/cosmos_source.py
"""Paged queries against an Azure Cosmos DB container.

Each page's cost is read from the `x-ms-request-charge` response header
that the SDK keeps on the client connection after every round trip.

The container client is created lazily on the first fetch, so a run with
nothing to query never opens a connection.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import AzureError

from ruexport.contracts import FetchError, Page, QuerySpec
from ruexport.core.logging import get_logger

if TYPE_CHECKING:
    from azure.cosmos import ContainerProxy, CosmosClient

logger = get_logger(__name__)

REQUEST_CHARGE_HEADER = "x-ms-request-charge"


class CosmosQuerySource:
    """PagedQuerySource backed by a Cosmos DB container.

    Example:
        source = CosmosQuerySource(
            lambda: create_cosmos_client(settings),
            database_id="fleet",
            container_id="vehicles",
        )
        for page in source.fetch_pages(query, max_item_count=2000, max_concurrency=-1):
            ...
    """

    def __init__(
        self,
        client_factory: Callable[[], CosmosClient],
        *,
        database_id: str,
        container_id: str,
    ) -> None:
        self._client_factory = client_factory
        self._database_id = database_id
        self._container_id = container_id
        self._client: CosmosClient | None = None
        self._container: ContainerProxy | None = None
        self._concurrency_warned = False

    def _get_container(self) -> ContainerProxy:
        if self._container is None:
            try:
                self._client = self._client_factory()
                database = self._client.get_database_client(self._database_id)
                self._container = database.get_container_client(self._container_id)
            except AzureError as e:
                raise FetchError(f"Failed to connect to Cosmos DB: {e.message}") from e
            logger.debug(
                "Connected to Cosmos DB container",
                database_id=self._database_id,
                container_id=self._container_id,
            )
        return self._container

    def fetch_pages(
        self,
        query: QuerySpec,
        *,
        max_item_count: int,
        max_concurrency: int,
    ) -> Iterator[Page]:
        """Yield pages for `query`, one store round trip per page.

        Raises:
            FetchError: On any Azure SDK failure (not retried).
        """
        if max_concurrency != -1 and not self._concurrency_warned:
            # The synchronous SDK drains partitions serially
            logger.warning("max_concurrency is not supported by the Cosmos SDK client; ignoring", max_concurrency=max_concurrency)
            self._concurrency_warned = True

        container = self._get_container()
        parameters = query.parameter_list()
        try:
            items = container.query_items(
                query=query.text,
                parameters=parameters or None,
                enable_cross_partition_query=True,
                max_item_count=max_item_count,
            )
            page_iterator = items.by_page()
            for raw_page in page_iterator:
                rows = list(raw_page)
                yield Page(
                    rows=rows,
                    request_charge=self._last_request_charge(container),
                    has_more=page_iterator.continuation_token is not None,
                )
        except AzureError as e:
            raise FetchError(
                f"Cosmos DB query failed: {e.message}",
                status_code=getattr(e, "status_code", None),
            ) from e

    def _last_request_charge(self, container: Any) -> float:
        headers = container.client_connection.last_response_headers or {}
        raw = headers.get(REQUEST_CHARGE_HEADER)
        if raw is None:
            logger.debug("Response carried no request charge header")
            return 0.0
        return float(raw)

    def close(self) -> None:
        """Close the underlying client, if one was created."""
        if self._client is not None:
            self._client.__exit__(None, None, None)
            self._client = None
            self._container = None
