"""REST client for the remote circulation store.

The store exposes one PostgREST-style resource per entity:

    GET    {base}/{entity}?select=*
    POST   {base}/{entity}
    PATCH  {base}/{entity}?id=eq.{id}
    DELETE {base}/{entity}?id=eq.{id}
"""

import logging
from typing import Any, Optional, Union

import requests

from ..config import get_config
from ..db.schemas import (
    Entity,
    LoanEventRecord,
    MemberRecord,
    ReservationRecord,
    Settings,
    TitleRecord,
)
from ..db.snapshot import CirculationSnapshot, EntityRecord
from .operations import DeleteOperation, InsertOperation, UpdateOperation

logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    """The remote store rejected an operation."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteUnavailableError(RemoteStoreError):
    """The remote store could not be reached."""

    pass


class RestRemoteStore:
    """Client for the remote store."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize client.

        Args:
            base_url: Store endpoint (uses config if not provided)
            api_key: API key sent with every request (uses config if not provided)
            timeout: Request timeout in seconds (uses config if not provided)
        """
        config = get_config()
        self.base_url = (base_url or config.remote_url or "").rstrip("/")
        self.api_key = api_key or config.remote_api_key
        self.timeout = timeout or config.remote_timeout

        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if self.api_key:
            self._session.headers.update(
                {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _request(
        self,
        method: str,
        entity: Entity,
        params: Optional[dict] = None,
        payload: Optional[Union[dict, list]] = None,
    ) -> Any:
        """Make a request with error handling."""
        if not self.is_configured:
            raise RemoteUnavailableError("Remote store is not configured")

        url = f"{self.base_url}/{entity.value}"
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise RemoteUnavailableError(f"Remote store unreachable: {e}")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 409:
                raise RemoteStoreError("Item already exists (Duplicate).", status)
            raise RemoteStoreError(f"HTTP error: {status}", status)
        except requests.exceptions.RequestException as e:
            raise RemoteStoreError(f"Request failed: {e}")

        if not response.content:
            return None
        try:
            return response.json()
        except requests.exceptions.JSONDecodeError:
            logger.warning("%s %s returned a non-JSON body", method, url)
            return None

    # ========================================================================
    # Store Operations
    # ========================================================================

    def insert(self, entity: Entity, record: EntityRecord) -> Any:
        """Insert a record."""
        return self._request("POST", entity, payload=[record.model_dump(mode="json")])

    def update(self, entity: Entity, record: EntityRecord, record_id: str) -> Any:
        """Update the record keyed by id."""
        return self._request(
            "PATCH",
            entity,
            params={"id": f"eq.{record_id}"},
            payload=record.model_dump(mode="json"),
        )

    def delete(self, entity: Entity, record_id: str) -> Any:
        """Delete the record keyed by id."""
        return self._request("DELETE", entity, params={"id": f"eq.{record_id}"})

    def execute(self, operation: Union[InsertOperation, UpdateOperation, DeleteOperation]) -> Any:
        """Send a typed operation."""
        if isinstance(operation, InsertOperation):
            return self.insert(operation.entity, operation.record)
        if isinstance(operation, UpdateOperation):
            return self.update(operation.entity, operation.record, operation.record_id)
        return self.delete(operation.entity, operation.record_id)

    # ========================================================================
    # Reads
    # ========================================================================

    def fetch_all(self, entity: Entity) -> list[dict]:
        """All rows of an entity."""
        rows = self._request("GET", entity, params={"select": "*"})
        return rows or []

    def fetch_snapshot(self) -> CirculationSnapshot:
        """Pull everything the scheduling engine needs."""
        settings_rows = self.fetch_all(Entity.SETTINGS)
        return CirculationSnapshot.build(
            titles=[TitleRecord.model_validate(r) for r in self.fetch_all(Entity.TITLES)],
            members=[MemberRecord.model_validate(r) for r in self.fetch_all(Entity.MEMBERS)],
            events=[
                LoanEventRecord.model_validate(r) for r in self.fetch_all(Entity.LOAN_EVENTS)
            ],
            reservations=[
                ReservationRecord.model_validate(r)
                for r in self.fetch_all(Entity.RESERVATIONS)
            ],
            settings=Settings.model_validate(settings_rows[0]) if settings_rows else None,
        )
