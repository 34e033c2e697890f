"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Octane API Client for interacting with an ALM Octane workspace.

This module provides the REST client used by the importer: session based
authentication, paged collection reads, entity creation, the query
expressions understood by Octane and the manual test script upload.
"""

import json
import logging
import time
from collections.abc import Iterator
from typing import Any

import requests

from etoo.core.config import OctaneConfig
from etoo.octane_models import (
    LIST_NODES,
    MANUAL_TEST_TYPE,
    PHASES,
    PRODUCT_AREAS,
    USER_TAGS,
    USERS,
    EntityRef,
    OctaneCollectionResponse,
)

logger = logging.getLogger("etoo.octane_client")

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


class OctaneError(Exception):
    """
    Error returned by the Octane REST API.

    Carries the HTTP status code (None for errors detected client side) and the
    first error description found in the response body.
    """

    def __init__(self, status_code: int | None, description: str):
        self.status_code = status_code
        self.description = description
        prefix = f"HTTP {status_code}: " if status_code is not None else ""
        super().__init__(f"{prefix}{description}")

    @classmethod
    def from_response(cls, response: requests.Response) -> "OctaneError":
        """Build the error from a failed response, preferring errors[0].description."""
        description = response.reason or "Request failed"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            errors = body.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                description = errors[0].get("description") or description
            elif body.get("description"):
                description = body["description"]
        elif response.text:
            description = response.text[:500]
        return cls(response.status_code, description)


class EntityNotFoundError(OctaneError):
    """A required entity (list root, root application module) does not exist."""

    def __init__(self, description: str):
        super().__init__(None, description)


class Subquery(str):
    """Marks a predicate to be nested inside another predicate."""


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def query_eq(field: str, value: Any) -> str:
    """
    Build an equality predicate.

    ``None`` becomes ``{null}``; a value that is itself a predicate (built with
    :func:`query_eq` or :func:`query_and`) and wrapped in :class:`Subquery`
    becomes a nested cross-filter such as ``list_root EQ {id EQ '7'}``.
    """
    if value is None:
        return f"{field} EQ {{null}}"
    if isinstance(value, Subquery):
        return f"{field} EQ {{{value}}}"
    return f"{field} EQ {_quote(value)}"


def query_and(*statements: str) -> str:
    """Join predicates with the Octane AND operator."""
    return ";".join(statement for statement in statements if statement)


class OctaneClient:
    """Client for interacting with one ALM Octane workspace."""

    def __init__(
        self,
        config: OctaneConfig,
        session: requests.Session | None = None,
        authenticate: bool = True,
    ):
        """Initialize the Octane client with configuration.

        Args:
            config: The Octane API configuration
            session: Optional requests session (a new one is created if omitted)
            authenticate: Whether to sign in immediately
        """
        self.config = config
        self.base_url = config.workspace_url
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        if config.proxies:
            self.session.proxies.update(config.proxies)

        # Request metrics for logging
        self.request_count = 0
        self.error_count = 0
        self.total_request_time = 0.0

        logger.info(
            f"OctaneClient initialized: server={config.server}, "
            f"shared_space={config.shared_space_id}, workspace={config.workspace_id}"
        )

        if authenticate:
            self.authenticate()

    def authenticate(self) -> None:
        """Sign in and keep the session cookie for the following requests."""
        url = f"{self.config.server}/authentication/sign_in"
        if self.config.client_id and self.config.client_secret:
            credentials = {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            }
        else:
            credentials = {"user": self.config.user, "password": self.config.password}

        logger.debug(f"Authenticating with Octane at {url}")
        try:
            response = self.session.post(url, json=credentials, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Authentication failed: {e}")
            raise

        if response.status_code >= 400:
            error = OctaneError.from_response(response)
            logger.error(f"Authentication failed: {error}")
            raise error

        logger.info("Successfully authenticated with Octane")

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "OctaneClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        data: str | bytes | None = None,
        _reauthenticated: bool = False,
    ) -> dict[str, Any]:
        """Make a request to the workspace REST API.

        Args:
            method: HTTP method
            path: Path relative to the workspace URL
            params: Query parameters
            json_data: JSON request body
            data: Raw request body, sent as is
            _reauthenticated: Internal flag, set after the single re-authentication

        Returns:
            API response as dictionary
        """
        self.request_count += 1
        request_number = self.request_count
        url = f"{self.base_url}/{path.lstrip('/')}"

        logger.debug(f"API Request #{request_number}: {method} {path}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Parameters: {params}")
            if json_data:
                logger.debug(f"Request Body: {json.dumps(self._mask_sensitive_data(json_data))}")

        start_time = time.time()
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                data=data,
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            self.error_count += 1
            logger.error(
                f"Request Error #{request_number}: {e} - {method} {path} - "
                f"Duration: {time.time() - start_time:.2f}s"
            )
            raise

        duration = time.time() - start_time
        self.total_request_time += duration
        logger.debug(
            f"Response #{request_number} received in {duration:.2f}s - "
            f"Status: {response.status_code} - {method} {path}"
        )

        if response.status_code == 401 and not _reauthenticated:
            logger.info("Session expired, re-authenticating")
            self.authenticate()
            return self._make_request(
                method, path, params, json_data, data, _reauthenticated=True
            )

        if response.status_code >= 400:
            self.error_count += 1
            error = OctaneError.from_response(response)
            logger.error(f"HTTP Error #{request_number}: {error} - {method} {path}")
            raise error

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            self.error_count += 1
            logger.error(f"JSON Parsing Error #{request_number}: {e} - {method} {path}")
            raise

    def _mask_sensitive_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive fields in data before logging."""
        if not isinstance(data, dict):
            return data

        result = data.copy()
        sensitive_fields = ["password", "secret", "token", "cookie"]
        for key in result:
            if any(sensitive in key.lower() for sensitive in sensitive_fields):
                result[key] = "********"
            elif isinstance(result[key], dict):
                result[key] = self._mask_sensitive_data(result[key])
        return result

    def iter_entities(
        self,
        collection: str,
        fields: list[str] | None = None,
        query: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Iterator[dict[str, Any]]:
        """Iterate over every entity of a collection matching ``query``, page by page."""
        page_size = min(page_size, MAX_PAGE_SIZE)
        offset = 0
        while True:
            params: dict[str, Any] = {"offset": offset, "limit": page_size}
            if fields:
                params["fields"] = ",".join(fields)
            if query:
                params["query"] = f'"{query}"'

            page = OctaneCollectionResponse.model_validate(
                self._make_request("GET", collection, params=params)
            )
            yield from page.data

            if page.is_last(offset) or len(page.data) < page_size:
                return
            offset += len(page.data)

    def get_entities(
        self,
        collection: str,
        fields: list[str] | None = None,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        """Get all entities of a collection matching ``query``."""
        entities = list(self.iter_entities(collection, fields, query))
        logger.debug(f"Fetched {len(entities)} entities from {collection}")
        return entities

    def _first(
        self, collection: str, fields: list[str], query: str
    ) -> dict[str, Any] | None:
        params = {"fields": ",".join(fields), "query": f'"{query}"', "offset": 0, "limit": 1}
        response = self._make_request("GET", collection, params=params)
        data = response.get("data") or []
        return data[0] if data else None

    def create_entity(self, collection: str, entity: dict[str, Any]) -> dict[str, Any]:
        """Create one entity and return the created entity as returned by Octane."""
        response = self._make_request("POST", collection, json_data={"data": [entity]})
        created = response.get("data") or []
        if not created:
            raise OctaneError(None, f"Unable to create entity of type {collection}!")
        logger.debug(f"Created {collection} entity with id {created[0].get('id')}")
        return created[0]

    def update_test_script(self, test_id: str, body: str) -> dict[str, Any]:
        """Replace the script of a manual test with a raw JSON body."""
        return self._make_request("PUT", f"tests/{test_id}/script", data=body.encode("utf-8"))

    def get_users(self) -> list[EntityRef]:
        return [
            EntityRef.from_entity(user)
            for user in self.get_entities(USERS, ["email", "name"])
        ]

    def get_user_by_email(self, email: str) -> EntityRef | None:
        user = self._first(USERS, ["email", "name"], query_eq("email", email))
        return EntityRef.from_entity(user) if user else None

    def get_phases(self) -> list[EntityRef]:
        """Get the phases of manual tests."""
        return [
            EntityRef.from_entity(phase)
            for phase in self.get_entities(PHASES, ["name"], query_eq("entity", MANUAL_TEST_TYPE))
        ]

    def get_user_tags(self) -> list[EntityRef]:
        return [EntityRef.from_entity(tag) for tag in self.get_entities(USER_TAGS, ["name"])]

    def get_application_modules(self) -> list[EntityRef]:
        return [
            EntityRef.from_entity(module)
            for module in self.get_entities(PRODUCT_AREAS, ["name", "parent"])
        ]

    def get_application_modules_root(self) -> EntityRef:
        """Get the application module without a parent."""
        root = self._first(PRODUCT_AREAS, ["name"], query_eq("parent", None))
        if root is None:
            raise EntityNotFoundError("Unable to get parent application module")
        return EntityRef.from_entity(root)

    def get_list_root(self, list_name: str) -> EntityRef:
        """Get the root node of the list called ``list_name``."""
        root = self._first(LIST_NODES, ["name", "logical_name"], query_eq("name", list_name))
        if root is None:
            raise EntityNotFoundError(f"Unable to get parent list root for list with name {list_name}")
        return EntityRef.from_entity(root)

    def get_list_item(self, list_root_id: str, item_name: str) -> EntityRef | None:
        item = self._first(
            LIST_NODES,
            ["name"],
            query_and(
                query_eq("list_root", Subquery(query_eq("id", list_root_id))),
                query_eq("name", item_name),
            ),
        )
        return EntityRef.from_entity(item) if item else None

    def get_list_items(self, list_root_id: str) -> list[EntityRef]:
        return [
            EntityRef.from_entity(item)
            for item in self.get_entities(
                LIST_NODES, ["name"], query_eq("list_root", Subquery(query_eq("id", list_root_id)))
            )
        ]

    def get_list(self, list_name: str) -> list[EntityRef]:
        """Get all items of the list called ``list_name``."""
        return self.get_list_items(self.get_list_root(list_name).id)

    def get_entity_by_name(self, collection: str, name: str) -> EntityRef | None:
        entity = self._first(collection, ["name"], query_eq("name", name))
        return EntityRef.from_entity(entity) if entity else None

    def get_entity_with_essential_fields(
        self, collection: str, entity_id: str
    ) -> EntityRef | None:
        """Get an entity by id with only its id, name and type."""
        entity = self._first(collection, ["name"], query_eq("id", entity_id))
        if entity is None:
            return None
        return EntityRef(id=entity["id"], name=entity.get("name"), type=entity.get("type"))
