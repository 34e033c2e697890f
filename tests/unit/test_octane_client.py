"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Unit tests for the Octane REST client.

The requests session is mocked; the tests check the requests the client sends
and how it interprets the responses.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from etoo.octane_client import (
    EntityNotFoundError,
    OctaneClient,
    OctaneError,
    Subquery,
    query_and,
    query_eq,
)
from etoo.octane_models import EntityRef, OctaneCollectionResponse

WORKSPACE_URL = "https://octane.example.com/api/shared_spaces/1001/workspaces/1002"


def make_response(status_code=200, body=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    if body is None:
        response.content = b""
        response.text = ""
        response.json.side_effect = ValueError("No JSON")
    else:
        response.content = json.dumps(body).encode()
        response.text = json.dumps(body)
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    session.proxies = {}
    session.post.return_value = make_response(200, {})
    return session


@pytest.fixture
def client(octane_config, session):
    return OctaneClient(octane_config, session=session)


@pytest.mark.unit
class TestQueries:
    def test_equality(self):
        assert query_eq("name", "Root") == "name EQ 'Root'"
        assert query_eq("name", "O'Neil") == "name EQ 'O\\'Neil'"
        assert query_eq("parent", None) == "parent EQ {null}"

    def test_nested_and_combined(self):
        query = query_and(
            query_eq("list_root", Subquery(query_eq("id", "7"))),
            query_eq("name", "A"),
        )
        assert query == "list_root EQ {id EQ '7'};name EQ 'A'"

    def test_and_skips_empty_predicates(self):
        assert query_and(query_eq("id", 1), "") == "id EQ '1'"


@pytest.mark.unit
class TestAuthentication:
    def test_signs_in_with_user_and_password(self, client, session):
        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "https://octane.example.com/authentication/sign_in"
        assert kwargs["json"] == {"user": "importer", "password": "secret"}
        assert session.headers["Content-Type"] == "application/json"

    def test_api_key_is_preferred(self, octane_config, session):
        config = octane_config.model_copy(update={"client_id": "key", "client_secret": "value"})
        OctaneClient(config, session=session)
        assert session.post.call_args.kwargs["json"] == {"client_id": "key", "client_secret": "value"}

    def test_failed_sign_in_raises(self, octane_config, session):
        session.post.return_value = make_response(
            401, {"errors": [{"description": "Invalid credentials"}]}, reason="Unauthorized"
        )
        with pytest.raises(OctaneError) as exc_info:
            OctaneClient(octane_config, session=session)
        assert exc_info.value.status_code == 401
        assert exc_info.value.description == "Invalid credentials"

    def test_proxies_are_applied(self, octane_config, session):
        config = octane_config.model_copy(update={"proxy_host": "proxy.local", "proxy_port": 3128})
        OctaneClient(config, session=session, authenticate=False)
        assert session.proxies["https"] == "http://proxy.local:3128"
        session.post.assert_not_called()

    def test_expired_session_is_renewed_once(self, client, session):
        session.request.side_effect = [
            make_response(401, {}, reason="Unauthorized"),
            make_response(200, {"total_count": 0, "data": []}),
        ]
        assert client.get_entities("phases") == []
        assert session.post.call_count == 2
        assert session.request.call_count == 2

    def test_second_unauthorized_response_raises(self, client, session):
        session.request.return_value = make_response(401, {}, reason="Unauthorized")
        with pytest.raises(OctaneError):
            client.get_entities("phases")
        assert session.request.call_count == 2


@pytest.mark.unit
class TestRequests:
    def test_pages_are_followed(self, client, session):
        session.request.side_effect = [
            make_response(200, {"total_count": 3, "data": [{"id": "1"}, {"id": "2"}]}),
            make_response(200, {"total_count": 3, "data": [{"id": "3"}]}),
        ]
        entities = list(client.iter_entities("phases", ["name"], query_eq("entity", "test_manual"), page_size=2))

        assert [entity["id"] for entity in entities] == ["1", "2", "3"]
        first, second = session.request.call_args_list
        assert first.kwargs["url"] == f"{WORKSPACE_URL}/phases"
        assert first.kwargs["params"] == {
            "offset": 0,
            "limit": 2,
            "fields": "name",
            "query": "\"entity EQ 'test_manual'\"",
        }
        assert second.kwargs["params"]["offset"] == 2

    def test_error_description_is_taken_from_body(self, client, session):
        session.request.return_value = make_response(
            400, {"errors": [{"description": "Field name is required"}]}, reason="Bad Request"
        )
        with pytest.raises(OctaneError, match="Field name is required") as exc_info:
            client.create_entity("manual_tests", {})
        assert exc_info.value.status_code == 400
        assert client.error_count == 1

    def test_network_errors_propagate(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError("unreachable")
        with pytest.raises(requests.exceptions.ConnectionError):
            client.get_users()

    def test_create_entity(self, client, session):
        session.request.return_value = make_response(200, {"data": [{"id": "2001", "type": "test"}]})
        created = client.create_entity("manual_tests", {"name": "Login"})

        assert created == {"id": "2001", "type": "test"}
        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == f"{WORKSPACE_URL}/manual_tests"
        assert kwargs["json"] == {"data": [{"name": "Login"}]}

    def test_create_entity_without_result_raises(self, client, session):
        session.request.return_value = make_response(200, {"data": []})
        with pytest.raises(OctaneError, match="Unable to create entity of type manual_tests!"):
            client.create_entity("manual_tests", {"name": "Login"})

    def test_update_test_script_sends_raw_body(self, client, session):
        session.request.return_value = make_response(200, None)
        body = '{"script":"- step\\n","comment":"","revision_type":"Minor"}'

        assert client.update_test_script("2001", body) == {}
        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "PUT"
        assert kwargs["url"] == f"{WORKSPACE_URL}/tests/2001/script"
        assert kwargs["data"] == body.encode("utf-8")
        assert kwargs["json"] is None


@pytest.mark.unit
class TestLookups:
    def test_users(self, client, session):
        session.request.return_value = make_response(
            200,
            {
                "total_count": 1,
                "data": [{"id": 5, "type": "workspace_user", "name": "Alice", "email": "alice@example.com"}],
            },
        )
        users = client.get_users()
        assert users == [EntityRef(id="5", type="workspace_user", name="Alice", email="alice@example.com")]

    def test_application_modules_root(self, client, session):
        session.request.return_value = make_response(
            200, {"data": [{"id": "1001", "type": "product_area", "name": "Root"}]}
        )
        root = client.get_application_modules_root()
        assert root.id == "1001"
        assert session.request.call_args.kwargs["params"]["query"] == '"parent EQ {null}"'

    def test_missing_application_modules_root(self, client, session):
        session.request.return_value = make_response(200, {"data": []})
        with pytest.raises(EntityNotFoundError):
            client.get_application_modules_root()

    def test_missing_list_root(self, client, session):
        session.request.return_value = make_response(200, {"data": []})
        with pytest.raises(EntityNotFoundError, match="Test_Type"):
            client.get_list_root("Test_Type")

    def test_list_item_query(self, client, session):
        session.request.return_value = make_response(
            200, {"data": [{"id": "d1", "type": "list_node", "name": "A"}]}
        )
        item = client.get_list_item("l2", "A")
        assert item.name == "A"
        assert session.request.call_args.kwargs["params"]["query"] == (
            "\"list_root EQ {id EQ 'l2'};name EQ 'A'\""
        )

    def test_entity_with_essential_fields(self, client, session):
        session.request.return_value = make_response(
            200, {"data": [{"id": "42", "type": "story", "name": "Login story", "phase": {}}]}
        )
        entity = client.get_entity_with_essential_fields("stories", "42")
        assert entity == EntityRef(id="42", type="story", name="Login story")

    def test_close(self, client, session):
        with client:
            pass
        session.close.assert_called_once()


@pytest.mark.unit
class TestModels:
    def test_entity_ref_requires_id(self):
        with pytest.raises(ValueError):
            EntityRef(id="")

    def test_root_parent_is_dropped(self):
        module = EntityRef.from_entity({"id": "1001", "name": "Root", "parent": {"type": "product_area"}})
        assert module.parent is None

    def test_as_reference(self):
        user = EntityRef(id="5", type="workspace_user", name="Alice", email="alice@example.com")
        assert user.as_reference() == {"type": "workspace_user", "id": "5", "name": "Alice"}
        assert user.with_type("work_item").type == "work_item"
        assert user.type == "workspace_user"

    def test_collection_page_end(self):
        page = OctaneCollectionResponse(total_count=3, data=[{"id": "1"}, {"id": "2"}])
        assert page.is_last(0) is False
        assert page.is_last(1) is True
        assert OctaneCollectionResponse(data=[]).is_last(0) is True
