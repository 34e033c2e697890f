"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Unit tests for reference resolution of manual test rows.

Resolution runs against the in-memory workspace; lookup misses must fall back
to defaults or drop the value, never fail the row.
"""

import pytest

from etoo.entity_model import EntityModelBuilder
from etoo.octane_client import OctaneError
from etoo.octane_models import PRODUCT_AREAS, USER_TAGS
from etoo.reference_resolver import ABANDON, ReferenceResolver, split_values
from tests.fixtures.workbooks import import_row


@pytest.fixture
def resolver(run_context):
    return ReferenceResolver(run_context)


@pytest.mark.unit
def test_split_values_keeps_empty_items():
    assert split_values(" a, b ,,c ") == ["a", "b", "", "c"]


@pytest.mark.unit
class TestUsersAndPhase:
    def test_owner_is_matched_case_insensitively(self, resolver):
        assert resolver.owner(import_row(owner="ALICE@example.com")).id == "2"

    def test_unknown_or_blank_owner_uses_default_user(self, resolver, caplog):
        assert resolver.owner(import_row(unique_id="5", owner="ghost@example.com")).id == "1"
        assert resolver.owner(import_row(unique_id="6")).id == "1"
        assert "the default value for owner" in caplog.text

    def test_designer(self, resolver):
        assert resolver.designer(import_row()) is None
        assert resolver.designer(import_row(designer="bob@example.com")).id == "3"
        assert resolver.designer(import_row(designer="ghost@example.com")).id == "1"

    def test_phase(self, resolver, caplog):
        assert resolver.phase(import_row(phase="Ready")).id == "p2"
        assert resolver.phase(import_row(phase="Archived")) is None
        assert resolver.phase(import_row()) is None
        assert 'Phase "Archived" not found' in caplog.text


@pytest.mark.unit
class TestApplicationModules:
    def test_blank_column_uses_root(self, resolver):
        assert [m.id for m in resolver.application_modules(import_row())] == ["1001"]

    def test_existing_empty_and_duplicate_names(self, resolver):
        modules = resolver.application_modules(import_row(product_areas="Billing,,Billing"))
        assert [m.id for m in modules] == ["m1", "1001"]

    def test_missing_module_is_created_once(self, resolver, fake_client):
        first = resolver.application_modules(import_row(product_areas="Billing, Reports"))
        second = resolver.application_modules(import_row(product_areas="Reports"))

        assert [m.name for m in first] == ["Billing", "Reports"]
        assert second[0].id == first[1].id
        assert fake_client.created[PRODUCT_AREAS] == [
            {"name": "Reports", "parent": {"type": "product_area", "id": "1001", "name": "Root"}}
        ]

    def test_failed_creation_abandons_the_test(self, resolver, fake_client):
        fake_client.fail_create_names.add("Reports")
        row = import_row(unique_id="7", type="test_manual", product_areas="Reports")
        assert resolver.application_modules(row) is ABANDON
        assert resolver.resolve(row) is ABANDON


@pytest.mark.unit
class TestMultiValuedFields:
    def test_blank_test_type_uses_default(self, resolver):
        assert [t.id for t in resolver.test_types(import_row())] == ["tt1"]

    def test_blank_test_type_without_default(self, resolver, run_context):
        run_context.cache.default_test_type = None
        assert resolver.test_types(import_row()) is None

    def test_unknown_test_types_are_dropped(self, resolver):
        test_types = resolver.test_types(import_row(test_type="Acceptance, Unknown, Acceptance"))
        assert [t.id for t in test_types] == ["tt2"]

    def test_user_tags_are_created_when_missing(self, resolver, fake_client):
        tags = resolver.user_tags(import_row(user_tags="smoke, nightly, , nightly"))
        again = resolver.user_tags(import_row(user_tags="nightly"))

        assert [t.name for t in tags] == ["smoke", "nightly"]
        assert again[0].id == tags[1].id
        assert fake_client.created[USER_TAGS] == [{"name": "nightly", "type": "user_tag"}]

    def test_user_tag_creation_failure_propagates(self, resolver, fake_client):
        fake_client.fail_create_names.add("nightly")
        with pytest.raises(OctaneError):
            resolver.user_tags(import_row(user_tags="nightly"))

    def test_covered_content(self, resolver, caplog):
        covered = resolver.covered_content(import_row(covered_content="42, 77.0, 99, abc, 42"))

        assert [(c.id, c.type) for c in covered] == [("42", "work_item"), ("77", "work_item")]
        assert 'id "99" was not found' in caplog.text
        assert '"abc" is not a valid id' in caplog.text

    @pytest.mark.parametrize(
        "value,expected",
        [(None, None), ("0", None), ("1", 1), ("7000", 7000), ("7001", None), ("30.9", 30)],
    )
    def test_estimated_duration(self, resolver, value, expected):
        assert resolver.estimated_duration(import_row(estimated_duration=value)) == expected


@pytest.mark.unit
class TestResolve:
    def test_unresolvable_values_send_empty_references(self, resolver):
        row = import_row(
            unique_id="1",
            type="test_manual",
            name="Login",
            test_type="Nope, Missing",
            user_tags=",",
            covered_content="abc",
        )

        entity = resolver.resolve(row).apply(EntityModelBuilder().name("Login")).build()

        assert entity["test_type"] == {"data": []}
        assert entity["user_tags"] == {"data": []}
        assert entity["covered_content"] == {"data": []}

    def test_resolved_test_is_applied_to_builder(self, resolver):
        row = import_row(
            unique_id="1",
            type="test_manual",
            name="Login",
            owner="alice@example.com",
            phase="New",
            product_areas="Billing",
            user_tags="smoke",
            covered_content="42",
            estimated_duration="15",
        )
        entity = resolver.resolve(row).apply(EntityModelBuilder().name(row.name)).build()

        assert entity == {
            "name": "Login",
            "owner": {"type": "workspace_user", "id": "2", "name": "Alice"},
            "phase": {"type": "phase", "id": "p1", "name": "New"},
            "product_areas": {"data": [{"type": "product_area", "id": "m1", "name": "Billing"}]},
            "test_type": {"data": [{"type": "list_node", "id": "tt1", "name": "End to End"}]},
            "user_tags": {"data": [{"type": "user_tag", "id": "t1", "name": "smoke"}]},
            "covered_content": {"data": [{"type": "work_item", "id": "42", "name": "Login story"}]},
            "estimated_duration": 15,
        }
