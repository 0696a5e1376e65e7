"""Tests for permission identifiers and permission schemas."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from ad_access_core.enums import (
    Action,
    Resource,
    parse_permission_identifier,
    permission_catalog,
    permission_identifier,
)
from ad_access_core.schemas.permission_schemas import (
    BulkAssignmentItem,
    BulkAssignmentOutcome,
    BulkAssignmentResult,
    validate_permission_id,
)


class TestIdentifiers:
    """Test building and parsing resource:action identifiers."""

    def test_identifier(self):
        assert permission_identifier(Resource.SOCIAL_MEDIA, Action.APPROVE) == (
            "social_media:approve"
        )
        assert permission_identifier("campaign", "view") == "campaign:view"

    def test_parse(self):
        assert parse_permission_identifier("designer:upload") == (Resource.DESIGNER, Action.UPLOAD)

    @pytest.mark.parametrize("identifier", ["campaign", "campaign:fly", "galaxy:view", ""])
    def test_parse_rejects(self, identifier):
        with pytest.raises(ValueError):
            parse_permission_identifier(identifier)

    def test_catalog_is_full_cross_product(self):
        catalog = permission_catalog()

        assert len(catalog) == len(Resource) * len(Action)
        assert "workspace:create" in catalog
        assert "user:update" in catalog

    def test_validate_normalizes(self):
        assert validate_permission_id("  Campaign:VIEW ") == "campaign:view"

    def test_validate_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown permission identifier"):
            validate_permission_id("campaign:fly")


class TestBulkSchemas:
    """Test the bulk assignment request and result models."""

    def test_item_validates_permissions(self):
        item = BulkAssignmentItem(user_id=" user-1 ", permission_ids=["Campaign:View"])

        assert item.user_id == "user-1"
        assert item.permission_ids == ["campaign:view"]

    def test_item_rejects_unknown_permission(self):
        with pytest.raises(PydanticValidationError):
            BulkAssignmentItem(user_id="user-1", permission_ids=["campaign:fly"])

    def test_item_requires_permissions(self):
        with pytest.raises(PydanticValidationError):
            BulkAssignmentItem(user_id="user-1", permission_ids=[])

    def test_result_helpers(self):
        result = BulkAssignmentResult(
            workspace_id="ws",
            outcomes=[
                BulkAssignmentOutcome(user_id="a", succeeded=True),
                BulkAssignmentOutcome(user_id="b", succeeded=False, error="conflict"),
            ],
        )

        assert result.succeeded == ["a"]
        assert result.failed == ["b"]
        assert result.outcome_for("b").error == "conflict"
        assert result.outcome_for("c") is None
