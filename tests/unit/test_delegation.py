"""
Tests for DelegationResolver.

Links are only persisted after the platform confirms the agency's access;
token resolution follows the link when present.
"""

import pytest

from ad_access_core.db import DelegationLink
from ad_access_core.enums import Platform
from ad_access_core.exceptions import (
    CredentialNotFoundError,
    DelegationNotVerifiedError,
    PermissionDeniedError,
    ProviderError,
    RepositoryError,
)
from tests.fixtures.factories import AgencyFactory, PlatformAccountFactory, create_credential
from tests.fixtures.fake_providers import provider_timeout


@pytest.fixture
def account(db_session, clock):
    account = PlatformAccountFactory()
    create_credential(db_session, account, issued_at=clock.now, access_token="account-token")
    return account


@pytest.fixture
def agency(db_session, clock):
    agency = AgencyFactory(owner_user_id="agency-owner")
    create_credential(db_session, agency, issued_at=clock.now, access_token="agency-token")
    return agency


class TestLinkAccountToAgency:
    """Test verified linking."""

    def test_link_after_verification(self, db_session, delegation_resolver, account, agency):
        link = delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert link.account_id == account.id
        assert link.agency_id == agency.id
        assert link.linked_by == "agency-owner"
        assert link.verified_at is not None
        assert db_session.query(DelegationLink).count() == 1

    def test_verification_denied(
        self, db_session, delegation_resolver, fake_gateway, account, agency
    ):
        fake_gateway.verify_result = False

        with pytest.raises(DelegationNotVerifiedError):
            delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert db_session.query(DelegationLink).count() == 0

    def test_verification_uses_agency_token_and_resource(
        self, delegation_resolver, fake_gateway, account, agency
    ):
        delegation_resolver.link_account_to_agency(
            account.id, agency.id, "agency-owner", timeout=3.0
        )

        assert fake_gateway.calls["verify_delegated_access"] == 1
        assert fake_gateway.options_seen[-1].timeout == 3.0

    def test_requesting_user_must_own_agency(
        self, db_session, delegation_resolver, fake_gateway, account, agency
    ):
        with pytest.raises(PermissionDeniedError):
            delegation_resolver.link_account_to_agency(account.id, agency.id, "someone-else")

        assert fake_gateway.calls["verify_delegated_access"] == 0
        assert db_session.query(DelegationLink).count() == 0

    def test_agency_without_credential(self, db_session, delegation_resolver, account):
        agency = AgencyFactory(owner_user_id="agency-owner")

        with pytest.raises(DelegationNotVerifiedError) as exc_info:
            delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert isinstance(exc_info.value.cause, CredentialNotFoundError)
        assert db_session.query(DelegationLink).count() == 0

    def test_platform_mismatch(self, db_session, delegation_resolver, account):
        agency = AgencyFactory(owner_user_id="agency-owner", platform=Platform.LINKEDIN.value)

        with pytest.raises(DelegationNotVerifiedError):
            delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

    def test_verification_timeout_propagates(
        self, db_session, delegation_resolver, fake_gateway, account, agency
    ):
        fake_gateway.verify_error = provider_timeout()

        with pytest.raises(ProviderError) as exc_info:
            delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert exc_info.value.retryable is True
        assert db_session.query(DelegationLink).count() == 0

    def test_unknown_account(self, delegation_resolver, agency):
        with pytest.raises(RepositoryError) as exc_info:
            delegation_resolver.link_account_to_agency("missing", agency.id, "agency-owner")

        assert exc_info.value.status_code == 404

    def test_relink_to_another_agency_replaces_link(
        self, db_session, delegation_resolver, account, agency, clock
    ):
        other = AgencyFactory(owner_user_id="other-owner")
        create_credential(db_session, other, issued_at=clock.now, access_token="other-token")
        delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        delegation_resolver.link_account_to_agency(account.id, other.id, "other-owner")

        links = db_session.query(DelegationLink).all()
        assert len(links) == 1
        assert links[0].agency_id == other.id


class TestResolveToken:
    """Test token selection."""

    def test_unlinked_account_uses_own_token(self, delegation_resolver, account):
        resolved = delegation_resolver.resolve_token(account.id)

        assert resolved.access_token == "account-token"
        assert resolved.is_delegated is False
        assert resolved.agency_id is None

    def test_linked_account_uses_agency_token(self, delegation_resolver, account, agency):
        delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        resolved = delegation_resolver.resolve_token(account.id)

        assert resolved.access_token == "agency-token"
        assert resolved.is_delegated is True
        assert resolved.agency_id == agency.id

    def test_after_unlink_uses_own_token(self, delegation_resolver, account, agency):
        delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert delegation_resolver.unlink(account.id) is True
        resolved = delegation_resolver.resolve_token(account.id)

        assert resolved.access_token == "account-token"
        assert resolved.is_delegated is False

    def test_linked_account_without_own_credential(self, db_session, delegation_resolver, agency):
        account = PlatformAccountFactory()
        delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        assert delegation_resolver.resolve_token(account.id).access_token == "agency-token"

    def test_unknown_account(self, delegation_resolver):
        with pytest.raises(RepositoryError):
            delegation_resolver.resolve_token("missing")


class TestUnlinkAndQueries:
    """Test unlinking and link queries."""

    def test_unlink_without_link(self, delegation_resolver, account):
        assert delegation_resolver.unlink(account.id) is False

    def test_unlink_checks_owner(self, db_session, delegation_resolver, account, agency):
        delegation_resolver.link_account_to_agency(account.id, agency.id, "agency-owner")

        with pytest.raises(PermissionDeniedError):
            delegation_resolver.unlink(account.id, requesting_user_id="someone-else")

        assert db_session.query(DelegationLink).count() == 1

    def test_managed_accounts(self, db_session, delegation_resolver, agency):
        first = PlatformAccountFactory()
        second = PlatformAccountFactory()
        PlatformAccountFactory()
        delegation_resolver.link_account_to_agency(first.id, agency.id, "agency-owner")
        delegation_resolver.link_account_to_agency(second.id, agency.id, "agency-owner")

        managed = delegation_resolver.get_managed_accounts(agency.id)

        assert {a.id for a in managed} == {first.id, second.id}
        assert delegation_resolver.get_account_agency(first.id) == agency.id
        assert delegation_resolver.is_account_managed_by_agency(second.id, agency.id)
