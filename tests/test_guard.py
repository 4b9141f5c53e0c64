"""Tests for role-based route gating."""
import pytest

from marketplace.auth.models import Identity, Role
from marketplace.gateway.guard import Decision, authorize, navigate


def _identity(role):
    return Identity(id=f"{role.value}-1", email=f"{role.value}@test.com", role=role, display_name="Someone")


class TestAuthorize:
    def test_pending_session_waits(self):
        result = authorize(None, "/vendor", [Role.VENDOR], pending=True)
        assert result.decision == Decision.LOADING
        assert result.redirect_to is None

    def test_absent_identity_goes_to_login(self):
        result = authorize(None, "/vendor", [Role.VENDOR])
        assert result.decision == Decision.REDIRECT_LOGIN
        assert result.redirect_to == "/login"
        assert result.requested_path == "/vendor"

    def test_wrong_role_goes_to_unauthorized(self):
        result = authorize(_identity(Role.USER), "/vendor", [Role.VENDOR])
        assert result.decision == Decision.REDIRECT_UNAUTHORIZED
        assert result.redirect_to == "/unauthorized"

    def test_allowed_role(self):
        assert authorize(_identity(Role.VENDOR), "/vendor", [Role.VENDOR]).decision == Decision.ALLOW

    def test_no_role_list_only_requires_a_session(self):
        assert authorize(_identity(Role.ADMIN), "/anything").decision == Decision.ALLOW
        assert authorize(None, "/anything").decision == Decision.REDIRECT_LOGIN

    def test_unsigned_pending_is_loading_not_redirect(self):
        # A restore still in flight must not bounce to login
        assert authorize(None, "/admin", [Role.ADMIN], pending=True).decision == Decision.LOADING


class TestNavigate:
    @pytest.mark.parametrize("path,role,decision", [
        ("/admin", Role.ADMIN, Decision.ALLOW),
        ("/admin", Role.VENDOR, Decision.REDIRECT_UNAUTHORIZED),
        ("/vendor", Role.VENDOR, Decision.ALLOW),
        ("/vendor", Role.USER, Decision.REDIRECT_UNAUTHORIZED),
        ("/products", Role.VENDOR, Decision.ALLOW),
        ("/products", Role.ADMIN, Decision.REDIRECT_UNAUTHORIZED),
        ("/cart", Role.USER, Decision.ALLOW),
        ("/checkout", Role.VENDOR, Decision.REDIRECT_UNAUTHORIZED),
        ("/orders", Role.ADMIN, Decision.ALLOW),
        ("/membership", Role.VENDOR, Decision.REDIRECT_UNAUTHORIZED),
        ("/Admin", Role.USER, Decision.REDIRECT_UNAUTHORIZED),
        ("/VENDOR/", Role.ADMIN, Decision.REDIRECT_UNAUTHORIZED),
        ("/Cart", Role.USER, Decision.ALLOW),
    ])
    def test_route_table(self, path, role, decision):
        assert navigate(_identity(role), path).decision == decision

    def test_trailing_slash_is_normalized(self):
        result = navigate(_identity(Role.USER), "cart/")
        assert result.requested_path == "/cart"
        assert result.decision == Decision.ALLOW

    def test_root_redirects_to_login(self):
        assert navigate(None, "/").redirect_to == "/login"

    def test_protected_route_without_identity(self):
        assert navigate(None, "/orders").decision == Decision.REDIRECT_LOGIN

    @pytest.mark.parametrize("path", ["/Admin", "/ADMIN", "admin/", "/aDmIn"])
    def test_case_variants_of_protected_paths_need_a_session(self, path):
        result = navigate(None, path)
        assert result.decision == Decision.REDIRECT_LOGIN
        assert result.requested_path == "/admin"

    def test_signed_in_identity_is_sent_home_from_login(self):
        result = navigate(_identity(Role.VENDOR), "/Login")
        assert result.decision == Decision.REDIRECT_HOME
        assert result.redirect_to == "/vendor"

    def test_guest_may_open_login_and_public_pages(self):
        assert navigate(None, "/login").redirect_to is None
        assert navigate(None, "/unauthorized").decision == Decision.ALLOW

    def test_pending_applies_to_public_pages_too(self):
        assert navigate(None, "/login", pending=True).decision == Decision.LOADING

    def test_role_change_is_seen_on_next_navigation(self):
        identity = _identity(Role.USER)
        assert navigate(identity, "/vendor").decision == Decision.REDIRECT_UNAUTHORIZED
        promoted = identity.model_copy(update={"role": Role.VENDOR})
        assert navigate(promoted, "/vendor").decision == Decision.ALLOW
