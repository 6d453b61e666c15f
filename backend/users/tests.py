from datetime import timedelta

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from .models import UserRole, UserStatus
from .roles import can_manage_user, has_role_at_least


def make_user(email, role=UserRole.CASHIER, password="pass1234", **extra):
    return get_user_model().objects.create_user(
        email=email,
        password=password,
        name=extra.pop("name", email.split("@")[0].title()),
        role=role,
        **extra,
    )


class RoleHierarchyTests(TestCase):
    def setUp(self):
        self.admin = make_user("admin@riceshop.com", UserRole.ADMIN)
        self.manager = make_user("manager@riceshop.com", UserRole.MANAGER)
        self.cashier = make_user("cashier@riceshop.com", UserRole.CASHIER)

    def test_hierarchy_admin_over_manager_over_cashier(self):
        self.assertTrue(has_role_at_least(self.admin, UserRole.MANAGER))
        self.assertTrue(has_role_at_least(self.manager, UserRole.CASHIER))
        self.assertTrue(has_role_at_least(self.manager, UserRole.MANAGER))
        self.assertFalse(has_role_at_least(self.manager, UserRole.ADMIN))
        self.assertFalse(has_role_at_least(self.cashier, UserRole.MANAGER))

    def test_superuser_ranks_as_admin(self):
        root = get_user_model().objects.create_superuser(
            email="root@riceshop.com", password="pass1234", name="Root", role=UserRole.CASHIER
        )
        self.assertTrue(has_role_at_least(root, UserRole.ADMIN))

    def test_anonymous_never_passes(self):
        self.assertFalse(has_role_at_least(AnonymousUser(), UserRole.CASHIER))
        self.assertFalse(can_manage_user(AnonymousUser(), UserRole.CASHIER))

    def test_can_manage_user(self):
        self.assertTrue(can_manage_user(self.admin, UserRole.ADMIN))
        self.assertTrue(can_manage_user(self.manager, UserRole.CASHIER))
        self.assertFalse(can_manage_user(self.manager, UserRole.MANAGER))
        self.assertFalse(can_manage_user(self.cashier, UserRole.CASHIER))


class SignInApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.user = make_user("cashier1@riceshop.com", UserRole.CASHIER, password="cashier123")
        self.client = APIClient()

    def _sign_in(self, email="cashier1@riceshop.com", password="cashier123"):
        return self.client.post(
            reverse("auth-signin"),
            data={"email": email, "password": password},
            format="json",
        )

    def test_signin_returns_token_and_profile(self):
        response = self._sign_in()
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["user"]["email"], "cashier1@riceshop.com")
        self.assertEqual(response.data["user"]["role"], UserRole.CASHIER)
        self.assertTrue(response.data["access_token"])
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_active)

    def test_signin_email_is_case_insensitive(self):
        response = self._sign_in(email="Cashier1@RiceShop.com")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_token_authenticates_bearer_requests(self):
        token = self._sign_in().data["access_token"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["user"]["id"], self.user.id)

    def test_wrong_password_returns_error(self):
        response = self._sign_in(password="nope")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Invalid email or password")

    def test_inactive_account_is_refused(self):
        self.user.status = UserStatus.SUSPENDED
        self.user.save(update_fields=["status"])
        response = self._sign_in()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertIn("inactive", response.data["error"])

    def test_missing_token_returns_401(self):
        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn("error", response.data)

    def test_signout_revokes_token(self):
        token = self._sign_in().data["access_token"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.post(reverse("auth-signout"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Token.objects.filter(key=token).exists())

        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    @override_settings(TOKEN_TTL_HOURS=1)
    def test_expired_token_returns_401(self):
        token = self._sign_in().data["access_token"]
        Token.objects.filter(key=token).update(created=timezone.now() - timedelta(hours=2))
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data["error"], "Session expired. Please login again.")

    def test_suspended_user_token_is_rejected(self):
        token = self._sign_in().data["access_token"]
        self.user.status = UserStatus.INACTIVE
        self.user.save(update_fields=["status"])
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_password_change_rotates_token(self):
        token = self._sign_in().data["access_token"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.post(
            reverse("auth-password"),
            data={"current_password": "cashier123", "new_password": "newpass456"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotEqual(response.data["access_token"], token)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("newpass456"))


class SignUpApiTests(TestCase):
    def setUp(self):
        self.admin = make_user("admin@riceshop.com", UserRole.ADMIN)
        self.manager = make_user("manager@riceshop.com", UserRole.MANAGER)
        self.cashier = make_user("cashier@riceshop.com", UserRole.CASHIER)
        self.client = APIClient()

    def _signup(self, **overrides):
        data = {
            "name": "New Cashier",
            "email": "new@riceshop.com",
            "password": "secret123",
            "role": UserRole.CASHIER,
        }
        data.update(overrides)
        return self.client.post(reverse("auth-signup"), data=data, format="json")

    def test_manager_creates_cashier(self):
        self.client.force_authenticate(self.manager)
        response = self._signup()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["user"]["role"], UserRole.CASHIER)
        self.assertEqual(response.data["user"]["status"], UserStatus.ACTIVE)
        self.assertNotIn("password", response.data["user"])

    def test_manager_cannot_create_manager(self):
        self.client.force_authenticate(self.manager)
        response = self._signup(role=UserRole.MANAGER)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_creates_manager(self):
        self.client.force_authenticate(self.admin)
        response = self._signup(role=UserRole.MANAGER)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_cashier_cannot_sign_up_users(self):
        self.client.force_authenticate(self.cashier)
        response = self._signup()
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"], "Access denied. Insufficient permissions.")

    def test_duplicate_email_rejected(self):
        self.client.force_authenticate(self.admin)
        response = self._signup(email="Cashier@riceshop.com")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "An account with this email already exists")

    def test_short_password_rejected(self):
        self.client.force_authenticate(self.admin)
        response = self._signup(password="abc")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password", response.data["details"])


class UserManagementApiTests(TestCase):
    def setUp(self):
        self.admin = make_user("admin@riceshop.com", UserRole.ADMIN, name="Ayu Admin")
        self.manager = make_user("manager@riceshop.com", UserRole.MANAGER, name="Budi Manager")
        self.cashier = make_user("cashier@riceshop.com", UserRole.CASHIER, name="Citra Kasir")
        self.client = APIClient()

    def test_list_requires_manager(self):
        self.client.force_authenticate(self.cashier)
        response = self.client.get(reverse("users-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_returns_envelope(self):
        self.client.force_authenticate(self.manager)
        response = self.client.get(reverse("users-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["users"]), 3)

    def test_list_filters_by_role_and_search(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("users-list"), data={"role": UserRole.CASHIER})
        self.assertEqual([u["id"] for u in response.data["users"]], [self.cashier.id])

        response = self.client.get(reverse("users-list"), data={"search": "budi"})
        self.assertEqual([u["id"] for u in response.data["users"]], [self.manager.id])

    def test_list_invalid_status_filter(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("users-list"), data={"status": "banned"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cashier_can_read_own_profile(self):
        self.client.force_authenticate(self.cashier)
        response = self.client.get(reverse("users-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["user"]["name"], "Citra Kasir")

    def test_manager_updates_cashier_status(self):
        self.client.force_authenticate(self.manager)
        response = self.client.patch(
            reverse("users-detail", kwargs={"pk": self.cashier.id}),
            data={"status": UserStatus.SUSPENDED},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.cashier.refresh_from_db()
        self.assertEqual(self.cashier.status, UserStatus.SUSPENDED)

    def test_update_refreshes_last_active(self):
        self.client.force_authenticate(self.manager)
        before = timezone.now()
        response = self.client.patch(
            reverse("users-detail", kwargs={"pk": self.cashier.id}),
            data={"name": "Citra Lestari"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.cashier.refresh_from_db()
        self.assertGreaterEqual(self.cashier.last_active, before)
        self.assertIsNotNone(response.data["user"]["lastActive"])

    def test_manager_cannot_promote_cashier_to_admin(self):
        self.client.force_authenticate(self.manager)
        response = self.client.put(
            reverse("users-detail", kwargs={"pk": self.cashier.id}),
            data={"name": "Citra", "role": UserRole.ADMIN, "status": UserStatus.ACTIVE},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.cashier.refresh_from_db()
        self.assertEqual(self.cashier.role, UserRole.CASHIER)

    def test_manager_cannot_edit_admin(self):
        self.client.force_authenticate(self.manager)
        response = self.client.patch(
            reverse("users-detail", kwargs={"pk": self.admin.id}),
            data={"name": "Changed"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_deletes_user(self):
        self.client.force_authenticate(self.admin)
        response = self.client.delete(reverse("users-detail", kwargs={"pk": self.manager.id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"success": True})
        self.assertFalse(get_user_model().objects.filter(pk=self.manager.id).exists())

    def test_cannot_delete_self(self):
        self.client.force_authenticate(self.admin)
        response = self.client.delete(reverse("users-detail", kwargs={"pk": self.admin.id}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_user_returns_404(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("users-detail", kwargs={"pk": 9999}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertIn("error", response.data)
