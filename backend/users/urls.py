from django.urls import path
from rest_framework.routers import SimpleRouter

from .views import PasswordChangeView, SignInView, SignOutView, SignUpView, UserViewSet

router = SimpleRouter(trailing_slash=False)
router.register(r"users", UserViewSet, basename="users")

urlpatterns = [
    *router.urls,
    path("auth/signin", SignInView.as_view(), name="auth-signin"),
    path("auth/signout", SignOutView.as_view(), name="auth-signout"),
    path("auth/signup", SignUpView.as_view(), name="auth-signup"),
    path("auth/password", PasswordChangeView.as_view(), name="auth-password"),
]
