import logging

from django.contrib.auth import authenticate, get_user_model
from django.db.models import Q
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from pos.throttles import SignInRateThrottle

from .authentication import issue_token
from .models import UserRole, UserStatus
from .permissions import IsCashierRole, IsManagerRole
from .roles import can_manage_user
from .serializers import (
    PasswordChangeSerializer,
    SignInSerializer,
    SignUpSerializer,
    UserSerializer,
    UserUpdateSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()

FORBIDDEN_MESSAGE = "Access denied. Insufficient permissions."


class SignInView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [SignInRateThrottle]

    def post(self, request):
        serializer = SignInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"].strip().lower()

        user = authenticate(request, email=email, password=serializer.validated_data["password"])
        if user is None:
            logger.warning("Failed sign-in for %s", email)
            return Response({"error": "Invalid email or password"}, status=status.HTTP_400_BAD_REQUEST)
        if not user.is_status_active:
            logger.warning("Sign-in refused for %s with status %s", email, user.status)
            return Response(
                {"error": "Your account is inactive. Please contact an administrator."},
                status=status.HTTP_403_FORBIDDEN,
            )

        user.touch_last_active()
        token = issue_token(user)
        logger.info("User %s signed in", user.pk)
        return Response({"user": UserSerializer(user).data, "access_token": token.key})


class SignOutView(APIView):
    permission_classes = [IsCashierRole]

    def post(self, request):
        if request.auth is not None:
            request.auth.delete()
        logger.info("User %s signed out", request.user.pk)
        return Response({"success": True})


class SignUpView(APIView):
    permission_classes = [IsManagerRole]

    def post(self, request):
        serializer = SignUpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if not can_manage_user(request.user, serializer.validated_data["role"]):
            return Response({"error": FORBIDDEN_MESSAGE}, status=status.HTTP_403_FORBIDDEN)

        user = serializer.save()
        logger.info("User %s created %s account %s", request.user.pk, user.role, user.pk)
        return Response({"user": UserSerializer(user).data}, status=status.HTTP_201_CREATED)


class PasswordChangeView(APIView):
    permission_classes = [IsCashierRole]

    def post(self, request):
        serializer = PasswordChangeSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        user = request.user
        user.set_password(serializer.validated_data["new_password"])
        user.save(update_fields=["password"])
        token = issue_token(user)
        logger.info("User %s changed password", user.pk)
        return Response({"access_token": token.key})


class UserViewSet(
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = User.objects.all().order_by("-date_joined")
    serializer_class = UserSerializer

    def get_permissions(self):
        if self.action == "me":
            permission_classes = [IsCashierRole]
        else:
            permission_classes = [IsManagerRole]
        return [perm() for perm in permission_classes]

    def get_queryset(self):
        qs = super().get_queryset()
        params = self.request.query_params
        search = params.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(email__icontains=search))
        role = params.get("role")
        if role and role != "all":
            qs = qs.filter(role=role)
        status_filter = params.get("status")
        if status_filter and status_filter != "all":
            qs = qs.filter(status=status_filter)
        return qs

    def list(self, request, *args, **kwargs):
        role = request.query_params.get("role")
        if role and role not in {"all", *UserRole.values}:
            return Response({"error": "Invalid role"}, status=status.HTTP_400_BAD_REQUEST)
        status_filter = request.query_params.get("status")
        if status_filter and status_filter not in {"all", *UserStatus.values}:
            return Response({"error": "Invalid status"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = self.get_serializer(self.get_queryset(), many=True)
        return Response({"users": serializer.data})

    def retrieve(self, request, *args, **kwargs):
        return Response({"user": self.get_serializer(self.get_object()).data})

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        user = self.get_object()
        serializer = UserUpdateSerializer(user, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        new_role = serializer.validated_data.get("role", user.role)
        if not (can_manage_user(request.user, user.role) and can_manage_user(request.user, new_role)):
            return Response({"error": FORBIDDEN_MESSAGE}, status=status.HTTP_403_FORBIDDEN)

        serializer.save(last_active=timezone.now())
        logger.info("User %s updated account %s", request.user.pk, user.pk)
        return Response({"user": UserSerializer(user).data})

    def destroy(self, request, *args, **kwargs):
        user = self.get_object()
        if user.pk == request.user.pk:
            return Response(
                {"error": "You cannot delete your own account"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        if not can_manage_user(request.user, user.role):
            return Response({"error": FORBIDDEN_MESSAGE}, status=status.HTTP_403_FORBIDDEN)

        user_id = user.pk
        user.delete()
        logger.info("User %s deleted account %s", request.user.pk, user_id)
        return Response({"success": True})

    @action(detail=False, methods=["get"], url_path="me")
    def me(self, request):
        return Response({"user": self.get_serializer(request.user).data})
