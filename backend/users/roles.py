from .models import UserRole

ROLE_LEVELS = {
    UserRole.ADMIN: 3,
    UserRole.MANAGER: 2,
    UserRole.CASHIER: 1,
}


def role_level(role) -> int:
    return ROLE_LEVELS.get(role, 0)


def user_role_level(user) -> int:
    if not user or not user.is_authenticated:
        return 0
    if user.is_superuser:
        return ROLE_LEVELS[UserRole.ADMIN]
    return role_level(getattr(user, "role", None))


def has_role_at_least(user, required_role) -> bool:
    """Return True when ``user`` ranks at or above ``required_role``.

    Superusers rank as admin; anonymous users never pass.
    """
    level = user_role_level(user)
    return level > 0 and level >= role_level(required_role)


def can_manage_user(actor, target_role) -> bool:
    """Admins manage every role, managers manage cashiers, cashiers nobody."""
    level = user_role_level(actor)
    if level >= ROLE_LEVELS[UserRole.ADMIN]:
        return target_role in ROLE_LEVELS
    if level == ROLE_LEVELS[UserRole.MANAGER]:
        return target_role == UserRole.CASHIER
    return False
