"""
Identity models: password hashing, input validation and user-state helpers.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import bcrypt

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ANONYMOUS_PREFIX = "anon_"
MOCK_PREFIX = "mock-"

SESSION_COOKIE = "session_id"
ANONYMOUS_COOKIE = "anonymous_id"


def validate_email(email: Optional[str]) -> Optional[str]:
    """Return an error message for an invalid email, else None."""
    if not email or not EMAIL_PATTERN.match(email):
        return "请输入有效的邮箱地址"
    return None


def validate_password(password: Optional[str], min_length: int = 6) -> Optional[str]:
    if not password or len(password) < min_length:
        return f"密码至少需要{min_length}个字符"
    return None


def hash_password(password: str, bcrypt_rounds: int = None) -> str:
    """Hash a password with bcrypt.

    Args:
        password: The plain password
        bcrypt_rounds: Optional bcrypt rounds (lower in tests). Default uses bcrypt default.
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if bcrypt_rounds is not None:
        salt = bcrypt.gensalt(rounds=bcrypt_rounds)
    else:
        salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


@dataclass
class CookieSpec:
    """A cookie to set (or clear, when ``max_age`` is 0) on the response."""
    name: str
    value: str
    max_age: int


@dataclass
class CurrentUser:
    """Who is making the request.

    ``user`` is the public user dict for a registered visitor; anonymous
    visitors carry only ``anonymous_id``.
    """
    user: Optional[Dict[str, Any]] = None
    anonymous_id: Optional[str] = None
    cookies_to_set: List[CookieSpec] = field(default_factory=list)
    clear_session: bool = False

    @property
    def is_demo(self) -> bool:
        return self.user is None

    @property
    def owner_id(self) -> Optional[str]:
        if self.user:
            return self.user["id"]
        return self.anonymous_id

    @property
    def email(self) -> Optional[str]:
        return self.user["email"] if self.user else None


# -----------------------------------------------------------------------------
# User-state helpers used by pages
# -----------------------------------------------------------------------------

def display_name(current: CurrentUser) -> str:
    if current.user and current.user.get("name"):
        return current.user["name"]
    if current.user and current.user.get("email"):
        return current.user["email"].split("@")[0]
    return "匿名用户"


def is_authenticated(current: CurrentUser) -> bool:
    return not current.is_demo and bool(current.user and current.user.get("id"))


def is_no_content_anonymous_user(
    current: CurrentUser,
    topics: Sequence[Any],
    knowledge_points: Sequence[Any],
) -> bool:
    """Anonymous visitor who has not saved anything yet."""
    return current.is_demo and not topics and not knowledge_points


def is_viewing_mock_data(current: CurrentUser, item_id: Optional[str]) -> bool:
    return current.is_demo and bool(item_id) and item_id.startswith(MOCK_PREFIX)


def should_show_demo_notice(
    current: CurrentUser,
    topics: Optional[Sequence[Any]] = None,
    knowledge_points: Optional[Sequence[Any]] = None,
    item_id: Optional[str] = None,
) -> bool:
    if not current.is_demo:
        return False
    if topics is not None or knowledge_points is not None:
        return is_no_content_anonymous_user(current, topics or [], knowledge_points or [])
    if item_id:
        return is_viewing_mock_data(current, item_id)
    return False


def should_disable_editing(current: CurrentUser, item_id: Optional[str]) -> bool:
    return is_viewing_mock_data(current, item_id)
