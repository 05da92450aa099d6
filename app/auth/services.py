"""
Authentication services: registration, login, DB-backed sessions,
anonymous identities and cookie handling.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from flask import g, request
from sqlalchemy import delete, select, update

from app.storage import (
    AnonymousUser,
    Database,
    KnowledgePoint,
    LearningTopic,
    Tag,
    User,
    UserSession,
    as_aware,
    utcnow,
)

from .models import (
    ANONYMOUS_COOKIE,
    ANONYMOUS_PREFIX,
    SESSION_COOKIE,
    CookieSpec,
    CurrentUser,
    hash_password,
    validate_email,
    validate_password,
    verify_password,
)

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class AuthService:
    """Service for user accounts, sessions and anonymous visitors."""

    def __init__(self, database: Database, auth_config, admin_emails: List[str] = None,
                 production: bool = False):
        self.database = database
        self.auth_config = auth_config
        self.admin_emails = [e.lower() for e in (admin_emails or [])]
        self.production = production

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        anonymous_id: Optional[str] = None,
    ) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """Create an account; returns (user, error)."""
        email = (email or "").strip().lower()
        error = validate_email(email) or validate_password(
            password, self.auth_config.min_password_length
        )
        if error:
            return None, error

        with self.database.session_scope() as session:
            if session.scalar(select(User.id).where(User.email == email)):
                return None, "该邮箱已注册"
            user = User(
                email=email,
                password_hash=hash_password(password, self.auth_config.bcrypt_rounds),
                name=(name or "").strip() or None,
                anonymous_id=anonymous_id,
            )
            session.add(user)
            session.flush()
            user_dict = user.to_dict()

        logger.info("Registered user %s", email)
        if anonymous_id:
            self.bind_anonymous_data_to_user(anonymous_id, user_dict["id"])
        return user_dict, None

    def login_user(self, email: str, password: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """Check credentials; returns (user, error)."""
        email = (email or "").strip().lower()
        error = validate_email(email)
        if error:
            return None, error
        if not password:
            return None, "请输入密码"

        with self.database.session_scope() as session:
            user = session.scalar(select(User).where(User.email == email))
            if not user or not verify_password(password, user.password_hash):
                return None, "邮箱或密码错误"
            return user.to_dict(), None

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.database.session_scope() as session:
            user = session.get(User, user_id)
            return user.to_dict() if user else None

    def is_admin(self, current: CurrentUser) -> bool:
        return bool(current.email) and current.email.lower() in self.admin_emails

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str) -> str:
        session_id = str(uuid.uuid4())
        with self.database.session_scope() as session:
            session.add(UserSession(
                id=session_id,
                user_id=user_id,
                expires_at=utcnow() + timedelta(days=self.auth_config.session_days),
            ))
        return session_id

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the session's user, deleting the session if it has expired."""
        if not session_id:
            return None
        with self.database.session_scope() as session:
            user_session = session.get(UserSession, session_id)
            if not user_session:
                return None
            if as_aware(user_session.expires_at) <= utcnow():
                session.delete(user_session)
                logger.info("Session %s expired", session_id)
                return None
            user = session.get(User, user_session.user_id)
            return user.to_dict() if user else None

    def logout(self, session_id: str) -> None:
        if not session_id:
            return
        with self.database.session_scope() as session:
            session.execute(delete(UserSession).where(UserSession.id == session_id))

    def cleanup_expired_sessions(self) -> int:
        with self.database.session_scope() as session:
            result = session.execute(delete(UserSession).where(UserSession.expires_at <= utcnow()))
            count = result.rowcount or 0
        if count:
            logger.info("Removed %d expired sessions", count)
        return count

    def list_sessions(self) -> List[Dict[str, Any]]:
        with self.database.session_scope() as session:
            rows = session.execute(
                select(UserSession, User.email)
                .join(User, User.id == UserSession.user_id)
                .order_by(UserSession.created_at.desc())
            ).all()
            now = utcnow()
            return [
                {
                    "id": s.id,
                    "email": email,
                    "created_at": s.created_at.isoformat() if s.created_at else None,
                    "expires_at": as_aware(s.expires_at).isoformat(),
                    "expired": as_aware(s.expires_at) <= now,
                }
                for s, email in rows
            ]

    # ------------------------------------------------------------------
    # Anonymous visitors
    # ------------------------------------------------------------------

    @staticmethod
    def generate_anonymous_id() -> str:
        return f"{ANONYMOUS_PREFIX}{uuid.uuid4()}"

    def get_or_create_anonymous_id(self, anonymous_id: Optional[str] = None) -> str:
        """Make sure the anonymous row exists and is marked active."""
        anonymous_id = anonymous_id or self.generate_anonymous_id()
        with self.database.session_scope() as session:
            row = session.get(AnonymousUser, anonymous_id)
            if row:
                row.last_active = utcnow()
            else:
                session.add(AnonymousUser(id=anonymous_id))
        return anonymous_id

    def bind_anonymous_data_to_user(self, anonymous_id: str, user_id: str) -> Dict[str, int]:
        """Hand an anonymous visitor's content over to a registered user.

        Sample (demo) rows are discarded unless one of the visitor's own notes
        uses them; those are kept as regular rows. Runs as a single
        transaction.
        """
        with self.database.session_scope() as session:
            # Demo rows that the visitor's own notes point at become real rows
            own_points = list(session.scalars(
                select(KnowledgePoint).where(
                    KnowledgePoint.user_id == anonymous_id, KnowledgePoint.is_demo.is_not(True)
                )
            ))
            kept_tag_ids = {tag_id for p in own_points for tag_id in (p.tag_ids or [])}
            kept_topic_ids = {p.learning_topic_id for p in own_points if p.learning_topic_id}
            if kept_tag_ids:
                session.execute(
                    update(Tag)
                    .where(Tag.user_id == anonymous_id, Tag.id.in_(kept_tag_ids))
                    .values(is_demo=False)
                )
            if kept_topic_ids:
                session.execute(
                    update(LearningTopic)
                    .where(LearningTopic.user_id == anonymous_id, LearningTopic.id.in_(kept_topic_ids))
                    .values(is_demo=False)
                )

            demo_points = session.execute(
                delete(KnowledgePoint).where(
                    KnowledgePoint.user_id == anonymous_id, KnowledgePoint.is_demo.is_(True)
                )
            ).rowcount or 0
            demo_topics = session.execute(
                delete(LearningTopic).where(
                    LearningTopic.user_id == anonymous_id, LearningTopic.is_demo.is_(True)
                )
            ).rowcount or 0
            session.execute(
                delete(Tag).where(Tag.user_id == anonymous_id, Tag.is_demo.is_(True))
            )

            # Existing topic/tag names of the user take precedence on conflict
            user_topic_names = set(session.scalars(
                select(LearningTopic.name).where(LearningTopic.user_id == user_id)
            ))
            moved_topics = 0
            for topic in session.scalars(select(LearningTopic).where(LearningTopic.user_id == anonymous_id)):
                if topic.name in user_topic_names:
                    topic.name = self._free_name(topic.name, user_topic_names)
                user_topic_names.add(topic.name)
                topic.user_id = user_id
                moved_topics += 1

            user_tags = {
                t.name: t for t in session.scalars(select(Tag).where(Tag.user_id == user_id))
            }
            tag_remap: Dict[str, str] = {}
            for tag in session.scalars(select(Tag).where(Tag.user_id == anonymous_id)):
                existing = user_tags.get(tag.name)
                if existing:
                    existing.usage_count = (existing.usage_count or 0) + (tag.usage_count or 0)
                    tag_remap[tag.id] = existing.id
                    session.delete(tag)
                else:
                    tag.user_id = user_id

            moved_points = 0
            for point in session.scalars(select(KnowledgePoint).where(KnowledgePoint.user_id == anonymous_id)):
                point.user_id = user_id
                if tag_remap:
                    point.tag_ids = [tag_remap.get(t, t) for t in (point.tag_ids or [])]
                moved_points += 1

            session.execute(delete(AnonymousUser).where(AnonymousUser.id == anonymous_id))

        logger.info(
            "Bound anonymous %s to user %s: %d topics, %d notes moved; %d demo topics, %d demo notes dropped",
            anonymous_id, user_id, moved_topics, moved_points, demo_topics, demo_points,
        )
        return {
            "topics": moved_topics,
            "knowledge_points": moved_points,
            "demo_topics_deleted": demo_topics,
            "demo_points_deleted": demo_points,
        }

    @staticmethod
    def _free_name(name: str, taken: set) -> str:
        counter = 1
        while f"{name} ({counter})" in taken:
            counter += 1
        return f"{name} ({counter})"

    # ------------------------------------------------------------------
    # Request integration
    # ------------------------------------------------------------------

    def get_current_user(self) -> CurrentUser:
        """Resolve the visitor of the current request (cached per request)."""
        cached = getattr(g, "current_user", None)
        if cached is not None:
            return cached

        current = CurrentUser()
        session_id = request.cookies.get(SESSION_COOKIE)
        if session_id:
            user = self.get_session(session_id)
            if user:
                current.user = user
                g.current_user = current
                return current
            current.clear_session = True

        cookie_anon = request.cookies.get(ANONYMOUS_COOKIE)
        current.anonymous_id = self.get_or_create_anonymous_id(cookie_anon)
        # Refresh the anonymous cookie so it keeps sliding forward
        current.cookies_to_set.append(CookieSpec(
            ANONYMOUS_COOKIE,
            current.anonymous_id,
            self.auth_config.anonymous_cookie_days * DAY_SECONDS,
        ))
        g.current_user = current
        return current

    def session_cookie(self, session_id: str) -> CookieSpec:
        return CookieSpec(SESSION_COOKIE, session_id, self.auth_config.session_days * DAY_SECONDS)

    def anonymous_cookie(self, anonymous_id: str) -> CookieSpec:
        return CookieSpec(ANONYMOUS_COOKIE, anonymous_id, self.auth_config.anonymous_cookie_days * DAY_SECONDS)

    def set_cookie(self, response, spec: CookieSpec):
        response.set_cookie(
            spec.name,
            spec.value,
            max_age=spec.max_age,
            path="/",
            httponly=True,
            samesite="Lax",
            secure=self.production,
        )
        return response

    def clear_session_cookie(self, response):
        return self.set_cookie(response, CookieSpec(SESSION_COOKIE, "", 0))

    def apply_cookies(self, response):
        """after_request hook: flush cookies decided while resolving the visitor."""
        current = getattr(g, "current_user", None)
        if current is None:
            return response
        already_set = {
            header.split("=", 1)[0]
            for header in response.headers.getlist("Set-Cookie")
        }
        if current.clear_session and SESSION_COOKIE not in already_set:
            self.clear_session_cookie(response)
        for spec in current.cookies_to_set:
            if spec.name not in already_set:
                self.set_cookie(response, spec)
        return response
