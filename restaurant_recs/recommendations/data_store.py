"""
Relational entity store for users, restaurants, reviews and feedback.

The store is an explicitly constructed handle around a SQLAlchemy engine; it is
passed to the recommendation service rather than living in a module global.
Every statement is parameterized. Restaurant aggregates (average rating and
review count) are never stored: they are recomputed from ``reviews`` on every
read through ``RESTAURANT_SUMMARY_SQL``.
"""
from __future__ import annotations

import json
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Mapping

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    bindparam,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import DuplicateReview, InvalidParameter, StoreFailure
from .models import (
    PRICE_TIERS,
    ROLES,
    DayHours,
    Preferences,
    Restaurant,
    RestaurantFilter,
    User,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Schema ───────────────────────────────────────────────────────────────

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False, default=""),
    Column("phone", String(32)),
    Column("preferences", Text),
    Column("role", String(16), nullable=False, default="user"),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("last_login", DateTime),
)

restaurants = Table(
    "restaurants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(150), nullable=False),
    Column("description", Text),
    Column("cuisine_type", String(50), nullable=False, index=True),
    Column("address", String(255), nullable=False, default=""),
    Column("city", String(100), nullable=False, index=True),
    Column("phone", String(32)),
    Column("email", String(255)),
    Column("price_range", String(4), nullable=False),
    Column("opening_hours", Text),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
    Column("updated_at", DateTime, nullable=False, default=_utcnow, onupdate=_utcnow),
)

reviews = Table(
    "reviews",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column(
        "restaurant_id",
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("rating", Integer, nullable=False),
    Column("comment", Text),
    Column("visit_date", Date),
    Column("created_at", DateTime, nullable=False, default=_utcnow, index=True),
    Column("updated_at", DateTime, nullable=False, default=_utcnow, onupdate=_utcnow),
    UniqueConstraint("user_id", "restaurant_id", name="uq_reviews_user_restaurant"),
)

recommendation_feedback = Table(
    "recommendation_feedback",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column(
        "restaurant_id",
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("liked", Boolean, nullable=False),
    Column("reason", Text),
    Column("created_at", DateTime, nullable=False, default=_utcnow),
)


RESTAURANT_SUMMARY_SQL = """
    SELECT r.id, r.name, r.description, r.cuisine_type, r.address, r.city,
           r.phone, r.email, r.price_range, r.opening_hours, r.created_at,
           COALESCE(agg.average_rating, 0) AS average_rating,
           COALESCE(agg.total_reviews, 0) AS total_reviews
    FROM restaurants r
    LEFT JOIN (
        SELECT restaurant_id, AVG(rating) AS average_rating, COUNT(id) AS total_reviews
        FROM reviews
        GROUP BY restaurant_id
    ) agg ON agg.restaurant_id = r.id
"""

SORTABLE_COLUMNS = {"name", "average_rating", "total_reviews", "created_at", "price_range"}


# ── JSON field decoding ──────────────────────────────────────────────────

_OPENING_HOURS = TypeAdapter(dict[str, DayHours | None])


def decode_json_field(raw: Any, default: Any) -> Any:
    """Decode a JSON text column, returning *default* for empty or malformed input."""
    if raw is None or raw == "":
        return default
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Malformed JSON field %r, using default", raw)
        return default


def decode_preferences(raw: Any) -> Preferences:
    data = decode_json_field(raw, {})
    if not isinstance(data, dict):
        return Preferences()
    try:
        return Preferences.model_validate(data)
    except ValidationError:
        logger.debug("Preferences payload has the wrong shape: %r", data)
        return Preferences()


def decode_opening_hours(raw: Any) -> dict[str, DayHours | None]:
    data = decode_json_field(raw, {})
    try:
        return _OPENING_HOURS.validate_python(data)
    except ValidationError:
        logger.debug("Opening hours payload has the wrong shape: %r", data)
        return {}


def restaurant_from_row(row: Mapping[str, Any]) -> Restaurant:
    return Restaurant(
        id=row["id"],
        name=row["name"],
        description=row.get("description"),
        cuisine_type=row["cuisine_type"],
        address=row.get("address") or "",
        city=row["city"],
        phone=row.get("phone"),
        email=row.get("email"),
        price_range=row["price_range"],
        average_rating=float(row.get("average_rating") or 0.0),
        total_reviews=int(row.get("total_reviews") or 0),
        opening_hours=decode_opening_hours(row.get("opening_hours")),
        created_at=row.get("created_at"),
    )


def user_from_row(row: Mapping[str, Any]) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        phone=row.get("phone"),
        role=row.get("role") or "user",
        preferences=decode_preferences(row.get("preferences")),
        created_at=row.get("created_at"),
        last_login=row.get("last_login"),
    )


# ── Engine construction ──────────────────────────────────────────────────


def _engine_kwargs(database_url: str, statement_timeout_ms: int) -> dict[str, Any]:
    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        kwargs: dict[str, Any] = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": statement_timeout_ms / 1000,
            }
        }
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    if backend == "postgresql":
        return {
            "connect_args": {"options": f"-c statement_timeout={statement_timeout_ms}"},
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }
    return {"pool_pre_ping": True}


# VM instructions between deadline checks.
_PROGRESS_INTERVAL = 10_000


def _install_sqlite_statement_timeout(engine: Engine, statement_timeout_ms: int) -> None:
    """Abort SQLite statements that run past *statement_timeout_ms*.

    SQLite has no server-side statement timeout; the connect ``timeout`` only
    bounds lock waits. A progress handler checks a per-connection deadline that
    is reset before every statement, and interrupts the statement once it has
    passed. The interrupted statement surfaces as ``OperationalError``.
    """
    budget = statement_timeout_ms / 1000

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        info = connection_record.info

        def _past_deadline() -> int:
            deadline = info.get("statement_deadline")
            return int(deadline is not None and time.monotonic() > deadline)

        dbapi_conn.set_progress_handler(_past_deadline, _PROGRESS_INTERVAL)

    @event.listens_for(engine, "before_cursor_execute")
    def _start_clock(conn, cursor, statement, parameters, context, executemany):
        conn.info["statement_deadline"] = time.monotonic() + budget


class EntityStore:
    """Parameterized read/write access to the relational store."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str, statement_timeout_ms: int = 5000) -> "EntityStore":
        engine = create_engine(
            database_url,
            echo=False,
            **_engine_kwargs(database_url, statement_timeout_ms),
        )
        if engine.dialect.name == "sqlite":
            _install_sqlite_statement_timeout(engine, statement_timeout_ms)
        return cls(engine)

    def create_schema(self) -> None:
        metadata.create_all(self.engine, checkfirst=True)

    def dispose(self) -> None:
        self.engine.dispose()

    # ── Raw statements ───────────────────────────────────────────────────

    @staticmethod
    def _prepare(statement: str, params: Mapping[str, Any]) -> tuple[Any, dict[str, Any]]:
        stmt = text(statement)
        bound: dict[str, Any] = {}
        binds = []
        for key, value in params.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                value = list(value)
                binds.append(bindparam(key, expanding=True))
            elif isinstance(value, datetime):
                binds.append(bindparam(key, type_=DateTime()))
            bound[key] = value
        if binds:
            stmt = stmt.bindparams(*binds)
        return stmt, bound

    def query(self, statement: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a read statement and return rows as plain dicts."""
        stmt, bound = self._prepare(statement, params or {})
        try:
            with self.engine.connect() as conn:
                result = conn.execute(stmt, bound)
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Store query failed: {exc.__class__.__name__}") from exc

    def execute(self, statement: str, params: Mapping[str, Any] | None = None) -> int:
        """Run a write statement in its own transaction; returns affected rows."""
        stmt, bound = self._prepare(statement, params or {})
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt, bound).rowcount
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Store write failed: {exc.__class__.__name__}") from exc

    def _insert(self, table: Table, values: dict[str, Any]) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
            return int(result.inserted_primary_key[0])

    # ── Users ────────────────────────────────────────────────────────────

    def find_user_by_id(self, user_id: int) -> User | None:
        rows = self.query(
            """
            SELECT id, name, email, phone, role, preferences, created_at, last_login
            FROM users
            WHERE id = :id
            """,
            {"id": user_id},
        )
        return user_from_row(rows[0]) if rows else None

    def find_user_credentials(self, email: str) -> tuple[User, str] | None:
        """Return the user and its stored password hash, looked up by email."""
        rows = self.query(
            """
            SELECT id, name, email, phone, role, preferences, created_at, last_login,
                   password_hash
            FROM users
            WHERE email = :email
            """,
            {"email": email},
        )
        if not rows:
            return None
        return user_from_row(rows[0]), rows[0]["password_hash"]

    def touch_last_login(self, user_id: int) -> None:
        self.execute(
            "UPDATE users SET last_login = :now WHERE id = :id",
            {"now": _utcnow(), "id": user_id},
        )

    def peer_preferences(self, exclude_user_id: int) -> list[tuple[int, Preferences]]:
        """Decoded preferences of every other user that has any stored."""
        rows = self.query(
            """
            SELECT id, preferences
            FROM users
            WHERE id != :user_id AND preferences IS NOT NULL
            ORDER BY id
            """,
            {"user_id": exclude_user_id},
        )
        return [(row["id"], decode_preferences(row["preferences"])) for row in rows]

    def save_preferences(self, user_id: int, preferences: Preferences) -> bool:
        updated = self.execute(
            "UPDATE users SET preferences = :preferences WHERE id = :id",
            {"preferences": preferences.model_dump_json(), "id": user_id},
        )
        return updated > 0

    def add_user(
        self,
        name: str,
        email: str,
        password_hash: str = "",
        phone: str | None = None,
        preferences: Preferences | dict | None = None,
        role: str = "user",
        created_at: datetime | None = None,
    ) -> int:
        if role not in ROLES:
            raise InvalidParameter(f"Unknown role {role!r}. Use one of: {', '.join(ROLES)}")
        if isinstance(preferences, dict):
            preferences = Preferences.model_validate(preferences)
        values: dict[str, Any] = {
            "name": name,
            "email": email,
            "password_hash": password_hash,
            "phone": phone,
            "preferences": preferences.model_dump_json() if preferences else None,
            "role": role,
        }
        if created_at is not None:
            values["created_at"] = created_at
        try:
            return self._insert(users, values)
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Could not create user {email!r}") from exc

    # ── Restaurants ──────────────────────────────────────────────────────

    def find_restaurant_by_id(self, restaurant_id: int) -> Restaurant | None:
        rows = self.query(
            f"SELECT rs.* FROM ({RESTAURANT_SUMMARY_SQL}) rs WHERE rs.id = :id",
            {"id": restaurant_id},
        )
        return restaurant_from_row(rows[0]) if rows else None

    def find_restaurants_by_filter(
        self,
        filters: RestaurantFilter,
        limit: int | None = None,
        offset: int = 0,
        sort_by: str = "average_rating",
        sort_order: str = "DESC",
    ) -> tuple[list[Restaurant], int]:
        """Filtered, sorted, paginated listing. Returns ``(page, total)``."""
        conditions: list[str] = []
        params: dict[str, Any] = {}

        if filters.cuisine_type:
            conditions.append("rs.cuisine_type = :cuisine_type")
            params["cuisine_type"] = filters.cuisine_type
        if filters.city:
            conditions.append("rs.city = :city")
            params["city"] = filters.city
        if filters.price_range:
            conditions.append("rs.price_range = :price_range")
            params["price_range"] = filters.price_range
        if filters.min_rating:
            conditions.append("rs.average_rating >= :min_rating")
            params["min_rating"] = filters.min_rating
        if filters.search:
            conditions.append(
                "(rs.name LIKE :search OR rs.description LIKE :search "
                "OR rs.cuisine_type LIKE :search)"
            )
            params["search"] = f"%{filters.search}%"

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        base = f"FROM ({RESTAURANT_SUMMARY_SQL}) rs {where}"

        total = self.query(f"SELECT COUNT(*) AS total {base}", params)[0]["total"]

        if sort_by not in SORTABLE_COLUMNS:
            sort_by = "average_rating"
        direction = "ASC" if str(sort_order).upper() == "ASC" else "DESC"
        sql = f"SELECT rs.* {base} ORDER BY rs.{sort_by} {direction}, rs.id ASC"

        page_params = dict(params)
        if limit is not None:
            sql += " LIMIT :limit OFFSET :offset"
            page_params["limit"] = limit
            page_params["offset"] = offset

        rows = self.query(sql, page_params)
        return [restaurant_from_row(row) for row in rows], int(total)

    def add_restaurant(
        self,
        name: str,
        cuisine_type: str,
        city: str,
        price_range: str,
        address: str = "",
        description: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        opening_hours: dict | None = None,
        created_at: datetime | None = None,
    ) -> int:
        if price_range not in PRICE_TIERS:
            raise InvalidParameter(f"Unknown price range {price_range!r}")
        values: dict[str, Any] = {
            "name": name,
            "cuisine_type": cuisine_type,
            "city": city,
            "price_range": price_range,
            "address": address,
            "description": description,
            "phone": phone,
            "email": email,
            "opening_hours": json.dumps(opening_hours) if opening_hours is not None else None,
        }
        if created_at is not None:
            values["created_at"] = created_at
        try:
            return self._insert(restaurants, values)
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Could not create restaurant {name!r}") from exc

    # ── Reviews ──────────────────────────────────────────────────────────

    def has_reviewed(self, user_id: int, restaurant_id: int) -> bool:
        rows = self.query(
            """
            SELECT 1 AS found FROM reviews
            WHERE user_id = :user_id AND restaurant_id = :restaurant_id
            """,
            {"user_id": user_id, "restaurant_id": restaurant_id},
        )
        return bool(rows)

    def add_review(
        self,
        user_id: int,
        restaurant_id: int,
        rating: int,
        comment: str | None = None,
        visit_date: date | None = None,
        created_at: datetime | None = None,
    ) -> int:
        if not 1 <= int(rating) <= 5:
            raise InvalidParameter(f"Rating must be between 1 and 5, got {rating}")
        if self.has_reviewed(user_id, restaurant_id):
            raise DuplicateReview(
                f"User {user_id} has already reviewed restaurant {restaurant_id}"
            )
        values: dict[str, Any] = {
            "user_id": user_id,
            "restaurant_id": restaurant_id,
            "rating": int(rating),
            "comment": comment,
            "visit_date": visit_date,
        }
        if created_at is not None:
            values["created_at"] = created_at
            values["updated_at"] = created_at
        try:
            return self._insert(reviews, values)
        except IntegrityError as exc:
            # Lost a race with a concurrent insert of the same pair.
            if self.has_reviewed(user_id, restaurant_id):
                raise DuplicateReview(
                    f"User {user_id} has already reviewed restaurant {restaurant_id}"
                ) from exc
            raise StoreFailure("Could not create review") from exc
        except SQLAlchemyError as exc:
            raise StoreFailure("Could not create review") from exc

    # ── Feedback ─────────────────────────────────────────────────────────

    def add_feedback(
        self, user_id: int, restaurant_id: int, liked: bool, reason: str | None = None
    ) -> int:
        try:
            return self._insert(
                recommendation_feedback,
                {
                    "user_id": user_id,
                    "restaurant_id": restaurant_id,
                    "liked": liked,
                    "reason": reason,
                },
            )
        except SQLAlchemyError as exc:
            raise StoreFailure("Could not store recommendation feedback") from exc
