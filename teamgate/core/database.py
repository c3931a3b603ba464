"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (PostgreSQL), a connection per
  session for file SQLite, and one shared connection for in-memory SQLite
- Table definitions for the authorization core
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, event, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKey, UniqueConstraint, PrimaryKeyConstraint, true, false
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
from sqlalchemy.exc import IntegrityError
import logging
import os

from teamgate.core.config import settings


logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def is_sqlite_memory_url(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    return url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:") or ":memory:" in url or "mode=memory" in url


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when an IntegrityError comes from a UNIQUE or primary key constraint."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == "23505"
    message = str(orig).lower()
    return "unique constraint" in message or "duplicate key" in message


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if is_sqlite_memory_url(url):
        # An in-memory database lives on one connection; every session shares it
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    elif url.startswith("sqlite"):
        # File databases get a connection per session so a reader's rollback stays its own
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Drop the current engine (tests switch databases between runs)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for a single atomic unit of work.

    Commits when the block exits cleanly, rolls back on any exception.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def read_only_session():
    """Session that is always rolled back; used by the authorization resolver."""
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users known to the authorization core (identity provider owns the rest)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(320), nullable=True, unique=True),
    Column('display_name', Text, nullable=True),
    Column('is_superuser', Boolean, nullable=False, server_default=false()),
    # Default team context; plain column, dangling values are cleared by the team service
    Column('current_team_id', Integer, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# Global permission catalog
permissions = Table(
    'permissions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(100), nullable=False, unique=True),
    Column('label', String(255), nullable=False),
    Column('module', String(100), nullable=False, server_default='general'),
    Column('active', Boolean, nullable=False, server_default=true()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_permissions_module_name', 'module', 'name'),
)

# Subscription plans; features is a JSON list of permission names (or the wildcard)
plans = Table(
    'plans',
    metadata,
    Column('slug', String(50), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('member_limit', Integer, nullable=False, server_default='1'),
    Column('max_tokens', Integer, nullable=False, server_default='0'),
    Column('max_workspaces', Integer, nullable=False, server_default='1'),
    Column('features', JSON, nullable=False),
    Column('active', Boolean, nullable=False, server_default=true()),
    Column('is_default', Boolean, nullable=False, server_default=false()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_plans_is_default', 'is_default'),
)

# Tenants; plan_slug is a weak reference resolved with fallback
teams = Table(
    'teams',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(100), nullable=False),
    Column('owner_user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('plan_slug', String(50), nullable=False),
    Column('subscription_expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_teams_owner', 'owner_user_id'),
    Index('idx_teams_plan_slug', 'plan_slug'),
)

# Team-scoped roles
roles = Table(
    'roles',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('team_id', Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('name', String(50), nullable=False),
    Column('label', String(100), nullable=True),
    Column('guard', String(20), nullable=False, server_default='web'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('team_id', 'name', name='uq_roles_team_name'),
    Index('idx_roles_team_id', 'team_id'),
)

# Stored ("desired") grants; clipped to the plan ceiling only at evaluation and sync
role_permissions = Table(
    'role_permissions',
    metadata,
    Column('role_id', Integer, ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
    Column('permission_name', String(100), ForeignKey('permissions.name'), nullable=False),
    PrimaryKeyConstraint('role_id', 'permission_name', name='pk_role_permissions'),
    Index('idx_role_permissions_permission', 'permission_name'),
)

# Membership ledger (pivot)
team_members = Table(
    'team_members',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('team_id', Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('role_name', String(50), nullable=True),
    Column('token_limit', Integer, nullable=True),  # NULL = unlimited (bounded by plan max_tokens)
    Column('joined_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # One membership per (user, team); also resolves concurrent invite redemption
    UniqueConstraint('user_id', 'team_id', name='uq_team_members_user_team'),
    Index('idx_team_members_team', 'team_id'),
)

# Pending invitations
invitations = Table(
    'invitations',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('email', String(320), nullable=False),
    Column('token_hash', String(64), nullable=False, unique=True),
    Column('token_hint', String(8), nullable=False),
    Column('team_id', Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('role_name', String(50), nullable=False),
    Column('invited_by', String(100), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('expires_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('email', 'team_id', name='uq_invitations_email_team'),
    Index('idx_invitations_team', 'team_id'),
)

# Team audit trail; actor is a plain column so entries outlive the acting user
activity_logs = Table(
    'activity_logs',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('team_id', Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
    Column('user_id', String(100), nullable=True),
    Column('action', String(100), nullable=False),
    Column('description', Text, nullable=True),
    Column('properties', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_activity_logs_team_created', 'team_id', 'created_at'),
)
