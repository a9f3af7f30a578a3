# --- models for merchant-curated bundles ---

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Integer, Numeric, DateTime, Boolean,
    ForeignKey, func, Index,
)
from sqlalchemy.pool import StaticPool
from sqlalchemy import text
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional
import logging, os, time, uuid

# Load environment variables early (before reading DATABASE_URL)
from dotenv import load_dotenv
load_dotenv()

# -------------------------------------------------------------------
# Engine / Session
# -------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "")

if DATABASE_URL:
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
    # asyncpg takes ssl via connect_args, not the sslmode query parameter
    require_ssl = "sslmode=" in DATABASE_URL
    for param in ("?sslmode=verify-full", "&sslmode=verify-full", "?sslmode=require", "&sslmode=require"):
        DATABASE_URL = DATABASE_URL.replace(param, "")

    connect_args: Dict[str, Any] = {
        "server_settings": {"application_name": "cart_uplift_bundles"},
        "command_timeout": 30,
        "timeout": 15,
    }
    if require_ssl:
        connect_args["ssl"] = "require"

    engine = create_async_engine(
        DATABASE_URL,
        echo=os.getenv("NODE_ENV") == "development",
        pool_size=10,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=1800,
        pool_timeout=15,
        connect_args=connect_args,
    )
else:
    DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(
        DATABASE_URL,
        echo=os.getenv("NODE_ENV") == "development",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

def _redact_db_url(url: str) -> str:
    try:
        if "@" in url and "://" in url:
            head, tail = url.split("://", 1)
            creds, hostpart = tail.split("@", 1)
            if ":" in creds:
                user, _pwd = creds.split(":", 1)
                return f"{head}://{user}:******@{hostpart}"
            return url
        if url.startswith("sqlite"):
            return url
    except ValueError:
        pass
    return "******"

logger = logging.getLogger(__name__)
logger.info(f"Creating SQL engine for { _redact_db_url(DATABASE_URL) }")

# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass

# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------

class ManualBundle(Base):
    """Merchant-curated bundle definition, owned by the admin UI."""
    __tablename__ = "manual_bundles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shop_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL means "use the caller's default discount"
    discount_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    items: Mapped[List["ManualBundleItem"]] = relationship(
        back_populates="bundle",
        cascade="all, delete-orphan",
        order_by="ManualBundleItem.position",
    )


class ManualBundleItem(Base):
    __tablename__ = "manual_bundle_items"

    bundle_id: Mapped[str] = mapped_column(
        String, ForeignKey("manual_bundles.id", ondelete="CASCADE"), primary_key=True
    )
    # Bare Shopify product id (no gid:// prefix)
    product_id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    bundle: Mapped[ManualBundle] = relationship(back_populates="items")

# -------------------------------------------------------------------
# Indexes
# -------------------------------------------------------------------
Index('ix_manual_bundles_shop_active', ManualBundle.shop_id, ManualBundle.is_active)
Index('ix_manual_bundle_items_product', ManualBundleItem.product_id)
# -------------------------------------------------------------------
# Init + health helpers
# -------------------------------------------------------------------
async def probe_db_connection():
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("DB connectivity probe: OK")
    except Exception as e:
        logger.exception(f"DB connectivity probe failed: {e}")

async def init_db():
    """Ensure tables exist."""
    await probe_db_connection()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DB init complete (tables ensured).")

async def check_db_health() -> Dict[str, Any]:
    """Round-trip a trivial query and report latency."""
    start = time.monotonic()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"DB health check failed: {e}")
        return {"status": "unhealthy", "error": type(e).__name__}
    return {"status": "healthy", "latency_ms": int((time.monotonic() - start) * 1000)}
