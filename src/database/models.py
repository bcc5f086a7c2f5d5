"""
Database Models - Event Store and Purchase Ledger

Tables read by the analytics engine. They are written by the storefront's
logging and checkout paths; the engine only reads them.

Event tables:
- PageView: page view log with optional dimension columns
- Order: orders, doubling as the purchase ledger
- Profile: user signups
- CustomerInquiry: support inquiries
- ContentDownload: free content downloads

Lookup tables:
- ContentCategory: sub-category names per content item
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import DateTime, Index, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# =============================================================================
# EVENT TABLES
# =============================================================================

class PageView(Base):
    """
    Page View Log

    country, referrer and user_agent were added after launch and may be
    absent on older deployments.
    """
    __tablename__ = "page_views"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    session_id: Mapped[Optional[str]] = mapped_column(String(100))
    page_url: Mapped[Optional[str]] = mapped_column(String(2000))

    # Optional dimensions
    country: Mapped[Optional[str]] = mapped_column(String(20))
    referrer: Mapped[Optional[str]] = mapped_column(String(2000))
    user_agent: Mapped[Optional[str]] = mapped_column(String(1000))

    __table_args__ = (
        Index("ix_page_views_created_at", "created_at"),
    )


class Order(Base):
    """Order Ledger"""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    __table_args__ = (
        Index("ix_orders_created_at", "created_at"),
        Index("ix_orders_user_payment", "user_id", "payment_status"),
    )


class Profile(Base):
    """User Profile (one row per signup)"""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_profiles_created_at", "created_at"),
    )


class CustomerInquiry(Base):
    """Customer Support Inquiry"""
    __tablename__ = "customer_inquiries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36))

    __table_args__ = (
        Index("ix_customer_inquiries_created_at", "created_at"),
    )


class ContentDownload(Base):
    """
    Free Content Download Log

    download_source may be absent on older deployments.
    """
    __tablename__ = "content_downloads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    session_id: Mapped[Optional[str]] = mapped_column(String(100))

    # Optional dimensions
    download_source: Mapped[Optional[str]] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_content_downloads_created_at", "created_at"),
        Index("ix_content_downloads_content", "content_id"),
    )


# =============================================================================
# LOOKUP TABLES
# =============================================================================

class ContentCategory(Base):
    """Category membership of a content item"""
    __tablename__ = "content_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    content_id: Mapped[str] = mapped_column(String(36), nullable=False)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        Index("ix_content_categories_content", "content_id"),
    )
