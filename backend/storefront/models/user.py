"""
User model for shop clients and back-office staff
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.core.status_config import STAFF_ROLES
from storefront.db.base import Base


class User(Base):
    """
    Shop user.

    Credentials and sessions are owned by the auth service; this row carries
    what the order lifecycle needs (role, contact, notification channels).
    """
    __tablename__ = "users"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(20), nullable=True)
    company_name = Column(String(200), nullable=True)

    # Account Status
    status = Column(String(20), default='active', nullable=False, index=True)  # active, blocked
    role = Column(String(20), default='client', nullable=False, index=True)  # client, wholesale, manager, admin

    # Notification channels
    telegram_chat_id = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def is_active(self) -> bool:
        """Check if user account is active"""
        return self.status == 'active'

    @property
    def is_staff(self) -> bool:
        """Admins and managers run the back office"""
        return self.role in STAFF_ROLES

    @property
    def is_wholesale(self) -> bool:
        return self.role == 'wholesale'


class RefreshToken(Base):
    """
    Refresh token issued by the auth service

    Only hashes are stored; expired rows are removed by the token janitor.
    """
    __tablename__ = "refresh_tokens"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Foreign Key
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token Data
    token_hash = Column(String(255), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=False), nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, revoked={self.revoked})>"
