import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column,
    String,
    Text,
    Float,
    Enum,
    DateTime,
    Boolean,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


class GigStatus(PyEnum):
    OPEN = "open"
    ASSIGNED = "assigned"  # A bid was hired; bidding is closed


class BidStatus(PyEnum):
    PENDING = "pending"
    HIRED = "hired"
    REJECTED = "rejected"  # Another bid on the same gig was hired


class NotificationType(PyEnum):
    HIRED = "hired"
    BID_RECEIVED = "bid_received"
    BID_REJECTED = "bid_rejected"


class User(Base):
    """
    Minimal identity record.

    Accounts are issued by the identity provider; the marketplace only needs
    the id for ownership checks and the name/email for rendering.
    """

    __tablename__ = "users"

    __table_args__ = (UniqueConstraint("email", name="unique_user_email"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email}


class Gig(Base):
    """
    A posted job open for bids.

    Invariant: assigned_at is set iff status == ASSIGNED. Both columns are
    only ever written together by a single conditional UPDATE.
    """

    __tablename__ = "gigs"

    __table_args__ = (
        Index("idx_gig_status", "status"),
        Index("idx_gig_owner_status", "owner_id", "status"),  # Composite
        Index("idx_gig_created_at", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    budget = Column(Float, nullable=False)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    status = Column(Enum(GigStatus), default=GigStatus.OPEN, nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    owner = relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "budget": self.budget,
            "ownerId": self.owner_id,
            "owner": self.owner.to_dict() if self.owner else None,
            "status": self.status.value
            if isinstance(self.status, GigStatus)
            else self.status,
            "assignedAt": _isoformat(self.assigned_at),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


class Bid(Base):
    """
    A freelancer's proposal against one gig.

    Unique on (gig_id, freelancer_id): a freelancer bids at most once per gig.
    Invariant: rejected_at is set iff status == REJECTED.
    """

    __tablename__ = "bids"

    __table_args__ = (
        UniqueConstraint("gig_id", "freelancer_id", name="unique_bid_per_freelancer"),
        Index("idx_bid_gig_status", "gig_id", "status"),  # Composite
        Index("idx_bid_freelancer_status", "freelancer_id", "status"),  # Composite
        Index("idx_bid_created_at", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    gig_id = Column(String, ForeignKey("gigs.id"), nullable=False)
    freelancer_id = Column(String, ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    status = Column(Enum(BidStatus), default=BidStatus.PENDING, nullable=False)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    gig = relationship("Gig", lazy="joined")
    freelancer = relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "gigId": self.gig_id,
            "gig": {"id": self.gig.id, "title": self.gig.title} if self.gig else None,
            "freelancerId": self.freelancer_id,
            "freelancer": self.freelancer.to_dict() if self.freelancer else None,
            "message": self.message,
            "price": self.price,
            "status": self.status.value
            if isinstance(self.status, BidStatus)
            else self.status,
            "rejectedAt": _isoformat(self.rejected_at),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def to_summary(self):
        """Bid fields embedded in a freelancer's active-gig listing."""
        return {
            "id": self.id,
            "message": self.message,
            "price": self.price,
            "status": self.status.value
            if isinstance(self.status, BidStatus)
            else self.status,
            "createdAt": _isoformat(self.created_at),
            "rejectedAt": _isoformat(self.rejected_at),
        }


class Notification(Base):
    """
    Durable notification record.

    Written best-effort after hires and bid submissions; the read flag is
    toggled by the notification inbox, which lives outside this service.
    """

    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "read"),
        Index("idx_notification_user_created", "user_id", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType), nullable=False)
    message = Column(Text, nullable=False)
    gig_id = Column(String, ForeignKey("gigs.id"), nullable=True)
    bid_id = Column(String, ForeignKey("bids.id"), nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value
            if isinstance(self.type, NotificationType)
            else self.type,
            "message": self.message,
            "gigId": self.gig_id,
            "bidId": self.bid_id,
            "read": self.read,
            "createdAt": _isoformat(self.created_at),
        }
