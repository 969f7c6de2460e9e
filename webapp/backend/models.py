"""
SQLAlchemy models for the tutoring marketplace database.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, DECIMAL, Boolean, Float,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from constants import utc_now, BookingStatus, PaymentStatus
from database import Base


class User(Base):
    """
    Account table.
    Role is one of STUDENT, TUTOR, ADMIN and never changes after registration.
    At most one role-specific profile row exists per user.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255))
    role = Column(String(20), nullable=False)
    image = Column(String(500))

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    tutor_profile = relationship("TutorProfile", back_populates="user", uselist=False)
    student_profile = relationship("StudentProfile", back_populates="user", uselist=False)
    bookings_as_student = relationship("Booking", back_populates="student", foreign_keys="[Booking.student_id]")
    bookings_as_tutor = relationship("Booking", back_populates="tutor", foreign_keys="[Booking.tutor_id]")


class TutorProfile(Base):
    """
    Tutor-specific profile.
    average_rating and review_count are derived from the reviews table and
    are rewritten whenever a review for this tutor is created.
    """
    __tablename__ = "tutor_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    subjects = Column(Text, default='', comment='Comma-separated subject names')
    hourly_rate = Column(DECIMAL(10, 2), nullable=False, default=0)
    bio = Column(Text)
    education = Column(Text)
    experience = Column(Text)
    availability = Column(Text, comment='Opaque availability descriptor (JSON string)')
    average_rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=False, default=0)

    # Relationships
    user = relationship("User", back_populates="tutor_profile")


class StudentProfile(Base):
    """Student-specific profile."""
    __tablename__ = "student_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    bio = Column(Text)
    interests = Column(Text)
    grade_level = Column(String(50))

    # Relationships
    user = relationship("User", back_populates="student_profile")


class Booking(Base):
    """
    A scheduled tutoring engagement between one student and one tutor.

    Canonical time representation is [start_time, end_time) in naive UTC.
    The session view (scheduled_for + duration in minutes) is derived.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_window"),
        Index("ix_bookings_tutor_window", "tutor_id", "status", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Session details
    subject = Column(String(255), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    is_group_session = Column(Boolean, default=False)

    # Status tracking
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    # Financial
    price = Column(DECIMAL(10, 2), nullable=False)

    meeting_link = Column(String(500))
    notes = Column(Text)

    # Metadata
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    student = relationship("User", back_populates="bookings_as_student", foreign_keys=[student_id])
    tutor = relationship("User", back_populates="bookings_as_tutor", foreign_keys=[tutor_id])
    payment = relationship("Payment", back_populates="booking", uselist=False)
    review = relationship("Review", back_populates="booking", uselist=False)

    @property
    def scheduled_for(self):
        return self.start_time

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class Payment(Base):
    """Internal payment record, one per booking. Status mirrors booking status."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    booking = relationship("Booking", back_populates="payment")


class Review(Base):
    """Student review of a completed booking. At most one per booking."""
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    # Denormalized from the booking for query convenience
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)

    created_at = Column(DateTime, default=utc_now)

    # Relationships
    booking = relationship("Booking", back_populates="review")
    student = relationship("User", foreign_keys=[student_id])
    tutor = relationship("User", foreign_keys=[tutor_id])


class Earning(Base):
    """Ledger entry crediting a tutor when a session is completed."""
    __tablename__ = "earnings"

    id = Column(Integer, primary_key=True, index=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, unique=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    description = Column(String(500))

    created_at = Column(DateTime, default=utc_now)


class Message(Base):
    """Point-to-point chat message. Only the read flag changes after creation."""
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_pair", "sender_id", "receiver_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utc_now, index=True)

    # Relationships
    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
