"""
Pydantic schemas for API request/response validation.
These define the structure of data sent to and from the API.
"""
import json
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Literal, Optional, List, Union
from datetime import datetime
from decimal import Decimal

from constants import BookingStatus


# ============================================
# User & Auth Schemas
# ============================================

class UserBasic(BaseModel):
    """Minimal user info for lists/popovers"""
    id: int
    name: str
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserWithRole(UserBasic):
    """User info including role (conversation counterparts)"""
    role: str


class UserResponse(BaseModel):
    """Response model for current user info"""
    id: int
    name: str
    email: str
    role: str
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RegisterRequest(BaseModel):
    """Registration payload. Admin accounts are never self-registered."""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    role: Literal["STUDENT", "TUTOR"] = "STUDENT"


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class TokenRefreshResponse(BaseModel):
    """Response model for token refresh"""
    success: bool
    expires_in: int  # Seconds until new token expires
    message: str


# ============================================
# Profile Schemas
# ============================================

class TutorProfileResponse(BaseModel):
    """Tutor profile; subjects are exposed as a list"""
    subjects: List[str] = []
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)
    bio: Optional[str] = None
    education: Optional[str] = None
    experience: Optional[str] = None
    availability: Optional[str] = None
    average_rating: Optional[float] = None
    review_count: int = 0

    model_config = ConfigDict(from_attributes=True)

    @field_validator("subjects", mode="before")
    @classmethod
    def split_subjects(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [s.strip() for s in value.split(",") if s.strip()]
        return value


class StudentProfileResponse(BaseModel):
    bio: Optional[str] = None
    interests: Optional[str] = None
    grade_level: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileResponse(UserResponse):
    """Current user with the profile matching their role"""
    tutor_profile: Optional[TutorProfileResponse] = None
    student_profile: Optional[StudentProfileResponse] = None


class TutorProfileUpdate(BaseModel):
    subjects: Optional[List[str]] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    bio: Optional[str] = Field(None, max_length=5000)
    education: Optional[str] = Field(None, max_length=5000)
    experience: Optional[str] = Field(None, max_length=5000)
    availability: Optional[Union[dict, list, str]] = None

    @field_validator("availability", mode="after")
    @classmethod
    def encode_availability(cls, value: Any):
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)


class StudentProfileUpdate(BaseModel):
    bio: Optional[str] = Field(None, max_length=5000)
    interests: Optional[str] = Field(None, max_length=2000)
    grade_level: Optional[str] = Field(None, max_length=50)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    tutor_profile: Optional[TutorProfileUpdate] = None
    student_profile: Optional[StudentProfileUpdate] = None


# ============================================
# Pagination
# ============================================

class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


# ============================================
# Payment Schemas
# ============================================

class PaymentCreate(BaseModel):
    booking_id: int = Field(..., gt=0)


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaginatedPaymentsResponse(BaseModel):
    payments: List[PaymentResponse]
    pagination: Pagination


# ============================================
# Review Schemas
# ============================================

class ReviewCreate(BaseModel):
    booking_id: int = Field(..., gt=0)
    rating: int
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    student_id: int
    tutor_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    student: Optional[UserBasic] = None

    model_config = ConfigDict(from_attributes=True)


class PaginatedReviewsResponse(BaseModel):
    reviews: List[ReviewResponse]
    pagination: Pagination


# ============================================
# Booking Schemas
# ============================================

class BookingCreate(BaseModel):
    """Student booking request. The student is always the caller."""
    tutor_id: int = Field(..., gt=0)
    subject: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime
    is_group_session: bool = False
    notes: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    """PATCH payload: a status transition and/or a meeting link"""
    status: Optional[BookingStatus] = None
    meeting_link: Optional[str] = Field(None, min_length=1, max_length=500)


class BookingResponse(BaseModel):
    id: int
    student_id: int
    tutor_id: int
    subject: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    price: Decimal
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    is_group_session: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    student: Optional[UserBasic] = None
    tutor: Optional[UserBasic] = None
    payment: Optional[PaymentResponse] = None

    model_config = ConfigDict(from_attributes=True)


class BookingDetailResponse(BookingResponse):
    review: Optional[ReviewResponse] = None


class PaginatedBookingsResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: Pagination


# ============================================
# Session Schemas (scheduled_for + duration view of a booking)
# ============================================

class SessionCreate(BaseModel):
    tutor_id: int = Field(..., gt=0)
    student_id: Optional[int] = Field(None, gt=0)
    subject: str = Field(..., min_length=1, max_length=255)
    scheduled_for: datetime
    duration: int = Field(..., gt=0, le=720, description="Duration in minutes")
    notes: Optional[str] = Field(None, max_length=2000)


class SessionResponse(BaseModel):
    id: int
    student_id: int
    tutor_id: int
    subject: str
    scheduled_for: datetime
    duration: int
    status: str
    price: Decimal
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    student: Optional[UserBasic] = None
    tutor: Optional[UserBasic] = None
    tutor_profile: Optional[TutorProfileResponse] = None
    payment: Optional[PaymentResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaginatedSessionsResponse(BaseModel):
    sessions: List[SessionResponse]
    pagination: Pagination


class StudentSessionsResponse(BaseModel):
    """A student's sessions grouped for the dashboard"""
    upcoming: List[SessionResponse]
    pending: List[SessionResponse]
    completed: List[SessionResponse]
    cancelled: List[SessionResponse]


# ============================================
# Message Schemas
# ============================================

class MessageCreate(BaseModel):
    receiver_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    content: str
    read: bool
    created_at: Optional[datetime] = None
    sender: Optional[UserBasic] = None
    receiver: Optional[UserBasic] = None

    model_config = ConfigDict(from_attributes=True)


class ConversationSummary(BaseModel):
    other_user: UserWithRole
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    last_message_at: Optional[datetime] = None


class ConversationsResponse(BaseModel):
    conversations: List[ConversationSummary]


class PaginatedMessagesResponse(BaseModel):
    messages: List[MessageResponse]
    pagination: Pagination


class UnreadCountResponse(BaseModel):
    unread_count: int


# ============================================
# Tutor & Student Directory Schemas
# ============================================

class TutorListItem(BaseModel):
    id: int
    name: str
    image: Optional[str] = None
    profile: TutorProfileResponse


class PaginatedTutorsResponse(BaseModel):
    tutors: List[TutorListItem]
    pagination: Pagination


class TutorDetailResponse(TutorListItem):
    reviews: List[ReviewResponse] = []


class StudentBookingSummary(BaseModel):
    id: int
    subject: str
    start_time: datetime
    end_time: datetime
    status: str

    model_config = ConfigDict(from_attributes=True)


class TutorStudentResponse(BaseModel):
    id: int
    name: str
    email: str
    image: Optional[str] = None
    created_at: Optional[datetime] = None
    bookings: List[StudentBookingSummary] = []


class TutorStudentsResponse(BaseModel):
    students: List[TutorStudentResponse]


# ============================================
# Earning Schemas
# ============================================

class EarningResponse(BaseModel):
    id: int
    tutor_id: int
    booking_id: Optional[int] = None
    amount: Decimal
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EarningsSummaryResponse(BaseModel):
    total: Decimal
    earnings: List[EarningResponse]
