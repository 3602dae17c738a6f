from datetime import datetime
from sqlalchemy import desc
from sqlalchemy.orm import relationship, validates
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator, Text
from flask_login import UserMixin
import json

from carfinance.extensions import db


class JSONEncodedText(TypeDecorator):
    """
    A type that stores JSON as Text but validates it on assignment.
    Use JSONB on PostgreSQL, fallback to Text on other databases.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if isinstance(value, str):
                # Validate it's valid JSON
                json.loads(value)
                if dialect.name == 'postgresql':
                    return json.loads(value)
                return value
            if dialect.name == 'postgresql':
                return value
            return json.dumps(value, ensure_ascii=False)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and not isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)  # JSONB comes back decoded
        return value

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(Text())


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    # user | sales, fixed at registration
    role = db.Column(db.String(16), nullable=False, default="user")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'sales')", name="ck_user_role"),
    )

    profile = relationship(
        "UserProfile",
        cascade="all, delete-orphan",
        backref="user",
        uselist=False,
        lazy=True,
    )
    documents = relationship(
        "Document",
        cascade="all, delete-orphan",
        backref="user",
        lazy=True,
    )
    recommendations = relationship(
        "CarRecommendation",
        cascade="all, delete-orphan",
        backref="user",
        lazy=True,
    )
    referrals = relationship(
        "DealerReferral",
        cascade="all, delete-orphan",
        backref="user",
        lazy=True,
    )

    @validates("email")
    def normalize_email(self, key, value):
        return (value or "").strip().lower()

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserProfile(db.Model):
    """
    Financial questionnaire answers, one row per user.
    """

    __tablename__ = "user_profile"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, unique=True)
    gross_monthly_income = db.Column(db.Integer, nullable=True)
    other_monthly_income = db.Column(db.Integer, nullable=True)
    fixed_monthly_expenses = db.Column(db.Integer, nullable=True)
    liquid_savings = db.Column(db.Integer, nullable=True)
    credit_score = db.Column(db.String(32), nullable=True)
    ownership_horizon = db.Column(db.String(64), nullable=True)
    annual_mileage = db.Column(db.String(64), nullable=True)
    passenger_needs = db.Column(db.String(64), nullable=True)
    commute_profile = db.Column(db.String(128), nullable=True)
    down_payment = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    FIELDS = (
        "gross_monthly_income",
        "other_monthly_income",
        "fixed_monthly_expenses",
        "liquid_savings",
        "credit_score",
        "ownership_horizon",
        "annual_mileage",
        "passenger_needs",
        "commute_profile",
        "down_payment",
    )

    def to_dict(self) -> dict:
        data = {"id": self.id, "user_id": self.user_id}
        for field in self.FIELDS:
            data[field] = getattr(self, field)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


class Document(db.Model):
    __tablename__ = "document"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(128), nullable=False)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class CarRecommendation(db.Model):
    """
    One recommender run: the three tier summaries as plain strings plus the
    full normalized document.
    """

    __tablename__ = "car_recommendation"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    profile_id = db.Column(db.Integer, db.ForeignKey("user_profile.id", ondelete="SET NULL"), nullable=True)
    budget_car = db.Column(db.String(255), nullable=False)
    balanced_car = db.Column(db.String(255), nullable=False)
    premium_car = db.Column(db.String(255), nullable=False)
    recommendation_data = db.Column(JSONEncodedText, nullable=False)
    model_name = db.Column(db.String(64), nullable=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_car_recommendation_user_created", "user_id", desc("created_at")),
    )

    @validates('recommendation_data')
    def validate_json_fields(self, key, value):
        """Validate that JSON fields contain valid JSON."""
        if value is None:
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, str):
            try:
                json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {key}: {e}")
            return value
        raise ValueError(f"Invalid type for {key}: expected dict, list, or JSON string")


class DealerReferral(db.Model):
    """
    A user's request to have their selection sent to a dealership.
    """

    __tablename__ = "dealer_referral"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    dealer_id = db.Column(db.String(32), nullable=False, index=True)
    recommendation_id = db.Column(
        db.Integer, db.ForeignKey("car_recommendation.id", ondelete="SET NULL"), nullable=True
    )
    selected_tier = db.Column(db.String(16), nullable=True)
    payment_mode = db.Column(db.String(16), nullable=False, default="finance")
    note = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "dealer_id": self.dealer_id,
            "recommendation_id": self.recommendation_id,
            "selected_tier": self.selected_tier,
            "payment_mode": self.payment_mode,
            "note": self.note or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class IpRateLimit(db.Model):
    """
    Per-IP short-window rate limiting (minute buckets).
    """

    __tablename__ = "ip_rate_limit"

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    window_start = db.Column(db.DateTime, nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("ip", "window_start", name="uq_ip_window"),
        db.Index("ix_ip_window", "ip", "window_start"),
    )
