# support_console/models.py
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Float, Boolean
from datetime import datetime
import uuid

from support_console.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class DiscussionMessage(Base):
    """One chat message; a conversation is every row sharing a session_id"""
    __tablename__ = "discussions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)  # customer phone number
    type = Column(String, nullable=False)  # human, ai
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    client_name = Column(String, nullable=False, default="")
    read = Column(Boolean, default=False, nullable=False)
    assigned_to_agent = Column(Boolean, default=False, nullable=False)


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(String, primary_key=True, default=new_id)
    customer_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    email = Column(String, nullable=False, default="")
    amount = Column(Float, default=0.0)
    details = Column(Text, default="")
    status = Column(String, default="pending")  # pending, accepted, rejected
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AvailableSlot(Base):
    __tablename__ = "available_dates"

    id = Column(String, primary_key=True, default=new_id)
    datetime = Column(DateTime, nullable=False, index=True)
    status = Column(String, default="available", nullable=False)  # available, booked
    client_name = Column(String)
    client_phone = Column(String)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, default="")
    brand = Column(String, default="")
    model = Column(String, default="")
    year = Column(Integer)
    service = Column(String, default="")
    fuel = Column(String, default="essence")
    date_id = Column(String, ForeignKey("available_dates.id"))
    status = Column(String, default="confirmed")  # confirmed, cancelled
    created_at = Column(DateTime, default=datetime.utcnow)


class UserProfile(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    role = Column(String, default="agent")  # admin, agent
    phone = Column(String)
    avatar_url = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuthAccount(Base):
    __tablename__ = "auth_accounts"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token_hash = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("auth_accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
