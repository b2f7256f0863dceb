import enum
import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Time, Text, Boolean, JSON,
    Enum, ForeignKey, UniqueConstraint, event, insert, select, update,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


class Role(str, enum.Enum):
    ADMIN = "Admin"
    PRESIDENT = "President"
    SECRETARY = "Secretary"
    MEMBER = "Member"


class ConnectionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class AttendeeStatus(str, enum.Enum):
    REGISTERED = "registered"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"


def _uuid():
    return str(uuid.uuid4())


def _enum(enum_cls, name):
    # Store the values ("Admin", "pending") rather than the member names
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class IdSequence(Base):
    """Per-prefix counters behind the readable ids (USR001, E01, ...)."""
    __tablename__ = "id_sequences"

    name = Column(String(20), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class User(Base):
    __tablename__ = "users"
    __id_format__ = ("USR", 3)

    id = Column(String(10), primary_key=True)
    seq = Column(Integer, unique=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(_enum(Role, "user_role"), nullable=False, default=Role.MEMBER)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    firstname = Column(String(100))
    lastname = Column(String(100))
    middlename = Column(String(100))
    about = Column(Text)
    occupation = Column(String(200))
    phone_number = Column(String(20))
    date_of_birth = Column(Date)
    gender = Column(String(20))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserSocials(Base):
    __tablename__ = "user_socials"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    facebook_url = Column(String(500))
    github_url = Column(String(500))
    linkedin_url = Column(String(500))
    twitter_url = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserAddress(Base):
    __tablename__ = "user_addresses"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    street_number = Column(String(50))
    street_address = Column(String(500))
    post_code = Column(String(50))
    county = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Connection(Base):
    __tablename__ = "user_connections"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    connected_user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Sorted "a|b" of the two account ids; one row per unordered pair
    pair_key = Column(String(21), unique=True, nullable=False)
    status = Column(_enum(ConnectionStatus, "connection_status"), nullable=False,
                    default=ConnectionStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @staticmethod
    def make_pair_key(first_id, second_id):
        return "|".join(sorted((first_id, second_id)))


class Event(Base):
    __tablename__ = "community_events"
    __id_format__ = ("E", 2)

    id = Column(String(10), primary_key=True)
    seq = Column(Integer, unique=True, index=True)
    event_name = Column(String(300), nullable=False)
    event_address = Column(String(500))
    event_time = Column(Time)
    event_date = Column(Date)
    event_description = Column(Text)
    event_host = Column(String(10), ForeignKey("users.id", ondelete="SET NULL"))
    event_host_name = Column(String(200))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class EventAttendee(Base):
    __tablename__ = "event_attendees"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_attendee"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(10), ForeignKey("community_events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(_enum(AttendeeStatus, "attendee_status"), nullable=False,
                    default=AttendeeStatus.REGISTERED, index=True)
    checked_in_at = Column(DateTime(timezone=True))
    checked_in_by = Column(String(10), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Blog(Base):
    __tablename__ = "blog_posts"
    __id_format__ = ("BLG", 2)

    id = Column(String(10), primary_key=True)
    seq = Column(Integer, unique=True, index=True)
    title = Column(String(500), nullable=False)
    blog_content = Column(Text, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    author_id = Column(String(10), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class TimelinePost(Base):
    __tablename__ = "timeline_posts"
    __id_format__ = ("TML", 2)

    id = Column(String(10), primary_key=True)
    seq = Column(Integer, unique=True, index=True)
    title = Column(String(300))
    content = Column(Text, nullable=False)
    image_url = Column(String(500))
    attachment_url = Column(String(500))
    attachment_name = Column(String(300))
    author_id = Column(String(10), ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Poll(Base):
    __tablename__ = "polls"
    __id_format__ = ("POL", 2)

    id = Column(String(10), primary_key=True)
    seq = Column(Integer, unique=True, index=True)
    question = Column(Text, nullable=False)
    description = Column(Text)
    created_by = Column(String(10), ForeignKey("users.id", ondelete="SET NULL"))
    expires_at = Column(DateTime(timezone=True))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    options = relationship(
        "PollOption",
        order_by="PollOption.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PollOption(Base):
    __tablename__ = "poll_options"

    id = Column(String(36), primary_key=True, default=_uuid)
    poll_id = Column(String(10), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False, index=True)
    option_text = Column(Text, nullable=False)
    # Caller-given order; tallies never live on this row
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PollVote(Base):
    __tablename__ = "poll_votes"
    __table_args__ = (UniqueConstraint("poll_id", "user_id", name="uq_poll_vote_user"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    poll_id = Column(String(10), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False, index=True)
    option_id = Column(String(36), ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(10), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    role = Column(_enum(Role, "user_role"), unique=True, nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


def next_sequence(connection, prefix):
    """Advance the counter for ``prefix`` inside the current transaction."""
    sequences = IdSequence.__table__
    connection.execute(
        update(sequences)
        .where(sequences.c.name == prefix)
        .values(value=sequences.c.value + 1)
    )
    value = connection.execute(
        select(sequences.c.value).where(sequences.c.name == prefix)
    ).scalar()
    if value is None:
        value = 1
        connection.execute(insert(sequences).values(name=prefix, value=value))
    return value


def format_identifier(prefix, width, value):
    # Past the pad width the number just grows: USR999, USR1000
    return f"{prefix}{value:0{width}d}"


def _assign_identifier(mapper, connection, target):
    if target.id is None:
        prefix, width = target.__id_format__
        target.seq = next_sequence(connection, prefix)
        target.id = format_identifier(prefix, width, target.seq)


for _model in (User, Event, Blog, TimelinePost, Poll):
    event.listen(_model, "before_insert", _assign_identifier)
