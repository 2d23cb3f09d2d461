"""Database models for pugqueue."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Preference(Base):
    """A stored preference value, keyed by owner and key.

    Access configs and access lists are stored here, one row per owner and
    key holding the whole name -> object mapping.

    Attributes:
        id: Unique identifier
        owner_id: Player ID, or "guild" for the shared scope
        key: Preference key (e.g. "lobby_access_configs")
        value: JSON value
        updated_at: Last write timestamp
    """

    __tablename__ = "preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("owner_id", "key", name="uq_preferences_owner_key"),)


class LobbyDraft(Base):
    """Local draft bookkeeping of a captain-draft lobby.

    Attributes:
        lobby_id: Remote lobby ID
        phase: Draft phase ("collecting", "drafting", ...)
        position: Index of the current pick
        picks: Captain IDs in turn order
        pick_expires: Deadline of the current pick
        version: Mutation counter
        announced: Whether the start announcement went out
    """

    __tablename__ = "lobby_drafts"

    lobby_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="collecting")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    picks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    pick_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    announced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )
