from __future__ import annotations

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Dashboard(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "dashboards"

    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, server_default="private")
    share_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    # [{"user_id", "access_level", "granted_by", "granted_at"}], unique by user_id
    acl: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    image: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    datasources: Mapped[list | None] = mapped_column(JSONType, default=list)
    columns: Mapped[int | None] = mapped_column(Integer, nullable=True)
    panes: Mapped[list | None] = mapped_column(JSONType, default=list)
    width: Mapped[str | None] = mapped_column(String(20), nullable=True)
    auth_providers: Mapped[list | None] = mapped_column(JSONType, default=list)
    settings: Mapped[dict | None] = mapped_column(JSONType, default=dict)

    __table_args__ = (Index("ix_dashboards_visibility", "visibility"),)

    def __repr__(self) -> str:
        return f"<Dashboard(id={self.id}, owner_id={self.owner_id}, visibility={self.visibility})>"
