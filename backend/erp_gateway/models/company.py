"""
ERP Gateway - Company SQLAlchemy Models
========================================

What:  ORM models for the `companies` and `users_to_companies` tables.
Why:   The gateway reads vendor credentials per company and checks which
       companies a user has been assigned. Both tables are owned and written by
       the back-office CRUD layer; this service only reads them.
Who:   Queried by services/company_registry.py.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TIMESTAMP

from erp_gateway.database import Base


class Company(Base):
    """
    A tenant company and its vendor web service credentials.

    Query Patterns:
        - Resolve credentials: SELECT ... WHERE id = :company_id (primary key)
    """

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # What: The company's code on the vendor side (sent as firma_kodu)
    code: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # ── Vendor credentials ────────────────────────────────────────────────
    # Base URL of the company's vendor instance; sub-API paths are appended
    web_service_source: Mapped[str] = mapped_column(String(255), nullable=False)
    web_service_username: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[str] = mapped_column(String(255), nullable=False)
    api_secret: Mapped[str] = mapped_column(String(255), nullable=False)

    creation_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("companies_status_idx", status),
        Index("companies_name_idx", name),
    )

    def __repr__(self) -> str:
        # Credentials deliberately left out
        return f"<Company(id={self.id}, code={self.code}, name='{self.name}')>"


class UserCompany(Base):
    """Assignment of a user to a company (many-to-many association row)."""

    __tablename__ = "users_to_companies"

    # users table belongs to the CRUD layer; only the id is referenced here
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (
        Index("users_to_companies_user_id_idx", user_id),
        Index("users_to_companies_company_id_idx", company_id),
    )
