"""Ovation Sync — Relational Store Models.

``surveys`` is written by the sync engine. ``companies``, ``locations`` and
``customers`` are provisioned elsewhere; the engine only reads them to map
Ovation ids onto internal ids.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class Company(SQLModel, table=True):
    __tablename__ = "companies"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    ovation_id: str = Field(unique=True, index=True)
    name: str = Field(default="")


class Location(SQLModel, table=True):
    __tablename__ = "locations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    ovation_id: str = Field(unique=True, index=True)
    name: str = Field(default="")


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    ovation_id: str = Field(unique=True, index=True)
    name: str = Field(default="")


class Survey(SQLModel, table=True):
    """One Ovation survey, keyed by its Ovation id.

    The unique ``ovation_id`` is the natural key that makes re-ingesting an
    overlapping window idempotent. Foreign keys stay NULL until the matching
    reference row exists.
    """

    __tablename__ = "surveys"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    ovation_id: str = Field(unique=True, index=True, description="Ovation survey _id")

    company_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="companies.id", index=True
    )
    location_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="locations.id", index=True
    )
    customer_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="customers.id", index=True
    )

    rating: Optional[int] = None
    feedback: Optional[str] = None
    source: Optional[str] = None
    response_message: Optional[str] = None
    response_by: Optional[str] = None
    response_time: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    created_at: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    local_created_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    processed_at: datetime = Field(sa_type=DateTime(timezone=True))
