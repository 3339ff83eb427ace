"""Ovation Sync — Reference Resolution.

Maps Ovation company/location/customer ids onto internal ids. Lookups are
read-only: a missing reference row yields ``None`` and the survey is stored
with a NULL foreign key until the row is provisioned.
"""

import uuid
from typing import Dict, Optional, Type

from sqlmodel import Session, SQLModel, select

from app.models.survey_models import Company, Customer, Location
from app.models.sync_models import ResolvedReferences, SurveyRecord

DIMENSIONS: Dict[str, Type[SQLModel]] = {
    "company": Company,
    "location": Location,
    "customer": Customer,
}


class ReferenceResolver:
    def __init__(self, session: Session):
        self.session = session

    def resolve(self, dimension: str, external_id: Optional[str]) -> Optional[uuid.UUID]:
        """Internal id for ``external_id`` in ``dimension``, or None if unknown."""
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown reference dimension: {dimension}")
        if not external_id:
            return None
        model = DIMENSIONS[dimension]
        return self.session.exec(
            select(model.id).where(model.ovation_id == external_id)  # type: ignore
        ).first()

    def resolve_all(self, record: SurveyRecord) -> ResolvedReferences:
        external_ids = {
            "company": record.company_external_id,
            "location": record.location_external_id,
            "customer": record.customer_external_id,
        }
        resolved = {dim: self.resolve(dim, ext) for dim, ext in external_ids.items()}
        return ResolvedReferences(
            company_id=resolved["company"],
            location_id=resolved["location"],
            customer_id=resolved["customer"],
            missing=[
                dim for dim, ext in external_ids.items() if ext and resolved[dim] is None
            ],
        )
