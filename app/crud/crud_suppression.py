# app/crud/crud_suppression.py
"""CRUD operations for the suppression (block) list."""

from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.suppression_entry import SuppressionEntry
from app.schemas.suppression import SuppressionCreate

_CHUNK_SIZE = 500


class CRUDSuppression:
    def get(self, db: Session, entry_id: str) -> Optional[SuppressionEntry]:
        return db.query(SuppressionEntry).filter(SuppressionEntry.id == entry_id).first()

    def get_by_value(self, db: Session, *, type: str, value: str) -> Optional[SuppressionEntry]:
        return (
            db.query(SuppressionEntry)
            .filter(SuppressionEntry.type == type, SuppressionEntry.value == value)
            .first()
        )

    def get_multi(
        self,
        db: Session,
        *,
        type: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[SuppressionEntry]:
        query = db.query(SuppressionEntry)
        if type:
            query = query.filter(SuppressionEntry.type == type)
        return query.order_by(SuppressionEntry.created_at.desc()).offset(skip).limit(limit).all()

    def create(self, db: Session, *, obj_in: SuppressionCreate) -> SuppressionEntry:
        """Upsert on (type, value); re-adding an existing entry returns it unchanged."""
        existing = self.get_by_value(db, type=obj_in.type, value=obj_in.value)
        if existing:
            return existing
        entry = SuppressionEntry(type=obj_in.type, value=obj_in.value)
        db.add(entry)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent insert of the same value
            db.rollback()
            return self.get_by_value(db, type=obj_in.type, value=obj_in.value)
        db.refresh(entry)
        return entry

    def remove(self, db: Session, *, db_obj: SuppressionEntry) -> None:
        db.delete(db_obj)
        db.commit()

    def find_matches(
        self,
        db: Session,
        *,
        emails: Iterable[str],
        domains: Iterable[str],
    ) -> Tuple[Set[str], Set[str]]:
        """Return the subsets of `emails` and `domains` that are suppressed."""
        blocked_emails: Set[str] = set()
        blocked_domains: Set[str] = set()
        for type_, values, bucket in (
            ("email", sorted(set(emails)), blocked_emails),
            ("domain", sorted(set(domains)), blocked_domains),
        ):
            for start in range(0, len(values), _CHUNK_SIZE):
                chunk = values[start:start + _CHUNK_SIZE]
                rows = (
                    db.query(SuppressionEntry.value)
                    .filter(SuppressionEntry.type == type_, SuppressionEntry.value.in_(chunk))
                    .all()
                )
                bucket.update(value for (value,) in rows)
        return blocked_emails, blocked_domains


suppression = CRUDSuppression()
