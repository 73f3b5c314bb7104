"""Persistence layer for saved quotes and rate tiers.

This module keeps the quotes a user chose to save, together with the rate
tiers advisers offer, in an external database. It defaults to SQLite for local
development, but accepts any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL)
for shared deployments. Only the figures the engine produced are stored, so
anything rendered later from a saved quote matches what the user was shown.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, create_engine, delete, select
from sqlalchemy.orm import declarative_base, sessionmaker

from quote_calc.engine import DEFAULT_RATE_TIERS

logger = logging.getLogger(__name__)

Base = declarative_base()

CLIENT_TIER_CODE = "C"
RESTRICTED_USER_TYPES = {"client", "agency"}
ADVISER_USER_TYPE = "asesor"


class RateTierModel(Base):
    __tablename__ = "rate_tiers"

    tier_code = Column(String(8), primary_key=True)
    tier_name = Column(String(64), nullable=False)
    annual_rate = Column(Numeric(8, 6), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class SavedQuoteModel(Base):
    __tablename__ = "saved_quotes"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    tier_code = Column(String(8), nullable=True)
    term_months = Column(Integer, nullable=False)
    inputs_json = Column(Text, nullable=False)
    summary_json = Column(Text, nullable=False)
    schedule_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QuoteStore:
    """Database-backed store for saved quotes and rate tiers."""

    def __init__(self, url: str, *, max_per_user: int = 20) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._max_per_user = max_per_user
        self._seed_rate_tiers(DEFAULT_RATE_TIERS)

    # Rate tiers

    def _seed_rate_tiers(self, tiers: Mapping[str, Decimal]) -> None:
        with self._session_factory() as session:
            if session.execute(select(RateTierModel)).first() is not None:
                return
            for code, rate in tiers.items():
                session.add(RateTierModel(tier_code=code, tier_name=f"Tier {code}", annual_rate=rate))
            session.commit()
        logger.info("Seeded %d default rate tiers", len(tiers))

    def list_rate_tiers(self, user_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return active tiers ordered by code.

        Clients and agencies are only offered the client tier; advisers see
        every active tier.
        """
        with self._session_factory() as session:
            stmt = (
                select(RateTierModel)
                .where(RateTierModel.is_active.is_(True))
                .order_by(RateTierModel.tier_code.asc())
            )
            if user_type in RESTRICTED_USER_TYPES:
                stmt = stmt.where(RateTierModel.tier_code == CLIENT_TIER_CODE)
            rows: Iterable[RateTierModel] = session.execute(stmt).scalars()
            return [self._tier_to_dict(row) for row in rows]

    def active_tier_rates(self) -> Dict[str, Decimal]:
        return {tier["tier_code"]: Decimal(str(tier["annual_rate"])) for tier in self.list_rate_tiers()}

    def update_rate_tier(
        self,
        tier_code: str,
        *,
        annual_rate: Optional[float] = None,
        tier_name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.get(RateTierModel, tier_code)
            if row is None:
                return None
            if annual_rate is not None:
                row.annual_rate = Decimal(str(annual_rate))
            if tier_name is not None:
                row.tier_name = tier_name
            if is_active is not None:
                row.is_active = is_active
            session.commit()
            return self._tier_to_dict(row)

    # Saved quotes

    def list_quotes(self, user_token: str) -> List[Dict[str, Any]]:
        if not user_token:
            return []
        with self._session_factory() as session:
            rows: Iterable[SavedQuoteModel] = session.execute(
                select(SavedQuoteModel)
                .where(SavedQuoteModel.user_token == user_token)
                .order_by(SavedQuoteModel.created_at.asc())
            ).scalars()
            return [self._quote_to_dict(row) for row in rows]

    @staticmethod
    def _owned_row(session, user_token: str, quote_id: str) -> Optional[SavedQuoteModel]:
        row = session.get(SavedQuoteModel, quote_id)
        return row if row is not None and row.user_token == user_token else None

    def get_quote(self, user_token: str, quote_id: str) -> Optional[Dict[str, Any]]:
        if not user_token:
            return None
        with self._session_factory() as session:
            row = self._owned_row(session, user_token, quote_id)
            return self._quote_to_dict(row) if row else None

    def save_quote(
        self,
        user_token: str,
        quote_id: str,
        name: str,
        result: Dict[str, Any],
        tier_code: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Persist a serialized ``ComputeResult`` (``summary``, ``schedule``, ``inputs``)."""
        if not user_token:
            return None
        payload = SavedQuoteModel(
            id=quote_id,
            user_token=user_token,
            name=name,
            tier_code=tier_code,
            term_months=result["inputs"]["term_months"],
            inputs_json=json.dumps(result["inputs"]),
            summary_json=json.dumps(result["summary"]),
            schedule_json=json.dumps(result["schedule"]),
        )
        with self._session_factory() as session:
            session.add(payload)
            session.commit()
            saved = self._quote_to_dict(payload)
        self._trim_user(user_token)
        return saved

    def remove_quote(self, user_token: str, quote_id: str) -> bool:
        if not user_token:
            return False
        with self._session_factory() as session:
            row = self._owned_row(session, user_token, quote_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        logger.info("Removed saved quote %s", quote_id)
        return True

    def clear_quotes(self, user_token: str) -> int:
        if not user_token:
            return 0
        with self._session_factory() as session:
            removed = session.execute(
                delete(SavedQuoteModel).where(SavedQuoteModel.user_token == user_token)
            ).rowcount
            session.commit()
        logger.info("Cleared %d saved quotes", removed)
        return removed

    def _trim_user(self, user_token: str) -> None:
        if not self._max_per_user or self._max_per_user < 0:
            return
        with self._session_factory() as session:
            stale_ids = session.execute(
                select(SavedQuoteModel.id)
                .where(SavedQuoteModel.user_token == user_token)
                .order_by(SavedQuoteModel.created_at.desc())
                .offset(self._max_per_user)
            ).scalars().all()
            if not stale_ids:
                return
            session.execute(delete(SavedQuoteModel).where(SavedQuoteModel.id.in_(stale_ids)))
            session.commit()
        logger.info("Trimmed %d old quotes over the per-user limit", len(stale_ids))

    @staticmethod
    def _tier_to_dict(row: RateTierModel) -> Dict[str, Any]:
        return {
            "tier_code": row.tier_code,
            "tier_name": row.tier_name,
            "annual_rate": float(row.annual_rate),
            "is_active": row.is_active,
        }

    @staticmethod
    def _quote_to_dict(row: SavedQuoteModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "tier_code": row.tier_code,
            "term_months": row.term_months,
            "inputs": json.loads(row.inputs_json),
            "summary": json.loads(row.summary_json),
            "schedule": json.loads(row.schedule_json),
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None) -> QuoteStore:
    return QuoteStore(url or "sqlite:///quote_data.sqlite3")
