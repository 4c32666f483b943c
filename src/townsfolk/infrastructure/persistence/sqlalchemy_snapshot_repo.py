from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from townsfolk.domain.repositories import EntitySnapshotRepository


TABLE_NAME = "townsfolk_entity"

logger = logging.getLogger(__name__)


def create_snapshot_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite") and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


class SqlAlchemySnapshotRepository(EntitySnapshotRepository):
    """One row per raw entity record; ``save`` replaces the whole set in one transaction."""

    def __init__(self, engine: Engine | str) -> None:
        self.engine = create_snapshot_engine(engine) if isinstance(engine, str) else engine
        self._session_factory = sessionmaker(bind=self.engine)
        self._schema_ready = False

    def _dialect(self, session: Session) -> str:
        return session.bind.dialect.name if session.bind is not None else "sqlite"

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._session_factory.begin() as session:
            if self._dialect(session) == "mysql":
                statement = f"""
                    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                        entity_id VARCHAR(191) NOT NULL PRIMARY KEY,
                        entity_type VARCHAR(32) NOT NULL,
                        tier VARCHAR(32) NOT NULL,
                        name VARCHAR(255) NOT NULL,
                        payload_json LONGTEXT NOT NULL,
                        ordinal INT NOT NULL
                    ) CHARACTER SET utf8mb4
                """
            else:
                statement = f"""
                    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                        entity_id TEXT NOT NULL PRIMARY KEY,
                        entity_type TEXT NOT NULL,
                        tier TEXT NOT NULL,
                        name TEXT NOT NULL,
                        payload_json TEXT NOT NULL,
                        ordinal INTEGER NOT NULL
                    )
                """
            session.execute(text(statement))
        self._schema_ready = True

    def load(self) -> List[Dict[str, Any]]:
        self.ensure_schema()
        with self._session_factory() as session:
            rows = session.execute(
                text(f"SELECT entity_id, payload_json FROM {TABLE_NAME} ORDER BY ordinal, entity_id")
            ).all()
        records: List[Dict[str, Any]] = []
        for row in rows:
            try:
                payload = json.loads(row.payload_json)
            except json.JSONDecodeError:
                logger.exception("Stored entity payload is not valid JSON", extra={"entity_id": row.entity_id})
                continue
            if isinstance(payload, dict):
                records.append(payload)
        return records

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.ensure_schema()
        with self._session_factory.begin() as session:
            if self._dialect(session) == "mysql":
                upsert = text(
                    f"""
                    INSERT INTO {TABLE_NAME} (entity_id, entity_type, tier, name, payload_json, ordinal)
                    VALUES (:entity_id, :entity_type, :tier, :name, :payload_json, :ordinal)
                    ON DUPLICATE KEY UPDATE
                        entity_type = VALUES(entity_type),
                        tier = VALUES(tier),
                        name = VALUES(name),
                        payload_json = VALUES(payload_json),
                        ordinal = VALUES(ordinal)
                    """
                )
            else:
                upsert = text(
                    f"""
                    INSERT INTO {TABLE_NAME} (entity_id, entity_type, tier, name, payload_json, ordinal)
                    VALUES (:entity_id, :entity_type, :tier, :name, :payload_json, :ordinal)
                    ON CONFLICT(entity_id) DO UPDATE SET
                        entity_type = excluded.entity_type,
                        tier = excluded.tier,
                        name = excluded.name,
                        payload_json = excluded.payload_json,
                        ordinal = excluded.ordinal
                    """
                )

            ids: List[str] = []
            for ordinal, record in enumerate(records):
                entity_id = str(record.get("id") or "")
                if not entity_id:
                    continue
                ids.append(entity_id)
                session.execute(
                    upsert,
                    {
                        "entity_id": entity_id,
                        "entity_type": str(record.get("type") or ""),
                        "tier": str(record.get("tier") or ""),
                        "name": str(record.get("name") or ""),
                        "payload_json": json.dumps(record, ensure_ascii=False),
                        "ordinal": ordinal,
                    },
                )

            if ids:
                session.execute(
                    text(f"DELETE FROM {TABLE_NAME} WHERE entity_id NOT IN :ids").bindparams(
                        bindparam("ids", expanding=True)
                    ),
                    {"ids": ids},
                )
            else:
                session.execute(text(f"DELETE FROM {TABLE_NAME}"))
