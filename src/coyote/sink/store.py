"""
SQLite event store.

Every received delivery becomes one row of the ``event`` table. A row with
body ``CONNECTION_INTERRUPTED`` and otherwise empty fields marks the point
where the connection was lost.
"""

import json
import logging

from sqlalchemy import Column, Integer, Text, create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from coyote.models import Delivery

logger = logging.getLogger(__name__)

CONNECTION_INTERRUPTED = "CONNECTION_INTERRUPTED"

Base = declarative_base()


class Event(Base):
    __tablename__ = "event"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(Text, server_default=text("(DATETIME(CURRENT_TIMESTAMP, 'localtime'))"))
    exchange = Column(Text)
    routing_key = Column(Text)
    correlation_id = Column(Text)
    reply_to = Column(Text)
    headers = Column(Text)
    body = Column(Text)


class EventStore:
    def __init__(self, path: str):
        self.path = path
        self._engine = create_engine(f"sqlite:///{path}", echo=False)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.debug(f"Storing events in {path}")

    def save(self, delivery: Delivery) -> None:
        self._insert(
            Event(
                exchange=delivery.exchange,
                routing_key=delivery.routing_key,
                correlation_id=delivery.correlation_id or "",
                reply_to=delivery.reply_to or "",
                headers=json.dumps(delivery.headers, default=str),
                body=delivery.text,
            )
        )

    def mark_interrupted(self) -> None:
        self._insert(
            Event(
                exchange="",
                routing_key="",
                correlation_id="",
                reply_to="",
                headers="",
                body=CONNECTION_INTERRUPTED,
            )
        )

    def events(self) -> list[Event]:
        with self._session_factory() as session:
            return list(session.query(Event).order_by(Event.id).all())

    def _insert(self, event: Event) -> None:
        with self._session_factory() as session:
            session.add(event)
            session.commit()

    def close(self) -> None:
        logger.info("💔 Closing database connection")
        self._engine.dispose()
