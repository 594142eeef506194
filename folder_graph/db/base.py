from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, JSON, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Materialized paths are native arrays on PostgreSQL and JSON lists elsewhere
IdPath = JSON().with_variant(postgresql.ARRAY(Integer), "postgresql")
TitlePath = JSON().with_variant(postgresql.ARRAY(Text), "postgresql")


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
