"""
SQLAlchemy ORM Models for the remote schedule store.

Defines per-identity schedule state plus the append-only history tables.
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ScheduleEntryRow(Base):
    """
    Review schedule for one item of one identity.

    Upserted on every review; keyed by (user_id, item_key).
    """
    __tablename__ = 'review_schedule'

    # Primary key: composite of user_id and item_key
    user_id = Column(String(255), primary_key=True, nullable=False)
    item_key = Column(String(512), primary_key=True, nullable=False)

    category = Column(Integer, nullable=True)  # 0=NOT_RATED .. 3=HARD, NULL for lessons
    repetition_count = Column(Integer, nullable=False, default=0)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    next_review_at = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_review_schedule_due', 'user_id', 'next_review_at'),
    )

    def __repr__(self):
        return f"<ScheduleEntryRow({self.user_id}, {self.item_key}, reps={self.repetition_count})>"


class CategoryChangeRow(Base):
    """Append-only log entry for one category change."""
    __tablename__ = 'review_category_history'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    item_key = Column(String(512), nullable=False)

    old_category = Column(Integer, nullable=True)  # NULL for the first rating
    new_category = Column(Integer, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<CategoryChangeRow(id={self.id}, {self.item_key}: {self.old_category}->{self.new_category})>"


class ReviewEventRow(Base):
    """Append-only log entry for one completed review."""
    __tablename__ = 'review_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    item_key = Column(String(512), nullable=False)

    category_at_review = Column(Integer, nullable=True)
    repetition_count = Column(Integer, nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=False)

    time_spent_seconds = Column(Integer, nullable=True)
    was_recalled_correctly = Column(Boolean, nullable=True)

    def __repr__(self):
        return f"<ReviewEventRow(id={self.id}, {self.item_key}, reps={self.repetition_count})>"
