"""SQLAlchemy database models for the embedded SQL store."""

from datetime import timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime

from dailytasks.database.database import Base
from dailytasks.models.task import Task

LAST_MIGRATION_KEY = "lastMigration"
VERSION_KEY = "version"


class TaskDB(Base):
    """One task row, tagged with its day partition.

    The composite primary key enforces id uniqueness within a day.
    """

    __tablename__ = "tasks"

    day = Column(String(10), primary_key=True)
    id = Column(String, primary_key=True)

    # Insertion order within the day; read order is not semantically significant.
    position = Column(Integer, nullable=False, default=0)

    text = Column(String, nullable=False)
    completed = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def to_pydantic(self) -> Task:
        """Convert database model to Pydantic model."""
        return Task(
            id=self.id,
            text=self.text,
            completed=bool(self.completed),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, task: Task, day: str, position: int = 0) -> "TaskDB":
        """Create database model from Pydantic model."""
        return cls(
            day=day,
            id=task.id,
            position=position,
            text=task.text,
            completed=task.completed,
            created_at=task.created_at.astimezone(timezone.utc),
            updated_at=task.updated_at.astimezone(timezone.utc),
        )


class TaskMetadataDB(Base):
    """Singleton key/value rows (`lastMigration`, `version`)."""

    __tablename__ = "task_metadata"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


class TaskDayDB(Base):
    """Known day partitions, including days whose task list is empty."""

    __tablename__ = "task_days"

    day = Column(String(10), primary_key=True)
