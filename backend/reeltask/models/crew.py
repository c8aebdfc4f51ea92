import uuid
from datetime import date, datetime
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class ProjectRole(SQLModel, table=True):
    """
    A role a project needs filled (e.g. "Gaffer" in Lighting).

    filled_count is not stored: it is the number of active crew in the role and
    is derived by the crew directory on read.
    """

    __tablename__ = "project_roles"
    __table_args__ = (
        UniqueConstraint("project_id", "role_name", name="uq_project_roles_project_role_name"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    role_name: str = Field(max_length=100)
    department_id: uuid.UUID | None = Field(default=None, index=True)
    department_name: str = Field(default="", max_length=100)
    required_count: int = Field(default=1, ge=0)
    is_active: bool = Field(default=True, index=True)

    created_by: str = Field(default="system", max_length=255)
    updated_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ProjectCrew(SQLModel, table=True):
    """A person holding a role within one project."""

    __tablename__ = "project_crew"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", "project_role_id", name="uq_project_crew_member_role"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    project_role_id: uuid.UUID = Field(foreign_key="project_roles.id", index=True)
    user_id: str = Field(index=True, max_length=255)
    user_name: str = Field(default="", max_length=200)  # Display cache

    is_lead: bool = Field(default=False)
    is_active: bool = Field(default=True, index=True)
    joined_date: date | None = Field(default_factory=date.today)
    left_date: date | None = Field(default=None)
    notes: str | None = Field(default=None, max_length=1000)

    created_by: str = Field(default="system", max_length=255)
    updated_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
