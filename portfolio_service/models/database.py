"""
Database models and connection management for the portfolio service.
"""
import os
from typing import Optional

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.sql import func

Base = declarative_base()


class Profile(Base):
    """The portfolio owner's profile."""

    __tablename__ = 'profiles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    title = Column(String(200), nullable=True)
    overview = Column(Text, nullable=True)
    email = Column(String(200), nullable=False)
    linkedin_url = Column(String(255), nullable=True)
    github_url = Column(String(255), nullable=True)
    avatar_url = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'title': self.title,
            'overview': self.overview,
            'email': self.email,
            'linkedin_url': self.linkedin_url,
            'github_url': self.github_url,
            'avatar_url': self.avatar_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Profile(id={self.id}, name='{self.first_name} {self.last_name}')>"


class Project(Base):
    """A portfolio project."""

    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(50), nullable=False, default='active')
    is_featured = Column(Boolean, default=False, nullable=False)
    image_url = Column(String(255), nullable=True)
    repo_url = Column(String(255), nullable=True)
    demo_url = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'is_featured': self.is_featured,
            'image_url': self.image_url,
            'repo_url': self.repo_url,
            'demo_url': self.demo_url,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project(id={self.id}, title='{self.title}')>"


class DatabaseManager:
    """Database connection and initialization manager."""

    def __init__(self, database_url: Optional[str] = None):
        """
        Args:
            database_url: SQLAlchemy URL or a plain SQLite file path
        """
        if database_url is None:
            database_url = "data/portfolio.db"

        if not database_url.startswith(('sqlite://', 'postgresql://', 'mysql://')):
            db_dir = os.path.dirname(database_url)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            database_url = f"sqlite:///{database_url}"

        self.database_url = database_url
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False,
                                         expire_on_commit=False, bind=self.engine)

    def create_tables(self):
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        return self.SessionLocal()

    def close(self):
        self.engine.dispose()
