"""
Content service for the portfolio profile and projects.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models.database import DatabaseManager, Profile, Project

PROFILE_FIELDS = ('first_name', 'last_name', 'title', 'overview', 'email',
                  'linkedin_url', 'github_url', 'avatar_url')
PROJECT_FIELDS = ('title', 'description', 'status', 'is_featured', 'image_url',
                  'repo_url', 'demo_url', 'start_date', 'end_date')


def _coerce_project_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known project fields and parse ISO dates."""
    cleaned = {k: v for k, v in values.items() if k in PROJECT_FIELDS}
    for key in ('start_date', 'end_date'):
        if isinstance(cleaned.get(key), str):
            cleaned[key] = date.fromisoformat(cleaned[key]) if cleaned[key] else None
    if 'is_featured' in cleaned:
        cleaned['is_featured'] = bool(cleaned['is_featured'])
    return cleaned


class ContentService:
    """Reads and writes portfolio content. Returns detached instances or None on failure."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

    def get_profile(self) -> Optional[Profile]:
        session = self.db_manager.get_session()
        try:
            return session.query(Profile).order_by(Profile.id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Database error getting profile: {e}")
            return None
        finally:
            session.close()

    def update_profile(self, values: Dict[str, Any]) -> Optional[Profile]:
        """
        Create or update the single profile.

        Args:
            values: Profile fields to set; unknown keys are ignored

        Returns:
            The saved Profile, or None if the update failed
        """
        session = self.db_manager.get_session()
        try:
            profile = session.query(Profile).order_by(Profile.id).first()
            if profile is None:
                profile = Profile()
                session.add(profile)

            for key in PROFILE_FIELDS:
                if key in values:
                    setattr(profile, key, values[key])

            session.commit()
            session.refresh(profile)
            return profile
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Database error updating profile: {e}")
            return None
        finally:
            session.close()

    def get_projects(self, featured_only: bool = False) -> List[Project]:
        session = self.db_manager.get_session()
        try:
            query = session.query(Project)
            if featured_only:
                query = query.filter(Project.is_featured.is_(True))
            return query.order_by(Project.created_at.desc(), Project.id.desc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Database error listing projects: {e}")
            return []
        finally:
            session.close()

    def get_project(self, project_id: int) -> Optional[Project]:
        session = self.db_manager.get_session()
        try:
            return session.get(Project, project_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Database error getting project {project_id}: {e}")
            return None
        finally:
            session.close()

    def create_project(self, values: Dict[str, Any]) -> Optional[Project]:
        """
        Add a project.

        Raises:
            ValueError: If title or description is missing, or a date is malformed
        """
        cleaned = _coerce_project_values(values)
        if not cleaned.get('title') or not cleaned.get('description'):
            raise ValueError("title and description are required")

        session = self.db_manager.get_session()
        try:
            project = Project(**cleaned)
            session.add(project)
            session.commit()
            session.refresh(project)
            self.logger.info(f"Created project: {project.title} (ID: {project.id})")
            return project
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Database error creating project: {e}")
            return None
        finally:
            session.close()

    def update_project(self, project_id: int, values: Dict[str, Any]) -> Optional[Project]:
        cleaned = _coerce_project_values(values)
        session = self.db_manager.get_session()
        try:
            project = session.get(Project, project_id)
            if project is None:
                return None
            for key, value in cleaned.items():
                setattr(project, key, value)
            session.commit()
            session.refresh(project)
            return project
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Database error updating project {project_id}: {e}")
            return None
        finally:
            session.close()

    def delete_project(self, project_id: int) -> bool:
        session = self.db_manager.get_session()
        try:
            project = session.get(Project, project_id)
            if project is None:
                return False
            session.delete(project)
            session.commit()
            self.logger.info(f"Deleted project {project_id}")
            return True
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Database error deleting project {project_id}: {e}")
            return False
        finally:
            session.close()

    def count_projects(self) -> int:
        session = self.db_manager.get_session()
        try:
            return session.query(Project).count()
        finally:
            session.close()

    def seed_if_empty(self) -> bool:
        """
        Insert a starter profile and project into an empty database.

        Returns:
            True if seed data was written
        """
        count = self.count_projects()
        if count > 0:
            self.logger.info(f"Database already contains {count} projects. Skipping auto-seed.")
            return False

        self.logger.info("Database appears empty. Auto-seeding...")
        if self.get_profile() is None:
            self.update_profile({
                'first_name': 'Portfolio',
                'last_name': 'Owner',
                'title': 'Software Engineer',
                'overview': 'Edit this profile through PUT /api/profile.',
                'email': 'owner@example.com',
            })
        self.create_project({
            'title': 'Portfolio Service',
            'description': 'Self-hosted portfolio API served over HTTPS.',
            'status': 'active',
            'is_featured': True,
        })
        self.logger.info("Auto-seeding complete.")
        return True
