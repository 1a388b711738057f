"""
Settings repository - Data access layer for Settings model.
Handles all database queries related to settings.
"""
from sqlalchemy.orm import Session

from points_tracker.models import Settings
from points_tracker.schemas import SettingsUpdate


class SettingsRepository:
    """Repository for Settings data access"""

    @staticmethod
    def get(db: Session) -> Settings:
        """
        Get settings (creates with defaults if not exists).

        Returns:
            Settings object
        """
        settings = db.query(Settings).first()
        if not settings:
            settings = Settings()
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

    @staticmethod
    def update(db: Session, settings_update: SettingsUpdate) -> Settings:
        """
        Apply the fields set in settings_update.

        Args:
            db: Database session
            settings_update: Partial settings payload

        Returns:
            Updated settings
        """
        settings = SettingsRepository.get(db)
        for key, value in settings_update.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(settings, key, value)
        db.commit()
        db.refresh(settings)
        return settings
