"""
Organization Settings Model
Stores per-organization configuration documents (production rules,
equipment, methods, automations) as JSON
"""
import json
import logging
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint

logger = logging.getLogger(__name__)


def create_org_setting_model(db):
    """
    Factory function to create OrganizationSetting model

    Args:
        db: SQLAlchemy database instance

    Returns:
        OrganizationSetting model class
    """

    class OrganizationSetting(db.Model):
        __tablename__ = 'organization_settings'

        id = Column(Integer, primary_key=True)
        org_id = Column(String(64), nullable=False, index=True)
        setting_key = Column(String(100), nullable=False)  # 'production', 'automations', 'company'
        setting_value = Column(Text)  # JSON document
        updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
        updated_by = Column(String(100))

        __table_args__ = (
            UniqueConstraint('org_id', 'setting_key', name='uq_org_setting_key'),
        )

        @staticmethod
        def get_setting(org_id, key, default=None):
            """
            Get a decoded setting value

            Args:
                org_id (str): Organization id
                key (str): Setting key
                default: Value returned when missing or unreadable

            Returns:
                Decoded JSON value
            """
            setting = OrganizationSetting.query.filter_by(org_id=org_id, setting_key=key).first()
            if not setting or setting.setting_value is None:
                return default
            try:
                return json.loads(setting.setting_value)
            except ValueError as e:
                logger.error(f"Invalid JSON in setting {org_id}/{key}: {str(e)}")
                return default

        @staticmethod
        def set_setting(org_id, key, value, user='system'):
            """
            Set a setting value (create or update)

            Args:
                org_id (str): Organization id
                key (str): Setting key
                value: JSON-serializable value
                user (str): User making the change

            Returns:
                OrganizationSetting: The created or updated setting
            """
            setting = OrganizationSetting.query.filter_by(org_id=org_id, setting_key=key).first()
            value_str = json.dumps(value) if value is not None else None

            if setting:
                setting.setting_value = value_str
                setting.updated_by = user
                setting.updated_at = datetime.utcnow()
            else:
                setting = OrganizationSetting(
                    org_id=org_id,
                    setting_key=key,
                    setting_value=value_str,
                    updated_by=user
                )
                db.session.add(setting)

            db.session.commit()
            return setting

        @staticmethod
        def get_org_settings(org_id):
            """All settings of an organization as one document keyed by setting_key"""
            document = {}
            for setting in OrganizationSetting.query.filter_by(org_id=org_id).all():
                if setting.setting_value is None:
                    continue
                try:
                    document[setting.setting_key] = json.loads(setting.setting_value)
                except ValueError as e:
                    logger.error(f"Invalid JSON in setting {org_id}/{setting.setting_key}: {str(e)}")
            return document

        @staticmethod
        def org_ids():
            return [row[0] for row in db.session.query(OrganizationSetting.org_id).distinct().all()]

    return OrganizationSetting
