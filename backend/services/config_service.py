import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import NotFoundError
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.notification import Notification, NotificationStatus
from backend.models.patient import Patient
from backend.models.professional import Professional
from backend.models.system_config import SystemConfig
from backend.schemas.config import ClinicConfigUpdate, ConfigItem

logger = logging.getLogger(__name__)

DEFAULT_CONFIGS = [
    ('CLINIC_NAME', 'Dental Clinic', 'Clinic name'),
    ('CLINIC_ADDRESS', '', 'Clinic address'),
    ('CLINIC_PHONE', '', 'Clinic phone'),
    ('CLINIC_EMAIL', '', 'Clinic email'),
    ('REMINDER_HOURS_BEFORE', '24', 'Hours before the appointment to send the reminder'),
    ('MAX_APPOINTMENTS_PER_DAY', '20', 'Maximum number of appointments per day'),
    ('DEFAULT_APPOINTMENT_DURATION', '30', 'Default appointment duration in minutes'),
    ('ENABLE_WHATSAPP_NOTIFICATIONS', 'true', 'Enable WhatsApp notifications'),
    ('ENABLE_EMAIL_NOTIFICATIONS', 'true', 'Enable email notifications'),
]

# clinic field -> (config key, description)
CLINIC_KEYS = {
    'name': ('CLINIC_NAME', 'Clinic name'),
    'address': ('CLINIC_ADDRESS', 'Clinic address'),
    'phone': ('CLINIC_PHONE', 'Clinic phone'),
    'email': ('CLINIC_EMAIL', 'Clinic email'),
    'website': ('CLINIC_WEBSITE', 'Clinic website'),
    'description': ('CLINIC_DESCRIPTION', 'Clinic description'),
}

RECENT_ACTIVITY_HOURS = 24
RECENT_ACTIVITY_LIMIT = 10


class ConfigService:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> list[SystemConfig]:
        return self.db.query(SystemConfig).order_by(SystemConfig.key.asc()).all()

    def get_by_key(self, key: str) -> SystemConfig:
        config = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if config is None:
            raise NotFoundError(f'Configuration "{key}" not found', code='CONFIG_NOT_FOUND')
        return config

    def get_value(self, key: str, default: str | None = None) -> str | None:
        config = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if config is None or not config.value:
            return default
        return config.value

    def upsert(self, key: str, value: str, description: str | None = None, commit: bool = True) -> SystemConfig:
        config = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if config is None:
            config = SystemConfig(key=key, value=value, description=description)
            self.db.add(config)
        else:
            config.value = value
            if description:
                config.description = description

        if commit:
            self.db.commit()
            self.db.refresh(config)
            logger.info('Configuration updated: %s = %s', key, value)
        return config

    def bulk_upsert(self, items: list[ConfigItem]) -> list[SystemConfig]:
        configs = [self.upsert(item.key, item.value, item.description, commit=False) for item in items]
        self.db.commit()
        for config in configs:
            self.db.refresh(config)

        logger.info('%s configurations updated', len(configs))
        return configs

    def delete(self, key: str) -> None:
        config = self.get_by_key(key)
        self.db.delete(config)
        self.db.commit()
        logger.info('Configuration deleted: %s', key)

    def get_clinic(self) -> dict[str, str]:
        keys = [key for key, _ in CLINIC_KEYS.values()]
        rows = self.db.query(SystemConfig).filter(SystemConfig.key.in_(keys)).all()
        values = {row.key: row.value for row in rows}

        clinic = {field: values.get(key) or '' for field, (key, _) in CLINIC_KEYS.items()}
        clinic['name'] = clinic['name'] or 'Dental Clinic'
        return clinic

    def update_clinic(self, data: ClinicConfigUpdate) -> dict[str, str]:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            key, description = CLINIC_KEYS[field]
            self.upsert(key, str(value), description, commit=False)
        self.db.commit()

        logger.info('Clinic configuration updated: %s', ', '.join(sorted(changes)) or 'no changes')
        return self.get_clinic()

    def by_category(self, category: str) -> list[SystemConfig]:
        prefix = f'{category.upper()}_'
        return (
            self.db.query(SystemConfig)
            .filter(SystemConfig.key.startswith(prefix, autoescape=True))
            .order_by(SystemConfig.key.asc())
            .all()
        )

    def reset_defaults(self) -> list[SystemConfig]:
        """Drop every key and write the default set back."""
        self.db.query(SystemConfig).delete()
        self.db.flush()
        configs = [
            self.upsert(key, value, description, commit=False)
            for key, value, description in DEFAULT_CONFIGS
        ]
        self.db.commit()

        logger.info('Configuration reset to defaults')
        return configs

    def export(self) -> list[SystemConfig]:
        configs = self.get_all()
        logger.info('Configuration exported: %s keys', len(configs))
        return configs

    def import_configs(self, items: list[ConfigItem]) -> list[SystemConfig]:
        configs = self.bulk_upsert(items)
        logger.info('Configuration imported: %s keys', len(configs))
        return configs

    def dashboard(self) -> dict:
        today = date.today()
        start_of_day = datetime.combine(today, time.min)
        # Weeks start on Sunday, matching working-hour day numbering.
        start_of_week = start_of_day - timedelta(days=(today.weekday() + 1) % 7)
        start_of_month = datetime.combine(today.replace(day=1), time.min)

        appointments = self.db.query(Appointment)
        appointment_counts = dict(
            self.db.query(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status).all()
        )
        notification_counts = dict(
            self.db.query(Notification.status, func.count(Notification.id)).group_by(Notification.status).all()
        )

        return {
            'today_appointments': appointments.filter(Appointment.start_time >= start_of_day).count(),
            'week_appointments': appointments.filter(Appointment.start_time >= start_of_week).count(),
            'month_appointments': appointments.filter(Appointment.start_time >= start_of_month).count(),
            'total_patients': self.db.query(Patient).count(),
            'active_patients': self.db.query(Patient).filter(Patient.is_active.is_(True)).count(),
            'total_professionals': self.db.query(Professional).count(),
            'active_professionals': self.db.query(Professional).filter(Professional.is_active.is_(True)).count(),
            'appointment_stats': {
                'total': sum(appointment_counts.values()),
                **{status.value.lower(): appointment_counts.get(status, 0) for status in AppointmentStatus},
            },
            'notification_stats': {
                'total': sum(notification_counts.values()),
                **{status.value.lower(): notification_counts.get(status, 0) for status in NotificationStatus},
            },
            'recent_activity': self.recent_activity(),
        }

    def recent_activity(self) -> list[dict]:
        since = datetime.now() - timedelta(hours=RECENT_ACTIVITY_HOURS)

        recent_appointments = (
            self.db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.professional))
            .filter(Appointment.created_at >= since)
            .order_by(Appointment.created_at.desc())
            .limit(5)
            .all()
        )
        recent_patients = (
            self.db.query(Patient)
            .filter(Patient.created_at >= since)
            .order_by(Patient.created_at.desc())
            .limit(3)
            .all()
        )

        activity = [
            {
                'type': 'appointment',
                'description': f'New appointment: {a.patient.full_name} with {a.professional.full_name}',
                'timestamp': a.created_at,
            }
            for a in recent_appointments
        ]
        activity += [
            {'type': 'patient', 'description': f'New patient: {p.full_name}', 'timestamp': p.created_at}
            for p in recent_patients
        ]
        activity.sort(key=lambda item: item['timestamp'], reverse=True)
        return activity[:RECENT_ACTIVITY_LIMIT]
