"""
Database Package
Provides database models, connection management, and session handling
"""
from healthchain.database.connection import get_db, db_manager
from healthchain.database.models import (
    Base, User, UserRole, Patient, Doctor, Appointment, AppointmentStatus,
    Prescription, Medication, AccessRequest, AccessRequestStatus,
    AnonymousPrescription, ChainStatus, AuditLog
)


__all__ = [
    'get_db', 'db_manager',
    'Base', 'User', 'UserRole', 'Patient', 'Doctor', 'Appointment', 'AppointmentStatus',
    'Prescription', 'Medication', 'AccessRequest', 'AccessRequestStatus',
    'AnonymousPrescription', 'ChainStatus', 'AuditLog'
]
