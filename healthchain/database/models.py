"""
Database Models
SQLAlchemy models for patient/doctor records, appointments and prescriptions
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Numeric,
    ForeignKey, JSON, Enum as SQLEnum, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base
import enum

Base = declarative_base()


class UserRole(enum.Enum):
    UNSET = "unset"
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class AppointmentStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"


class AccessRequestStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class ChainStatus(enum.Enum):
    """Outcome of the ledger half of a dual write"""
    SKIPPED = "skipped"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class User(Base):
    """Application accounts"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100))
    image = Column(String(500))
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.UNSET)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="user", uselist=False)
    doctor = relationship("Doctor", back_populates="user", uselist=False)
    audit_logs = relationship("AuditLog", back_populates="user")

    __table_args__ = (
        Index('idx_user_role', 'role'),
    )


class Patient(Base):
    """Patient profile attached to a user"""
    __tablename__ = 'patients'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)

    # Demographics
    gender = Column(String(20))
    date_of_birth = Column(DateTime)
    blood_type = Column(String(10))
    chronic_diseases = Column(JSON, default=list)
    emergency_contact = Column(String(200))

    # Wallet address on the ledger
    block_id = Column(String(64), index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="patient")
    appointments = relationship("Appointment", back_populates="patient")
    prescriptions = relationship("Prescription", back_populates="patient", order_by="desc(Prescription.issue_date)")
    access_requests = relationship("AccessRequest", back_populates="patient")


class Doctor(Base):
    """Doctor profile attached to a user"""
    __tablename__ = 'doctors'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)

    phone_number = Column(String(20))
    aadhar_number = Column(String(20))
    mbbs_id = Column(String(50))
    specialization = Column(String(100))
    license_number = Column(String(50))
    fees = Column(Numeric(36, 18), default=0)  # HTK
    verified = Column(Boolean, default=False)

    # Wallet address on the ledger
    block_id = Column(String(64), index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")
    prescriptions = relationship("Prescription", back_populates="doctor")
    anonymous_prescriptions = relationship("AnonymousPrescription", back_populates="doctor")
    access_requests = relationship("AccessRequest", back_populates="doctor")


class Appointment(Base):
    """Doctor/patient appointment slots"""
    __tablename__ = 'appointments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(Integer, ForeignKey('doctors.id'), nullable=False)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    doctor = relationship("Doctor", back_populates="appointments")
    patient = relationship("Patient", back_populates="appointments")

    __table_args__ = (
        Index('idx_appointment_doctor_time', 'doctor_id', 'start_time', 'end_time'),
        Index('idx_appointment_patient_time', 'patient_id', 'start_time', 'end_time'),
        Index('idx_appointment_status', 'status'),
    )


class Prescription(Base):
    """Prescriptions issued by a doctor to a patient"""
    __tablename__ = 'prescriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_uid = Column(String(50), unique=True, nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey('doctors.id'), nullable=False)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)

    issue_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    valid_till = Column(DateTime, nullable=False)
    diagnosis = Column(Text)
    notes = Column(Text)

    # Ledger mirror
    blockchain_tx_hash = Column(String(80))
    chain_prescription_id = Column(Integer, index=True)
    chain_status = Column(SQLEnum(ChainStatus), default=ChainStatus.SKIPPED)
    chain_error = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    doctor = relationship("Doctor", back_populates="prescriptions")
    patient = relationship("Patient", back_populates="prescriptions")
    medications = relationship("Medication", back_populates="prescription", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_prescription_issue_date', 'issue_date'),
        Index('idx_prescription_doctor', 'doctor_id'),
        Index('idx_prescription_patient', 'patient_id'),
    )


class Medication(Base):
    """Medications in a prescription"""
    __tablename__ = 'medications'

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey('prescriptions.id'), nullable=False)

    name = Column(String(200), nullable=False)
    dosage = Column(String(100), nullable=False)
    duration = Column(String(100), nullable=False)
    additional_instructions = Column(Text, default="")

    prescription = relationship("Prescription", back_populates="medications")


class AccessRequest(Base):
    """A doctor's request to access a patient's records"""
    __tablename__ = 'access_requests'

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(Integer, ForeignKey('doctors.id'), nullable=False)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)
    status = Column(SQLEnum(AccessRequestStatus), nullable=False, default=AccessRequestStatus.PENDING)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    doctor = relationship("Doctor", back_populates="access_requests")
    patient = relationship("Patient", back_populates="access_requests")

    __table_args__ = (
        UniqueConstraint('doctor_id', 'patient_id', name='uq_access_doctor_patient'),
    )


class AnonymousPrescription(Base):
    """Prescription whose patient is bound only through a commitment"""
    __tablename__ = 'anonymous_prescriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(Integer, ForeignKey('doctors.id'), nullable=False)

    medications = Column(JSON, nullable=False)
    diagnosis = Column(Text, nullable=False)
    doctor_ref = Column(String(64), nullable=False)  # doctorId bound into the commitment
    commitment = Column(String(66), nullable=False, index=True)
    commitment_timestamp = Column(Integer, nullable=False)

    # Ledger mirror
    chain_prescription_id = Column(Integer)
    zk_id = Column(Integer)
    blockchain_tx_hash = Column(String(80))
    chain_status = Column(SQLEnum(ChainStatus), default=ChainStatus.SKIPPED)
    chain_error = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)

    doctor = relationship("Doctor", back_populates="anonymous_prescriptions")


class AuditLog(Base):
    """Audit trail of record access and changes"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Who
    user_id = Column(Integer, ForeignKey('users.id'))
    email = Column(String(100))
    user_role = Column(String(50))
    ip_address = Column(String(50))
    user_agent = Column(String(500))

    # What
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(50))

    # Details
    description = Column(Text)
    new_values = Column(JSON)

    # When
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Status
    success = Column(Boolean, default=True)
    error_message = Column(Text)

    user = relationship("User", back_populates="audit_logs")

    __table_args__ = (
        Index('idx_audit_timestamp', 'timestamp'),
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )
