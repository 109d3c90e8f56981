"""
Registration Service
Patient and doctor profiles, mirrored onto the ledger when configured
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from healthchain.database.models import User, UserRole, Patient, Doctor
from healthchain.services.auth_service import audit_service
from healthchain.services.blockchain_service import BlockchainService, BlockchainError

logger = logging.getLogger(__name__)

ROLE_DASHBOARDS = {
    UserRole.DOCTOR: "/doctor",
    UserRole.PATIENT: "/dashboard",
    UserRole.ADMIN: "/admin",
    UserRole.UNSET: "/verification",
}

PATIENT_FIELDS = [
    "gender", "date_of_birth", "blood_type", "chronic_diseases",
    "emergency_contact", "block_id"
]


def _ledger_outcome(action, label: str) -> Dict[str, Any]:
    """Run a ledger write and report its outcome without failing the caller"""
    try:
        tx_hash = action()
        return {"status": "confirmed", "txHash": tx_hash}
    except BlockchainError as e:
        logger.warning(f"{label} not mirrored on ledger: {e}")
        return {"status": "failed", "error": str(e)}


class RegistrationService:
    """Patient/doctor profile management"""

    # ==================== Lookups ====================

    def get_patient_for_user(self, db: Session, user: User) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.user_id == user.id).first()

    def get_doctor_for_user(self, db: Session, user: User) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.user_id == user.id).first()

    def get_patient(self, db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    def get_doctor(self, db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    def dashboard_for(self, user: User) -> str:
        return ROLE_DASHBOARDS.get(user.role, "/verification")

    # ==================== Patients ====================

    def register_patient(
        self,
        db: Session,
        user: User,
        profile: Dict[str, Any],
        chain: Optional[BlockchainService] = None,
        request=None
    ) -> Dict[str, Any]:
        """Create the caller's patient profile and set their role"""
        if user.role == UserRole.DOCTOR or self.get_doctor_for_user(db, user):
            raise ValueError("Doctors cannot register as patients")
        if self.get_patient_for_user(db, user):
            raise ValueError("Patient profile already exists")

        patient = Patient(user_id=user.id)
        for field in PATIENT_FIELDS:
            if field in profile:
                setattr(patient, field, profile[field])
        if patient.chronic_diseases is None:
            patient.chronic_diseases = []

        user.role = UserRole.PATIENT
        db.add(patient)
        db.commit()
        db.refresh(patient)

        ledger = {"status": "skipped"}
        if chain is not None and patient.block_id:
            ledger = _ledger_outcome(
                lambda: chain.register_patient(user.name or user.email), "registerPatient"
            )

        audit_service.log(
            db=db,
            action="register",
            resource_type="patient",
            resource_id=patient.id,
            description=f"Registered patient profile for {user.email}",
            new_values={"blockId": patient.block_id, "ledger": ledger["status"]},
            user=user,
            request=request
        )

        return {"patient": patient, "ledger": ledger}

    def ensure_patient_profile(self, db: Session, user: User) -> Patient:
        """Return the caller's patient profile, creating a placeholder one if missing"""
        patient = self.get_patient_for_user(db, user)
        if patient:
            return patient

        patient = Patient(
            user_id=user.id,
            gender="Not specified",
            date_of_birth=datetime(1990, 1, 1),
            blood_type="Unknown",
            chronic_diseases=[],
            emergency_contact="Not provided",
        )
        db.add(patient)
        if user.role == UserRole.UNSET:
            user.role = UserRole.PATIENT
        db.commit()
        db.refresh(patient)
        logger.info(f"Created placeholder patient profile for user {user.id}")
        return patient

    def update_patient(
        self,
        db: Session,
        patient: Patient,
        updates: Dict[str, Any],
        user: User = None,
        request=None
    ) -> Patient:
        """Direct field replacement of a patient profile"""
        for field in PATIENT_FIELDS:
            if field in updates:
                setattr(patient, field, updates[field])

        patient.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(patient)

        audit_service.log(
            db=db,
            action="update",
            resource_type="patient",
            resource_id=patient.id,
            description="Updated patient profile",
            new_values={k: str(v) for k, v in updates.items()},
            user=user,
            request=request
        )
        return patient

    def list_patients(self, db: Session, address: str = None) -> List[Patient]:
        """All patients ordered by name, or those bound to a wallet address"""
        q = db.query(Patient).join(User, Patient.user_id == User.id)
        if address:
            return q.filter(func.lower(Patient.block_id) == address.lower()).all()
        return q.order_by(User.name.asc()).all()

    # ==================== Doctors ====================

    def register_doctor(
        self,
        db: Session,
        user: User,
        profile: Dict[str, Any],
        chain: Optional[BlockchainService] = None,
        request=None
    ) -> Dict[str, Any]:
        """Create the caller's doctor profile and set their role"""
        if self.get_doctor_for_user(db, user):
            raise ValueError("Doctor profile already exists")
        if user.role == UserRole.PATIENT or self.get_patient_for_user(db, user):
            raise ValueError("Patients cannot register as doctors")
        if db.query(Doctor).filter(func.lower(Doctor.block_id) == profile["block_id"].lower()).first():
            raise ValueError("Wallet address already registered to another doctor")

        if profile.get("name"):
            user.name = profile["name"]

        doctor = Doctor(
            user_id=user.id,
            phone_number=profile.get("phone_number"),
            aadhar_number=profile.get("aadhar_number"),
            mbbs_id=profile.get("mbbs_id"),
            specialization=profile.get("specialization"),
            license_number=profile.get("license_number") or profile.get("mbbs_id"),
            fees=Decimal(profile.get("fees") or 0),
            block_id=profile["block_id"],
            verified=False,
        )
        user.role = UserRole.DOCTOR
        db.add(doctor)
        db.commit()
        db.refresh(doctor)

        ledger = {"status": "skipped"}
        if chain is not None:
            ledger = _ledger_outcome(
                lambda: chain.register_doctor(user.name or user.email, doctor.specialization, doctor.fees),
                "registerDoctor"
            )

        audit_service.log(
            db=db,
            action="register",
            resource_type="doctor",
            resource_id=doctor.id,
            description=f"Registered doctor profile for {user.email}",
            new_values={"blockId": doctor.block_id, "ledger": ledger["status"]},
            user=user,
            request=request
        )

        return {"doctor": doctor, "ledger": ledger}

    def list_doctors(self, db: Session, verified_only: bool = False) -> List[Doctor]:
        q = db.query(Doctor).join(User, Doctor.user_id == User.id)
        if verified_only:
            q = q.filter(Doctor.verified == True)
        return q.order_by(User.name.asc()).all()

    def set_doctor_verified(
        self,
        db: Session,
        doctor: Doctor,
        verified: bool,
        user: User = None,
        request=None
    ) -> Doctor:
        doctor.verified = verified
        db.commit()
        db.refresh(doctor)

        audit_service.log(
            db=db,
            action="verify" if verified else "unverify",
            resource_type="doctor",
            resource_id=doctor.id,
            description=f"Set doctor {doctor.id} verified={verified}",
            user=user,
            request=request
        )
        return doctor


_registration_service = None


def get_registration_service() -> RegistrationService:
    global _registration_service
    if _registration_service is None:
        _registration_service = RegistrationService()
    return _registration_service
