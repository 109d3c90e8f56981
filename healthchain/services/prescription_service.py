"""
Prescription Service
Database prescriptions with a ledger mirror, and merged views of both
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from healthchain.config import settings
from healthchain.database.models import (
    Prescription, Medication, Doctor, Patient, User, ChainStatus
)
from healthchain.services.auth_service import audit_service
from healthchain.services.blockchain_service import BlockchainService, BlockchainError
from healthchain.services.presenters import prescription_dict
from healthchain.services.appointment_service import to_naive_utc

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ["valid_till", "diagnosis", "notes"]


def generate_prescription_uid() -> str:
    """Format: RX-XXXXXXXXXXXX"""
    return f"RX-{uuid.uuid4().hex[:12].upper()}"


def _medication_rows(medications: List[Dict[str, Any]]) -> List[Medication]:
    return [
        Medication(
            name=m["name"],
            dosage=m["dosage"],
            duration=m["duration"],
            additional_instructions=m.get("additional_instructions") or "",
        )
        for m in medications
    ]


class PrescriptionService:
    """Prescription issuance and retrieval"""

    # ==================== Create / update ====================

    def create_prescription(
        self,
        db: Session,
        doctor: Doctor,
        patient: Patient,
        medications: List[Dict[str, Any]],
        valid_till: Optional[datetime] = None,
        diagnosis: str = None,
        notes: str = None,
        blockchain_tx_hash: str = None,
        chain: Optional[BlockchainService] = None,
        user: User = None,
        request=None
    ) -> Prescription:
        """
        Save the prescription, then mirror it on the ledger when both parties
        have wallet addresses. A ledger failure keeps the database row and
        records the failure on it.
        """
        issue_date = datetime.utcnow()
        if valid_till is None:
            valid_till = issue_date + timedelta(days=settings.PRESCRIPTION_VALIDITY_DAYS)

        prescription = Prescription(
            prescription_uid=generate_prescription_uid(),
            doctor_id=doctor.id,
            patient_id=patient.id,
            issue_date=issue_date,
            valid_till=to_naive_utc(valid_till),
            diagnosis=diagnosis,
            notes=notes,
            blockchain_tx_hash=blockchain_tx_hash,
            chain_status=ChainStatus.CONFIRMED if blockchain_tx_hash else ChainStatus.SKIPPED,
        )
        prescription.medications = _medication_rows(medications)

        db.add(prescription)
        db.commit()
        db.refresh(prescription)

        if not blockchain_tx_hash:
            self.mirror_on_ledger(db, prescription, chain)

        audit_service.log(
            db=db,
            action="create",
            resource_type="prescription",
            resource_id=prescription.prescription_uid,
            description=f"Issued prescription to patient {patient.id}",
            new_values={
                "medications": len(medications),
                "chainStatus": prescription.chain_status.value,
            },
            user=user,
            request=request
        )
        return prescription

    def mirror_on_ledger(
        self,
        db: Session,
        prescription: Prescription,
        chain: Optional[BlockchainService]
    ) -> Prescription:
        """Issue the prescription on the ledger and record the outcome"""
        if chain is None or not prescription.patient.block_id or not prescription.doctor.block_id:
            prescription.chain_status = ChainStatus.SKIPPED
            db.commit()
            return prescription

        medications = [
            {
                "name": m.name,
                "dosage": m.dosage,
                "duration": m.duration,
                "additionalInstructions": m.additional_instructions or "",
            }
            for m in prescription.medications
        ]

        try:
            result = chain.issue_prescription(
                prescription.patient.block_id, medications, prescription.diagnosis or ""
            )
            prescription.blockchain_tx_hash = result["txHash"]
            prescription.chain_prescription_id = result.get("prescriptionId")
            prescription.chain_status = ChainStatus.CONFIRMED
            prescription.chain_error = None
        except BlockchainError as e:
            logger.warning(f"Prescription {prescription.prescription_uid} saved but not on ledger: {e}")
            prescription.chain_status = ChainStatus.FAILED
            prescription.chain_error = str(e)

        db.commit()
        db.refresh(prescription)
        return prescription

    def update_prescription(
        self,
        db: Session,
        prescription: Prescription,
        updates: Dict[str, Any],
        user: User = None,
        request=None
    ) -> Prescription:
        """Direct replacement of the supplied fields"""
        for field in UPDATABLE_FIELDS:
            if field in updates:
                value = updates[field]
                if field == "valid_till" and value is not None:
                    value = to_naive_utc(value)
                setattr(prescription, field, value)

        if updates.get("medications") is not None:
            prescription.medications = _medication_rows(updates["medications"])

        prescription.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(prescription)

        audit_service.log(
            db=db,
            action="update",
            resource_type="prescription",
            resource_id=prescription.prescription_uid,
            description="Updated prescription",
            new_values={"fields": sorted(updates.keys())},
            user=user,
            request=request
        )
        return prescription

    # ==================== Queries ====================

    def get_for_doctor(self, db: Session, uid: str, doctor: Doctor) -> Optional[Prescription]:
        return db.query(Prescription).filter(
            Prescription.prescription_uid == uid,
            Prescription.doctor_id == doctor.id
        ).first()

    def get_for_patient(self, db: Session, uid: str, patient: Patient) -> Optional[Prescription]:
        return db.query(Prescription).filter(
            Prescription.prescription_uid == uid,
            Prescription.patient_id == patient.id
        ).first()

    def list_for_doctor(self, db: Session, doctor: Doctor) -> List[Prescription]:
        return db.query(Prescription).filter(
            Prescription.doctor_id == doctor.id
        ).order_by(Prescription.issue_date.desc()).all()

    def list_for_patient(self, db: Session, patient: Patient) -> List[Prescription]:
        return db.query(Prescription).filter(
            Prescription.patient_id == patient.id
        ).order_by(Prescription.issue_date.desc()).all()

    def merged_view(
        self,
        db_prescriptions: List[Prescription],
        chain: Optional[BlockchainService],
        address: Optional[str],
        as_doctor: bool
    ) -> List[Dict[str, Any]]:
        """
        Database prescriptions plus ledger-only ones for the given wallet,
        newest first. Ledger entries already linked to a database row are
        dropped. A ledger outage yields the database results alone.
        """
        combined = [prescription_dict(p) for p in db_prescriptions]
        linked = {p.chain_prescription_id for p in db_prescriptions if p.chain_prescription_id}

        if chain is not None and address:
            try:
                for entry in chain.list_prescriptions(address, as_doctor=as_doctor):
                    if int(entry["id"]) not in linked:
                        combined.append(entry)
            except BlockchainError as e:
                logger.error(f"Error fetching prescriptions from ledger: {e}")

        combined.sort(key=lambda p: p["issueDate"] or "", reverse=True)
        return combined


_prescription_service = None


def get_prescription_service() -> PrescriptionService:
    global _prescription_service
    if _prescription_service is None:
        _prescription_service = PrescriptionService()
    return _prescription_service
