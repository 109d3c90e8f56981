"""
Anonymous Prescription Service
Issues prescriptions bound to a patient only through a hash commitment and
lets the holder of the secret key prove the prescription is theirs.
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from healthchain.database.models import AnonymousPrescription, ChainStatus, Doctor, User
from healthchain.services import commitment_service
from healthchain.services.auth_service import audit_service
from healthchain.services.blockchain_service import BlockchainService, BlockchainError
from healthchain.services.presenters import anonymous_prescription_dict

logger = logging.getLogger(__name__)


class AnonymousPrescriptionService:
    """Commitment-backed prescriptions"""

    def issue(
        self,
        db: Session,
        doctor: Doctor,
        medications: List[Dict[str, Any]],
        diagnosis: str,
        secret_key: Optional[str] = None,
        chain: Optional[BlockchainService] = None,
        user: User = None,
        request=None
    ) -> Dict[str, Any]:
        """
        Derive the commitment, store the record and submit it on the ledger.

        Returns the record and, when it was generated here, the secret key.
        The secret key is never stored.
        """
        if not doctor.block_id:
            raise ValueError("Doctor has no wallet address registered")

        generated = secret_key is None
        if generated:
            secret_key = commitment_service.generate_secret_key()

        result = commitment_service.create_commitment(
            medications, diagnosis, doctor.block_id, secret_key
        )

        record = AnonymousPrescription(
            doctor_id=doctor.id,
            medications=[commitment_service.normalize_medication(m) for m in medications],
            diagnosis=diagnosis,
            doctor_ref=doctor.block_id,
            commitment=result.commitment,
            commitment_timestamp=result.timestamp,
            chain_status=ChainStatus.SKIPPED,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        if chain is not None:
            self.submit_to_ledger(db, record, chain)

        audit_service.log(
            db=db,
            action="create",
            resource_type="anonymous_prescription",
            resource_id=record.id,
            description="Issued anonymous prescription",
            new_values={"commitment": record.commitment, "chainStatus": record.chain_status.value},
            user=user,
            request=request
        )

        return {
            "record": record,
            "secretKey": secret_key if generated else None,
            "commitment": result,
        }

    def submit_to_ledger(
        self,
        db: Session,
        record: AnonymousPrescription,
        chain: BlockchainService
    ) -> AnonymousPrescription:
        words = commitment_service.to_u32_words(record.commitment)
        proof = commitment_service.placeholder_proof(record.commitment)
        try:
            outcome = chain.issue_anonymous_prescription(record.medications, record.diagnosis, words, proof)
            record.blockchain_tx_hash = outcome["txHash"]
            record.chain_prescription_id = outcome.get("prescriptionId")
            record.zk_id = outcome.get("zkId")
            record.chain_status = ChainStatus.CONFIRMED
            record.chain_error = None
        except BlockchainError as e:
            logger.warning(f"Anonymous prescription {record.id} saved but not on ledger: {e}")
            record.chain_status = ChainStatus.FAILED
            record.chain_error = str(e)

        db.commit()
        db.refresh(record)
        return record

    def list_for_doctor(self, db: Session, doctor: Doctor) -> List[AnonymousPrescription]:
        return db.query(AnonymousPrescription).filter(
            AnonymousPrescription.doctor_id == doctor.id
        ).order_by(AnonymousPrescription.created_at.desc()).all()

    def get(self, db: Session, record_id: int) -> Optional[AnonymousPrescription]:
        return db.query(AnonymousPrescription).filter(AnonymousPrescription.id == record_id).first()

    def ledger_state(
        self,
        record: AnonymousPrescription,
        chain: Optional[BlockchainService]
    ) -> Dict[str, Any]:
        """Verifier contract view of the record, when it is on the ledger"""
        state = {
            "isVerified": None,
            "ledgerCommitment": None,
            "ledgerTimestamp": None,
            "ledgerDiagnosis": None,
            "ledgerIssueDate": None,
        }
        if chain is None:
            return state

        if record.chain_prescription_id is not None:
            try:
                details = chain.get_prescription_details(record.chain_prescription_id)
                state["ledgerDiagnosis"] = details["diagnosis"]
                state["ledgerIssueDate"] = details["issueDate"]
            except BlockchainError as e:
                logger.warning(f"Could not read ledger details for anonymous prescription {record.id}: {e}")

        if record.zk_id is None:
            return state

        try:
            state["isVerified"] = chain.verify_anonymous_prescription(record.zk_id)
            details = chain.get_anonymous_prescription(record.zk_id)
            state["ledgerCommitment"] = commitment_service.from_u32_words(details["commitment"])
            state["ledgerTimestamp"] = details["timestamp"]
        except (BlockchainError, ValueError) as e:
            logger.warning(f"Could not read ledger state for anonymous prescription {record.id}: {e}")
        return state

    def describe(self, record: AnonymousPrescription, chain: Optional[BlockchainService]) -> Dict[str, Any]:
        data = anonymous_prescription_dict(record)
        data.update(self.ledger_state(record, chain))
        return data

    def verify_ownership(
        self,
        db: Session,
        record_id: int,
        secret_key: str,
        chain: Optional[BlockchainService] = None,
        user: User = None,
        request=None
    ) -> Dict[str, Any]:
        """
        Re-derive the commitment from the disclosed secret key and compare it
        with the reference commitment: the ledger's when the record is there
        and readable, otherwise the stored one.
        """
        failed = {"isValid": False, "commitment": None, "timestamp": None}

        record = self.get(db, record_id)
        if record is None:
            return failed

        reference = record.commitment
        timestamp = None
        source = "database"
        if chain is not None and record.zk_id is not None:
            state = self.ledger_state(record, chain)
            if state["isVerified"] is False:
                return failed
            if state["ledgerCommitment"]:
                reference = state["ledgerCommitment"]
                timestamp = state["ledgerTimestamp"]
                source = "ledger"

        is_valid = commitment_service.verify_commitment(
            reference,
            record.medications,
            record.diagnosis,
            record.doctor_ref,
            record.commitment_timestamp,
            secret_key,
        )

        audit_service.log(
            db=db,
            action="verify_ownership",
            resource_type="anonymous_prescription",
            resource_id=record.id,
            description=f"Ownership check against {source} commitment",
            user=user,
            request=request,
            success=is_valid
        )

        if not is_valid:
            return failed

        return {
            "isValid": True,
            "commitment": reference,
            "commitmentWords": commitment_service.to_u32_words(reference),
            "timestamp": timestamp or record.created_at.isoformat(),
            "source": source,
            "prescription": {
                "medications": record.medications,
                "diagnosis": record.diagnosis,
            },
        }


_anonymous_prescription_service = None


def get_anonymous_prescription_service() -> AnonymousPrescriptionService:
    global _anonymous_prescription_service
    if _anonymous_prescription_service is None:
        _anonymous_prescription_service = AnonymousPrescriptionService()
    return _anonymous_prescription_service
