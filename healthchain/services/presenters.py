"""
JSON presentation of ORM records
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from healthchain.database.models import (
    User, Patient, Doctor, Appointment, Prescription, Medication,
    AccessRequest, AnonymousPrescription, AuditLog
)


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def amount(value) -> Optional[str]:
    """Token amounts travel as decimal strings"""
    if value is None:
        return None
    return format(Decimal(value).normalize(), "f")


def user_brief(user: Optional[User]) -> Dict[str, Any]:
    if user is None:
        return {"name": None, "email": None}
    return {"name": user.name, "email": user.email}


def user_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": user.role.value,
        "isActive": user.is_active,
        "lastLogin": iso(user.last_login),
    }


def patient_dict(patient: Patient) -> Dict[str, Any]:
    return {
        "id": patient.id,
        "userId": patient.user_id,
        "gender": patient.gender,
        "dateOfBirth": iso(patient.date_of_birth),
        "bloodType": patient.blood_type,
        "chronicDiseases": patient.chronic_diseases or [],
        "emergencyContact": patient.emergency_contact,
        "blockId": patient.block_id,
        "user": user_brief(patient.user),
    }


def doctor_dict(doctor: Doctor, include_private: bool = False) -> Dict[str, Any]:
    data = {
        "id": doctor.id,
        "userId": doctor.user_id,
        "specialization": doctor.specialization,
        "licenseNumber": doctor.license_number,
        "fees": amount(doctor.fees),
        "verified": bool(doctor.verified),
        "blockId": doctor.block_id,
        "user": user_brief(doctor.user),
    }
    if include_private:
        data.update({
            "phoneNumber": doctor.phone_number,
            "aadharNumber": doctor.aadhar_number,
            "mbbsId": doctor.mbbs_id,
        })
    return data


def appointment_dict(appointment: Appointment) -> Dict[str, Any]:
    return {
        "id": appointment.id,
        "doctorId": appointment.doctor_id,
        "patientId": appointment.patient_id,
        "startTime": iso(appointment.start_time),
        "endTime": iso(appointment.end_time),
        "status": appointment.status.value,
        "notes": appointment.notes,
        "createdAt": iso(appointment.created_at),
        "doctor": doctor_dict(appointment.doctor),
        "patient": patient_dict(appointment.patient),
    }


def medication_dict(medication: Medication) -> Dict[str, Any]:
    return {
        "id": medication.id,
        "name": medication.name,
        "dosage": medication.dosage,
        "duration": medication.duration,
        "additionalInstructions": medication.additional_instructions or "",
    }


def prescription_dict(prescription: Prescription) -> Dict[str, Any]:
    return {
        "id": prescription.prescription_uid,
        "issueDate": iso(prescription.issue_date),
        "validTill": iso(prescription.valid_till),
        "diagnosis": prescription.diagnosis,
        "notes": prescription.notes or "",
        "medications": [medication_dict(m) for m in prescription.medications],
        "patient": patient_dict(prescription.patient),
        "doctor": doctor_dict(prescription.doctor),
        "blockchainTxHash": prescription.blockchain_tx_hash,
        "chainPrescriptionId": prescription.chain_prescription_id,
        "chainStatus": prescription.chain_status.value if prescription.chain_status else None,
        "chainError": prescription.chain_error,
        "blockchainOnly": False,
    }


def access_request_dict(access_request: AccessRequest) -> Dict[str, Any]:
    return {
        "id": access_request.id,
        "doctorId": access_request.doctor_id,
        "patientId": access_request.patient_id,
        "status": access_request.status.value,
        "createdAt": iso(access_request.created_at),
        "updatedAt": iso(access_request.updated_at),
        "doctor": doctor_dict(access_request.doctor),
        "patient": patient_dict(access_request.patient),
    }


def anonymous_prescription_dict(record: AnonymousPrescription) -> Dict[str, Any]:
    return {
        "id": record.id,
        "medications": record.medications,
        "diagnosis": record.diagnosis,
        "doctorId": record.doctor_ref,
        "commitment": record.commitment,
        "commitmentTimestamp": record.commitment_timestamp,
        "chainPrescriptionId": record.chain_prescription_id,
        "zkId": record.zk_id,
        "blockchainTxHash": record.blockchain_tx_hash,
        "chainStatus": record.chain_status.value if record.chain_status else None,
        "chainError": record.chain_error,
        "createdAt": iso(record.created_at),
    }


def audit_log_dict(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": iso(entry.timestamp),
        "email": entry.email,
        "userRole": entry.user_role,
        "ipAddress": entry.ip_address,
        "action": entry.action,
        "resourceType": entry.resource_type,
        "resourceId": entry.resource_id,
        "description": entry.description,
        "success": entry.success,
        "errorMessage": entry.error_message,
    }
