# Services Package
from .auth_service import AuthService, AuditService, auth_service, audit_service
from .blockchain_service import BlockchainService, BlockchainError, get_blockchain_service
from .registration_service import RegistrationService, get_registration_service
from .appointment_service import AppointmentService, get_appointment_service
from .prescription_service import PrescriptionService, get_prescription_service
from .anonymous_prescription_service import AnonymousPrescriptionService, get_anonymous_prescription_service
from .access_service import AccessService, get_access_service

__all__ = [
    'AuthService',
    'AuditService',
    'auth_service',
    'audit_service',
    'BlockchainService',
    'BlockchainError',
    'get_blockchain_service',
    'RegistrationService',
    'get_registration_service',
    'AppointmentService',
    'get_appointment_service',
    'PrescriptionService',
    'get_prescription_service',
    'AnonymousPrescriptionService',
    'get_anonymous_prescription_service',
    'AccessService',
    'get_access_service',
]
