from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from pds_dns.models.verification_db import ServiceType, VerificationStatus


class ChallengeRequest(BaseModel):
    domain: str
    service_type: ServiceType = ServiceType.PDS
    service_id: str = "api"
    publish_record: bool = False


class ChallengeResponse(BaseModel):
    verification_id: str
    domain: str
    token: str
    txt_record_name: str
    txt_record_value: str
    status: VerificationStatus
    expires_at: datetime
    instructions: str
    existing: bool = False  # True when an in-flight challenge was returned instead of a new one


class VerificationResult(BaseModel):
    verification_id: str
    domain: str
    status: VerificationStatus
    attempts: int
    attempts_remaining: int
    service_type: ServiceType
    service_id: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    message: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


class CompleteRequest(BaseModel):
    service_id: Optional[str] = None
    force: bool = False


class CompleteResponse(BaseModel):
    success: bool
    status: VerificationStatus
    domain: str
    completed_at: Optional[datetime] = None
    message: Optional[str] = None


class ExternalVerifyRequest(BaseModel):
    domain: str
    token: str
    service_type: ServiceType = ServiceType.ONELOGIN
    service_id: str = "external"


class ExternalVerifyResponse(BaseModel):
    domain: str
    status: VerificationStatus
    verified: bool
    verification_id: Optional[str] = None
    registered: bool = False  # domain was created by this proof
    message: Optional[str] = None


class NotificationPayload(BaseModel):
    verification_id: str
    domain: str
    status: VerificationStatus
    service_id: str
    completed_at: Optional[datetime] = None
