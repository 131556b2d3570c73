from sqlalchemy import Column, String, Enum, DateTime, Integer, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from pds_dns.models.record_db import Base
from pds_dns.utils.time_utils import utcnow
import enum
import uuid


class VerificationStatus(enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"
    FORCE_COMPLETED = "force_completed"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.PENDING


class ServiceType(enum.Enum):
    PDS = "pds"
    ONELOGIN = "onelogin"
    GOVERNMENT = "government"
    OTHER = "other"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Verification(Base):
    __tablename__ = "verifications"
    __table_args__ = (
        # At most one pending challenge per (domain, requesting service)
        Index(
            "uq_verifications_pending_per_service",
            "domain_id",
            "service_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    domain_id = Column(Integer, ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)  # immutable once issued
    txt_record = Column(String(255), nullable=False)
    status = Column(
        Enum(VerificationStatus, name="verification_status", values_callable=_values),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    attempts = Column(Integer, nullable=False, default=0)
    service_type = Column(
        Enum(ServiceType, name="service_type", values_callable=_values),
        nullable=False,
        default=ServiceType.PDS,
    )
    service_id = Column(String, nullable=False)
    source = Column(String, nullable=False, default="challenge")
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    last_checked_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)

    domain = relationship("Domain", back_populates="verifications", lazy="joined")
