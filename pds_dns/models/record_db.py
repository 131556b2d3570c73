from sqlalchemy import Column, String, Enum, DateTime, Integer, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship
from pds_dns.utils.time_utils import utcnow
import enum

Base = declarative_base()

class RecordType(enum.Enum):
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    SRV = "SRV"
    NS = "NS"

class Domain(Base):
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(253), nullable=False, unique=True, index=True)  # always lowercase
    description = Column(String, nullable=True)
    owner = Column(String, nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime, nullable=True)
    source = Column(String, nullable=False, default="internal")  # or the provider that self-registered it
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    records = relationship("DNSRecord", back_populates="domain", cascade="all, delete-orphan")
    verifications = relationship("Verification", back_populates="domain", cascade="all, delete-orphan")

class DNSRecord(Base):
    __tablename__ = "dns_records"
    __table_args__ = (
        Index("ix_dns_records_fqdn_type_active", "fqdn", "type", "active"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_id = Column(Integer, ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(253), nullable=False, default="@")  # label relative to the domain, "@" for apex
    fqdn = Column(String(253), nullable=False)  # lowercase, no trailing dot; what the responder matches on
    type = Column(Enum(RecordType), nullable=False)
    value = Column(Text, nullable=False)
    ttl = Column(Integer, nullable=False, default=300)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    domain = relationship("Domain", back_populates="records")
