from fastapi import Request
from pds_dns.services.verification import VerificationEngine


def get_verification_engine(request: Request) -> VerificationEngine:
    return request.app.state.verification_engine
