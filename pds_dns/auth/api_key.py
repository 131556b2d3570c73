from fastapi import Header, HTTPException
from pds_dns.core.config import settings

API_KEY_NAME = "X-API-Key"

async def verify_api_key(x_api_key: str = Header(..., alias=API_KEY_NAME)):
    if x_api_key != settings.API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API Key")
