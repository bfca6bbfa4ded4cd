from fastapi import Depends, Header, HTTPException
import hashlib
import logging

from progress_wizard.services.api_client import MiraeClient

logger = logging.getLogger(__name__)


def api_client_factory():
    return MiraeClient


async def user_api_context(authorization: str = Header(...), client_factory=Depends(api_client_factory)):
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid token format")

    token = authorization.split(" ")[1]
    if not token:
        raise HTTPException(status_code=401, detail="Invalid token format")

    def new_client():
        try:
            return client_factory(token)
        except ValueError as e:
            logger.error(f"Mirae API client configuration error: {str(e)}")
            raise HTTPException(status_code=500, detail="Server configuration error")

    # wizards are keyed by token digest
    owner = hashlib.sha256(token.encode()).hexdigest()
    return {
        "owner": owner,
        "new_client": new_client,
    }
