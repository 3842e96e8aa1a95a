"""
API Dependencies for FastAPI Router Modules
Shared dependencies for authentication and orchestrator access
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging
import secrets

from shelfsync.core.sync_orchestrator import SyncOrchestrator

# Initialize security scheme
security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


class APIAuthenticator:
    """Centralized API authentication handler"""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def verify_api_key(self, credentials: Optional[HTTPAuthorizationCredentials] = None) -> bool:
        """Verify API key from authorization header"""
        if not credentials:
            return False

        return secrets.compare_digest(credentials.credentials, self.api_key)

    def raise_unauthorized(self):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Set during app initialization
_authenticator: Optional[APIAuthenticator] = None
_orchestrator: Optional[SyncOrchestrator] = None


def init_api_dependencies(api_key: str, orchestrator: SyncOrchestrator):
    """Initialize API dependencies with configuration"""
    global _authenticator, _orchestrator
    _authenticator = APIAuthenticator(api_key)
    _orchestrator = orchestrator
    logger.debug("API dependencies initialized")


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(security)) -> bool:
    """FastAPI dependency for API key verification"""
    if not _authenticator:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication not initialized"
        )

    if not _authenticator.verify_api_key(credentials):
        _authenticator.raise_unauthorized()

    return True


async def get_orchestrator() -> SyncOrchestrator:
    """FastAPI dependency to get the orchestrator instance"""
    if _orchestrator is None:
        logger.error("Orchestrator not initialized - please check init_api_dependencies")
        raise RuntimeError("Sync orchestrator not available")

    return _orchestrator
