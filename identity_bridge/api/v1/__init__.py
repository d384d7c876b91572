"""
API routes, mounted under the API prefix.
"""

from fastapi import APIRouter

from identity_bridge.api.v1 import auth, configuration, verify

router = APIRouter()

router.include_router(verify.router, tags=["Verification"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(configuration.router, prefix="/config", tags=["Configuration"])
