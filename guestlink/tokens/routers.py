from fastapi import APIRouter

from .features.issue_token.router import router as issue_token_router
from .features.manage_tokens.router import router as manage_tokens_router
from .features.validate_token.router import router as validate_token_router

router = APIRouter()

router.include_router(validate_token_router)
router.include_router(issue_token_router)
router.include_router(manage_tokens_router)
