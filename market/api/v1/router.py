from fastapi import APIRouter

from market.api.v1.endpoints.health import router as health_router
from market.api.v1.endpoints.users import router as users_router
from market.api.v1.endpoints.me import router as me_router
from market.api.v1.endpoints.listings import router as listings_router
from market.api.v1.endpoints.shops import router as shops_router
from market.api.v1.endpoints.wallet import router as wallet_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(users_router, tags=["users"])
router.include_router(me_router, tags=["me"])
router.include_router(listings_router, tags=["listings"])
router.include_router(shops_router, tags=["shops"])
router.include_router(wallet_router, tags=["wallet"])
