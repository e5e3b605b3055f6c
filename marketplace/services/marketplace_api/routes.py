# marketplace/services/marketplace_api/routes.py
from fastapi import APIRouter, Depends, status

from marketplace.core.accounts import Account
from marketplace.core.auth import AuthService
from marketplace.core.matching import MatchingService, ProviderPresenceService
from marketplace.services.marketplace_api.dependencies import (
    get_auth_service,
    get_current_account,
    get_current_provider,
    get_matching_service,
    get_presence_service,
)
from marketplace.services.marketplace_api.schemas import (
    ApiResponse,
    FindNearbyRequest,
    RefreshTokenRequest,
    RegisterRequest,
    SendOtpRequest,
    UpdateLocationRequest,
    VerifyOtpRequest,
)

auth_router = APIRouter(prefix="/auth", tags=["Auth"])
providers_router = APIRouter(prefix="/providers", tags=["Providers"])


@auth_router.post("/send-otp", response_model=ApiResponse)
async def send_otp(
    request: SendOtpRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.send_otp(request.phone)
    return ApiResponse.ok(result, message=result.message)


@auth_router.post("/verify-otp", response_model=ApiResponse)
async def verify_otp(
    request: VerifyOtpRequest,
    service: AuthService = Depends(get_auth_service),
):
    session = await service.verify_otp(request.phone, request.otp)
    return ApiResponse.ok(session, message="Login successful")


@auth_router.post("/refresh", response_model=ApiResponse)
async def refresh(
    request: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
):
    tokens = await service.refresh_tokens(request.refresh_token)
    return ApiResponse.ok(tokens, message="Token refreshed successfully")


@auth_router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Регистрация. После неё клиент запрашивает код и входит."""
    account = await service.register(request.phone, request.name, request.role, request.email)
    return ApiResponse.ok(
        {"user": account.model_dump(mode="json")},
        message="Registration successful. Please verify OTP to login.",
    )


@auth_router.get("/me", response_model=ApiResponse)
async def me(account: Account = Depends(get_current_account)):
    return ApiResponse.ok(account, message="Profile retrieved successfully")


@providers_router.post("/find-nearby", response_model=ApiResponse)
async def find_nearby(
    request: FindNearbyRequest,
    service: MatchingService = Depends(get_matching_service),
):
    """Публичный поиск исполнителей услуги рядом с точкой."""
    candidates = await service.find_nearby(
        request.service_id,
        request.latitude,
        request.longitude,
        radius_meters=request.radius_meters,
        limit=request.limit,
    )
    return ApiResponse.ok(candidates, message=f"Found {len(candidates)} providers nearby")


@providers_router.post("/go-online", response_model=ApiResponse)
async def go_online(
    account: Account = Depends(get_current_provider),
    service: ProviderPresenceService = Depends(get_presence_service),
):
    presence = await service.set_online(account.id, True)
    return ApiResponse.ok(presence, message="You are now online")


@providers_router.post("/go-offline", response_model=ApiResponse)
async def go_offline(
    account: Account = Depends(get_current_provider),
    service: ProviderPresenceService = Depends(get_presence_service),
):
    presence = await service.set_online(account.id, False)
    return ApiResponse.ok(presence, message="You are now offline")


@providers_router.put("/location", response_model=ApiResponse)
async def update_location(
    request: UpdateLocationRequest,
    account: Account = Depends(get_current_provider),
    service: ProviderPresenceService = Depends(get_presence_service),
):
    """Текущая точка исполнителя, по ней его находит find-nearby."""
    await service.update_location(account.id, request.latitude, request.longitude)
    return ApiResponse.ok(None, message="Location updated")
