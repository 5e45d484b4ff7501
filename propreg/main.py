"""
HTTP adapter for the property registry.

A thin translation layer: it authenticates the caller from a signed
request, applies rate limits, and calls the matching PropertyRegistry
operation. All authorization decisions stay in the registry service.
"""

import math
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from . import config
from .clock import SystemClock
from .db import export_event_log, insert_nonce
from .errors import ConfigurationError, FailureKind, RegistryError
from .events import verify_event_chain
from .keys import request_signing_payload, verify_ed25519
from .logging_config import audit_log, configure_logging, set_request_id
from .models import AttestRequest, GrantRequest, HolderRequest, RecordPayload
from .rate_limit import RateLimiter
from .registry import PropertyRegistry
from .security import (
    ValidationError,
    extract_client_id,
    validate_base64,
    validate_identity,
    validate_nonce,
    validate_timestamp,
)
from .util import now_epoch

app = FastAPI(title="Property Registry", debug=config.is_debug())

STATUS_BY_KIND = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.ALREADY_EXISTS: 409,
    FailureKind.INVALID_NAME: 422,
    FailureKind.INVALID_VOLUME: 422,
    FailureKind.INVALID_CATEGORY_FORMAT: 422,
    FailureKind.ADMIN_RESTRICTED: 403,
    FailureKind.FORBIDDEN: 403,
    FailureKind.UNAUTHORIZED: 403,
    FailureKind.READ_FORBIDDEN: 403,
}

read_limiter = RateLimiter(config.READ_RPM)
write_limiter = RateLimiter(config.WRITE_RPM)

REGISTRY: Optional[PropertyRegistry] = None


def get_registry() -> PropertyRegistry:
    global REGISTRY
    if REGISTRY is None:
        REGISTRY = PropertyRegistry(
            administrator=config.ADMIN_IDENTITY,
            clock=SystemClock(),
        )
    return REGISTRY


def install_registry(registry: Optional[PropertyRegistry]) -> None:
    """
    Replace the process registry. Embedding hosts that drive their own
    clock (a ManualClock fed from a block height, say) install it here.
    """
    global REGISTRY
    REGISTRY = registry


@app.on_event("startup")
def _startup():
    configure_logging(config.LOG_LEVEL, config.LOG_JSON, config.LOG_FILE or None)
    issues = config.validate_config()
    for issue in issues:
        audit_log.security_event("CONFIG_ISSUE", severity="high", issue=issue)
    if issues and config.is_production():
        raise ConfigurationError("; ".join(issues))
    get_registry()


@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RegistryError)
async def _registry_error(request: Request, exc: RegistryError):
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 403),
        content={"detail": exc.kind.value, "message": exc.message},
    )


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "INVALID_REQUEST", "field": exc.field, "message": exc.message},
    )


# ============================================================
# Caller authentication
# ============================================================

def _request_target(request: Request) -> str:
    query = request.url.query
    return request.url.path + (f"?{query}" if query else "")


async def authenticated_caller(request: Request) -> str:
    """
    Resolve the caller identity from a signed request.

    The signature covers method, target, body digest, nonce and
    timestamp. Each nonce is accepted once.
    """
    headers = request.headers
    try:
        identity = validate_identity(headers.get("x-identity", ""), "x-identity")
        nonce = validate_nonce(headers.get("x-nonce", ""))
        timestamp = validate_timestamp(headers.get("x-timestamp", ""), "x-timestamp")
        signature = validate_base64(headers.get("x-signature", ""), "x-signature")
    except ValidationError as e:
        audit_log.security_event("MALFORMED_AUTH_HEADERS", field=e.field)
        raise HTTPException(401, "MALFORMED_AUTH")

    now = now_epoch()
    if abs(now - timestamp) > config.SIGNATURE_MAX_SKEW_SECONDS:
        audit_log.security_event("STALE_REQUEST", identity=identity)
        raise HTTPException(401, "STALE_REQUEST")

    body = await request.body()
    payload = request_signing_payload(request.method, _request_target(request), body, nonce, timestamp)
    if not verify_ed25519(signature, payload, identity):
        audit_log.security_event("INVALID_SIGNATURE", severity="high", identity=identity)
        raise HTTPException(401, "INVALID_SIGNATURE")

    # sqlite write; keep it off the event loop
    fresh = await run_in_threadpool(insert_nonce, nonce, max(now, timestamp) + config.NONCE_TTL_SECONDS, now)
    if not fresh:
        audit_log.security_event("REPLAYED_NONCE", severity="high", identity=identity)
        raise HTTPException(401, "REPLAY")

    return identity


def _enforce(limiter: RateLimiter, key: str, endpoint: str) -> None:
    result = limiter.check(key)
    if not result.allowed:
        audit_log.rate_limit_exceeded(key, endpoint)
        raise HTTPException(
            429, "RATE_LIMIT",
            headers={"Retry-After": str(math.ceil(result.retry_after or 0))},
        )


def _limited(limiter: RateLimiter, endpoint: str):
    async def dependency(caller: str = Depends(authenticated_caller)) -> str:
        _enforce(limiter, caller, endpoint)
        return caller
    return dependency


write_caller = _limited(write_limiter, "write")
read_caller = _limited(read_limiter, "read")


def public_client(request: Request) -> str:
    peer = request.client.host if request.client else None
    client_id = extract_client_id(request.headers, peer)
    _enforce(read_limiter, client_id, "public")
    return client_id


# ============================================================
# Records
# ============================================================

@app.post("/records", status_code=201)
def register_record(req: RecordPayload, caller: str = Depends(write_caller)):
    record_id = get_registry().register(caller, req.name, req.volume, req.summary, req.categories)
    return {"record_id": record_id}


@app.get("/records/{record_id}")
def read_record(record_id: int, caller: str = Depends(read_caller)):
    return get_registry().read(caller, record_id).to_dict()


@app.put("/records/{record_id}")
def modify_record(record_id: int, req: RecordPayload, caller: str = Depends(write_caller)):
    get_registry().modify(caller, record_id, req.name, req.volume, req.summary, req.categories)
    return {"status": "OK", "record_id": record_id}


@app.delete("/records/{record_id}")
def delete_record(record_id: int, caller: str = Depends(write_caller)):
    get_registry().delete(caller, record_id)
    return {"status": "DELETED", "record_id": record_id}


@app.post("/records/{record_id}/holder")
def reassign_holder(record_id: int, req: HolderRequest, caller: str = Depends(write_caller)):
    new_holder = validate_identity(req.new_holder, "new_holder")
    get_registry().reassign_holder(caller, record_id, new_holder)
    return {"status": "OK", "record_id": record_id, "holder": new_holder}


# ============================================================
# Access grants
# ============================================================

@app.post("/records/{record_id}/grants")
def grant_access(record_id: int, req: GrantRequest, caller: str = Depends(write_caller)):
    accessor = validate_identity(req.accessor, "accessor")
    get_registry().grant_access(caller, record_id, accessor)
    return {"status": "GRANTED", "record_id": record_id, "accessor": accessor}


@app.delete("/records/{record_id}/grants/{accessor}")
def revoke_access(record_id: int, accessor: str, caller: str = Depends(write_caller)):
    accessor = validate_identity(accessor, "accessor")
    get_registry().revoke_access(caller, record_id, accessor)
    return {"status": "REVOKED", "record_id": record_id, "accessor": accessor}


# ============================================================
# Attestation
# ============================================================

@app.post("/records/{record_id}/attestation")
def attest_record(record_id: int, req: AttestRequest, caller: str = Depends(write_caller)):
    get_registry().attest(caller, record_id, req.notes)
    return {"status": "ATTESTED", "record_id": record_id}


@app.get("/records/{record_id}/attestation")
def get_attestation(record_id: int, caller: str = Depends(read_caller)):
    attestation = get_registry().get_attestation(caller, record_id)
    if attestation is None:
        raise HTTPException(404, "NOT_ATTESTED")
    return attestation.to_dict()


# ============================================================
# Administration
# ============================================================

@app.get("/authenticators")
def list_authenticators(caller: str = Depends(read_caller)):
    return {"authenticators": get_registry().list_authenticators(caller)}


@app.get("/authenticators/{identity}")
def authenticator_status(identity: str, client_id: str = Depends(public_client)):
    identity = validate_identity(identity)
    return {"identity": identity, "authorized": get_registry().check_authenticator_status(identity)}


@app.put("/authenticators/{identity}")
def authorize_authenticator(identity: str, caller: str = Depends(write_caller)):
    identity = validate_identity(identity)
    get_registry().authorize_authenticator(caller, identity)
    return {"identity": identity, "authorized": True}


@app.delete("/authenticators/{identity}")
def revoke_authenticator(identity: str, caller: str = Depends(write_caller)):
    identity = validate_identity(identity)
    get_registry().revoke_authenticator(caller, identity)
    return {"identity": identity, "authorized": False}


@app.get("/stats")
def stats(client_id: str = Depends(public_client)):
    return get_registry().stats().to_dict()


@app.get("/events")
def events(record_id: Optional[int] = None, caller: str = Depends(read_caller)):
    registry = get_registry()
    if caller != registry.administrator:
        audit_log.operation_rejected("export_events", caller, FailureKind.ADMIN_RESTRICTED.value)
        raise RegistryError(FailureKind.ADMIN_RESTRICTED, "administrator only")
    entries = export_event_log(record_id)
    body = {"entries": entries}
    if record_id is None:
        body["chain_valid"] = verify_event_chain(entries)
    return body
