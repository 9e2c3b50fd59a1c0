"""
Admin API endpoints.

Every endpoint requires a bearer token for a user with the ADMIN role, and
every mutation appends an entry to the admin audit log in the same
transaction.

Submodules:
    - one_time_codes: Code generation, listing, deactivation and deletion
    - test_requests: Access request review (approve / deny)
    - entitlements: Direct access grants, revokes and toggles
    - tests: Test session oversight (list, cancel, delete)
    - audit_log: Read access to the admin audit log
"""
from fastapi import APIRouter

from . import audit_log, entitlements, one_time_codes, test_requests, tests

# Create the main admin router
router = APIRouter()

router.include_router(
    one_time_codes.router,
    tags=["Admin - One-Time Codes"],
)

router.include_router(
    test_requests.router,
    tags=["Admin - Test Requests"],
)

router.include_router(
    entitlements.router,
    tags=["Admin - Entitlements"],
)

router.include_router(
    tests.router,
    tags=["Admin - Tests"],
)

router.include_router(
    audit_log.router,
    tags=["Admin - Audit Log"],
)

__all__ = ["router"]
