from fastapi import APIRouter

from leave_ledger.api.accruals import accrual_rules_router, accrual_trigger_router
from leave_ledger.api.audit import audit_router, job_runs_router
from leave_ledger.api.balances import adjustment_router, balance_router, encashment_router, retro_router
from leave_ledger.api.calendars import calendars_router
from leave_ledger.api.delegations import delegations_router
from leave_ledger.api.entitlements import overrides_router, resolve_router, rules_router
from leave_ledger.api.integrations import integrations_router
from leave_ledger.api.leave_types import router as leave_types_router
from leave_ledger.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(leave_types_router)
api_router.include_router(rules_router)
api_router.include_router(overrides_router)
api_router.include_router(resolve_router)
api_router.include_router(calendars_router)
api_router.include_router(balance_router)
api_router.include_router(adjustment_router)
api_router.include_router(retro_router)
api_router.include_router(encashment_router)
api_router.include_router(accrual_rules_router)
api_router.include_router(accrual_trigger_router)
api_router.include_router(requests_router)
api_router.include_router(delegations_router)
api_router.include_router(integrations_router)
api_router.include_router(audit_router)
api_router.include_router(job_runs_router)
