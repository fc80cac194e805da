import logging
import time
from datetime import date

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

import config
from db.deps import get_db
from models.lending_models import User
from schemas.categories import CategoryUpsert
from schemas.rentals import CreateRentalDto, RejectRentalRequest, ReturnRequest
from schemas.tools import MaintenanceRecordRequest, ToolUpsert
from schemas.transactions import CreateTransactionDto, PayTransactionRequest, UpdateTransactionDto
from schemas.users import CreateUserDto, RenewMembershipRequest, UpdateUserDto
from services.audit_service import get_history
from services.category_service import (
    create_category,
    delete_category,
    get_category_or_404,
    list_categories,
    serialize_category,
    update_category,
)
from services.errors import LendingError, PermissionDeniedError, ValidationError
from services.export_service import export_rentals_csv, export_tools_csv, export_transactions_csv
from services.maintenance_service import serialize_maintenance
from services.membership_service import renew_membership
from services.notification_service import list_pending_notifications
from services.pricing_service import billable_weeks, calculate_rental_cost
from services.reconcile_service import run_reconciliation
from services.rental_service import (
    activate_rental,
    create_rental,
    delete_rental,
    get_rental,
    list_rentals,
    reject_rental,
    return_rental,
    serialize_rental,
)
from services.tool_service import (
    create_tool,
    delete_tool,
    get_tool_or_404,
    list_tools,
    record_maintenance,
    serialize_tool,
    update_tool,
)
from services.transaction_service import (
    create_transaction,
    delete_transaction,
    get_transaction_or_404,
    list_transactions,
    pay_transaction,
    recalculate_user_debt,
    serialize_transaction,
    update_transaction_method,
)
from services.user_service import (
    create_user,
    delete_user,
    get_user_or_404,
    is_staff,
    list_users,
    require_staff,
    serialize_user,
    update_user,
)

config.configure_logging()
HTTP_LOGGER = logging.getLogger("tool_lending.http")

app = FastAPI(title="Tool Lending API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=config.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    HTTP_LOGGER.info(
        "%s %s status=%s duration=%.1fms actor=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request.headers.get("x-actor-id") or "anonymous",
    )
    return response


@app.exception_handler(LendingError)
async def handle_lending_error(request: Request, exc: LendingError):
    if exc.status_code in (403, 409):
        HTTP_LOGGER.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _resolve_actor(db: Session, x_actor_id: int | None) -> User | None:
    if x_actor_id is None:
        return None
    actor = db.get(User, x_actor_id)
    if not actor:
        raise HTTPException(status_code=401, detail="Unknown actor.")
    return actor


def _require_actor(db: Session, x_actor_id: int | None) -> User:
    actor = _resolve_actor(db, x_actor_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Not logged in.")
    return actor


def _require_staff_actor(db: Session, x_actor_id: int | None) -> User:
    return require_staff(_require_actor(db, x_actor_id))


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/categories")
def get_categories(db: Session = Depends(get_db)):
    return list_categories(db)


@app.get("/api/categories/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db)):
    return serialize_category(get_category_or_404(db, category_id))


@app.post("/api/categories")
def post_category(
    payload: CategoryUpsert,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return serialize_category(create_category(db, payload.name, payload.description))


@app.put("/api/categories/{category_id}")
def put_category(
    category_id: int,
    payload: CategoryUpsert,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return serialize_category(update_category(db, category_id, payload.name, payload.description))


@app.delete("/api/categories/{category_id}")
def remove_category(
    category_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    delete_category(db, category_id)
    return {"message": "Category deleted"}


@app.get("/api/tools")
def get_tools(
    search: str | None = Query(None),
    category_id: int | None = Query(None, alias="categoryID"),
    status: str | None = Query(None),
    maintenance_alert: bool = Query(False, alias="maintenanceAlert"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return list_tools(db, search, category_id, status, maintenance_alert, page, limit)


@app.get("/api/tools/{tool_id}")
def get_tool(tool_id: int, db: Session = Depends(get_db)):
    return serialize_tool(get_tool_or_404(db, tool_id))


@app.get("/api/tools/{tool_id}/maintenance-status")
def get_tool_maintenance_status(tool_id: int, db: Session = Depends(get_db)):
    tool = get_tool_or_404(db, tool_id)
    payload = serialize_maintenance(tool)
    payload["toolID"] = tool.ToolID
    payload["status"] = tool.Status
    return payload


@app.post("/api/tools")
def post_tool(
    payload: ToolUpsert,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return serialize_tool(create_tool(db, payload.model_dump(exclude_unset=True)))


@app.put("/api/tools/{tool_id}")
def put_tool(
    tool_id: int,
    payload: ToolUpsert,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return serialize_tool(update_tool(db, tool_id, payload.model_dump(exclude_unset=True)))


@app.delete("/api/tools/{tool_id}")
def remove_tool(
    tool_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    delete_tool(db, tool_id)
    return {"message": "Tool deleted"}


@app.post("/api/tools/{tool_id}/maintenance")
def post_tool_maintenance(
    tool_id: int,
    payload: MaintenanceRecordRequest,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    tool = record_maintenance(
        db,
        tool_id,
        payload.statusAtTime,
        comment=payload.comment,
        cost=payload.cost,
        charge_user_id=payload.chargeUserID,
        actor_id=actor.UserID,
    )
    return serialize_tool(tool)


@app.get("/api/tools/{tool_id}/history")
def get_tool_history(tool_id: int, db: Session = Depends(get_db)):
    get_tool_or_404(db, tool_id)
    return get_history(db, "Tool", tool_id)


@app.get("/api/pricing/quote")
def get_pricing_quote(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    tool_id: int | None = Query(None, alias="toolID"),
    weekly_price: float | None = Query(None, alias="weeklyPrice"),
    db: Session = Depends(get_db),
):
    if tool_id is not None:
        weekly_price = float(get_tool_or_404(db, tool_id).WeeklyPrice or 0)
    if weekly_price is None:
        raise ValidationError("Provide toolID or weeklyPrice.", field="weeklyPrice")
    return {
        "startDate": start_date,
        "endDate": end_date,
        "weeklyPrice": weekly_price,
        "weeks": billable_weeks(start_date, end_date),
        "totalPrice": calculate_rental_cost(start_date, end_date, weekly_price),
    }


@app.get("/api/users")
def get_users(
    search: str | None = Query(None),
    status: str | None = Query(None),
    membership_filter: str | None = Query(None, alias="membershipFilter"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return list_users(db, search, status, membership_filter, page, limit)


@app.get("/api/users/{user_id}")
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    if not is_staff(actor) and actor.UserID != user_id:
        raise PermissionDeniedError("Access denied")
    return serialize_user(get_user_or_404(db, user_id))


@app.post("/api/users")
def post_user(
    payload: CreateUserDto,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return serialize_user(create_user(db, payload.model_dump(exclude_unset=True)))


@app.put("/api/users/{user_id}")
def put_user(
    user_id: int,
    payload: UpdateUserDto,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    return serialize_user(update_user(db, user_id, payload.model_dump(exclude_unset=True), actor))


@app.delete("/api/users/{user_id}")
def remove_user(
    user_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    delete_user(db, user_id)
    return {"message": "User deleted successfully"}


@app.post("/api/users/{user_id}/renew-membership")
def post_renew_membership(
    user_id: int,
    payload: RenewMembershipRequest,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    user = get_user_or_404(db, user_id)
    renewed = renew_membership(db, user, payload.amount, payload.paymentMethod, payload.durationMonths, admin_id=actor.UserID)
    return serialize_user(renewed)


@app.post("/api/users/{user_id}/recalculate-debt")
def post_recalculate_debt(
    user_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    user = get_user_or_404(db, user_id)
    previous = float(user.TotalDebt or 0)
    debt = recalculate_user_debt(db, user)
    db.commit()
    return {"userID": user_id, "previousDebt": previous, "totalDebt": debt}


@app.get("/api/rentals")
def get_rentals(
    status: str | None = Query(None),
    user_id: int | None = Query(None, alias="userID"),
    tool_id: int | None = Query(None, alias="toolID"),
    start_date_from: date | None = Query(None, alias="startDateFrom"),
    start_date_to: date | None = Query(None, alias="startDateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    return list_rentals(db, actor, status, user_id, tool_id, start_date_from, start_date_to, page, limit)


@app.get("/api/rentals/{rental_id}")
def get_rental_detail(
    rental_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    rental = get_rental(db, rental_id, actor)
    payload = serialize_rental(rental)
    payload["history"] = get_history(db, "Rental", rental_id)
    return payload


@app.post("/api/rentals")
def post_rental(
    payload: CreateRentalDto,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    rental = create_rental(
        db,
        payload.userID,
        payload.toolID,
        payload.startDate,
        payload.endDate,
        actor,
        total_price=payload.totalPrice,
    )
    return serialize_rental(rental)


@app.post("/api/rentals/reconcile-overdue")
def post_reconcile_overdue(
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return run_reconciliation(db)


@app.post("/api/rentals/{rental_id}/approve")
def post_approve_rental(
    rental_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    return serialize_rental(activate_rental(db, rental_id, actor))


@app.post("/api/rentals/{rental_id}/reject")
def post_reject_rental(
    rental_id: int,
    payload: RejectRentalRequest,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    return serialize_rental(reject_rental(db, rental_id, actor, payload.comment))


@app.post("/api/rentals/{rental_id}/return")
def post_return_rental(
    rental_id: int,
    payload: ReturnRequest,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    return serialize_rental(return_rental(db, rental_id, actor, payload.returnDate, payload.comment))


@app.delete("/api/rentals/{rental_id}")
def remove_rental(
    rental_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    delete_rental(db, rental_id, actor)
    return {"success": True, "message": "Rental deleted"}


@app.get("/api/transactions")
def get_transactions(
    user_id: int | None = Query(None, alias="userID"),
    transaction_type: str | None = Query(None, alias="type"),
    status: str | None = Query(None),
    date_from: date | None = Query(None, alias="dateFrom"),
    date_to: date | None = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    if not is_staff(actor):
        user_id = actor.UserID
    return list_transactions(db, user_id, transaction_type, status, date_from, date_to, page, limit)


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    transaction = get_transaction_or_404(db, transaction_id)
    if not is_staff(actor) and transaction.UserID != actor.UserID:
        raise PermissionDeniedError("Access denied")
    return serialize_transaction(transaction)


@app.post("/api/transactions")
def post_transaction(
    payload: CreateTransactionDto,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    transaction = create_transaction(
        db,
        payload.userID,
        payload.amount,
        payload.type,
        method=payload.method,
        description=payload.description,
        rental_id=payload.rentalID,
        actor_id=actor.UserID,
    )
    return serialize_transaction(transaction)


@app.put("/api/transactions/{transaction_id}")
def put_transaction(
    transaction_id: int,
    payload: UpdateTransactionDto,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    return serialize_transaction(update_transaction_method(db, transaction_id, payload.method, actor_id=actor.UserID))


@app.post("/api/transactions/{transaction_id}/pay")
def post_pay_transaction(
    transaction_id: int,
    payload: PayTransactionRequest,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    return serialize_transaction(pay_transaction(db, transaction_id, payload.method, actor_id=actor.UserID))


@app.delete("/api/transactions/{transaction_id}")
def remove_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_staff_actor(db, x_actor_id)
    delete_transaction(db, transaction_id, actor_id=actor.UserID)
    return {"message": "Transaction deleted"}


@app.get("/api/notifications/pending")
def get_pending_notifications(
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    _require_staff_actor(db, x_actor_id)
    return list_pending_notifications(db)


def _csv_response(content: bytes, name: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={name}-{date.today().isoformat()}.csv"},
    )


@app.get("/api/exports/rentals")
def get_rentals_export(
    status: str | None = Query(None),
    user_id: int | None = Query(None, alias="userID"),
    tool_id: int | None = Query(None, alias="toolID"),
    start_date_from: date | None = Query(None, alias="startDateFrom"),
    start_date_to: date | None = Query(None, alias="startDateTo"),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    content = export_rentals_csv(db, actor, status, user_id, tool_id, start_date_from, start_date_to)
    return _csv_response(content, "rentals")


@app.get("/api/exports/tools")
def get_tools_export(
    search: str | None = Query(None),
    category_id: int | None = Query(None, alias="categoryID"),
    status: str | None = Query(None),
    maintenance_alert: bool = Query(False, alias="maintenanceAlert"),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    content = export_tools_csv(db, actor, search, category_id, status, maintenance_alert)
    return _csv_response(content, "tools")


@app.get("/api/exports/transactions")
def get_transactions_export(
    user_id: int | None = Query(None, alias="userID"),
    transaction_type: str | None = Query(None, alias="type"),
    status: str | None = Query(None),
    date_from: date | None = Query(None, alias="dateFrom"),
    date_to: date | None = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
    x_actor_id: int | None = Header(None, alias="X-Actor-ID"),
):
    actor = _require_actor(db, x_actor_id)
    content = export_transactions_csv(db, actor, user_id, transaction_type, status, date_from, date_to)
    return _csv_response(content, "transactions")
