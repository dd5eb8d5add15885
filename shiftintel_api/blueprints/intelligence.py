import threading

from flask import Blueprint, request, current_app

from shiftintel_api.common.auth import requires_roles
from shiftintel_api.common.errors import APIError, ValidationError
from shiftintel_api.common.http import ok, listed
from shiftintel_api.common.paging import page_limit, as_bool
from shiftintel_api.services.intelligence_service import IntelligenceService, load_engine_config

bp = Blueprint("intelligence", __name__, url_prefix="/api/v1/intelligence")


def get_service() -> IntelligenceService:
    return IntelligenceService(load_engine_config(current_app))


def _int_arg(name):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", payload={"field": name})


# ---------- Suggest ----------

@bp.get("/suggestions")
@requires_roles("manager")
def suggestions():
    """
    Ranked candidates for one opening.
    Query: date, start_time, end_time, requires_weapon?, site_id?, template_id?, limit?
    """
    svc = get_service()
    result = svc.suggest(
        request.args.get("date"),
        request.args.get("start_time"),
        request.args.get("end_time"),
        requires_weapon=as_bool(request.args.get("requires_weapon")),
        site_id=_int_arg("site_id"),
        template_id=_int_arg("template_id"),
        limit=_int_arg("limit"),
    )
    return listed(result.suggestions, warnings=result.warnings)


# ---------- analyzers ----------

@bp.get("/heatmap")
@requires_roles("manager")
def heatmap():
    patterns, warnings = get_service().heatmap(site_id=_int_arg("site_id"))
    return listed(patterns, warnings=warnings)


@bp.get("/shortages")
@requires_roles("manager")
def shortages():
    patterns, warnings = get_service().shortages()
    return listed(patterns, warnings=warnings)


@bp.get("/fatigue")
@requires_roles("manager")
def fatigue():
    risks, warnings = get_service().fatigue_risks()
    return listed(risks, warnings=warnings)


@bp.get("/staffing")
@requires_roles("manager")
def staffing():
    items, warnings = get_service().staffing(site_id=_int_arg("site_id"))
    return listed(items, warnings=warnings)


# ---------- insights ----------

@bp.get("/insights/latest")
@requires_roles("manager")
def latest_insight():
    row = get_service().latest_insight()
    return ok(row.to_dict() if row else None)


@bp.get("/insights")
@requires_roles("manager")
def insight_history():
    page, size = page_limit()
    items, total = get_service().insight_history(page, size)
    return listed(items, page=page, size=size, total=total)


@bp.get("/insights/runs/<int:run_id>")
@requires_roles("manager")
def insight_run(run_id: int):
    return ok(get_service().insight_run(run_id).to_dict())


def _generate_in_background(app, run_id: int, trigger: str):
    with app.app_context():
        svc = IntelligenceService(load_engine_config(app))
        try:
            row = svc.generate_insight(trigger=trigger, run_id=run_id)
            app.logger.info("background insight %s generated (run %s)", row.id, run_id)
        except APIError as e:
            app.logger.warning("background insight run %s failed: %s", run_id, e.message)
        except Exception:
            app.logger.exception("background insight run %s crashed", run_id)


@bp.post("/insights/generate")
@requires_roles("manager")
def generate_insight():
    run_async = as_bool(request.args.get("async"), current_app.config.get("INSIGHT_ASYNC_DEFAULT", False))
    svc = get_service()

    if run_async:
        # claim before answering; the worker thread owns and releases the run
        run_id = svc.claim_insight_run("manual")
        app = current_app._get_current_object()
        try:
            threading.Thread(
                target=_generate_in_background, args=(app, run_id, "manual"),
                name=f"insight-run-{run_id}", daemon=True,
            ).start()
        except RuntimeError as e:
            svc.release_insight_run(run_id, error=str(e))
            raise
        return ok({"status": "accepted", "run_id": run_id}, status=202)

    row = svc.generate_insight(trigger="manual")
    current_app.logger.info("manual insight %s generated", row.id)
    return ok(row.to_dict(), status=201)
