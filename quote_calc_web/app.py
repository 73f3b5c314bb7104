import os
from datetime import date
from typing import Optional
from uuid import uuid4

from flask import Flask, jsonify, redirect, render_template, request, session, url_for
from pydantic import ValidationError

from quote_calc.engine import compute_plans, compute_quote
from quote_calc.schemas import PlansRequest, QuoteRequest, RateUpdateRequest, validation_issues
from quote_calc_web.quote_store import ADVISER_USER_TYPE, create_store_from_env

app = Flask(__name__)
app.config["ASSET_VERSION"] = os.environ.get("ASSET_VERSION", "1")
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
quote_store = create_store_from_env(os.environ.get("QUOTE_DATABASE_URL"))

# Defaults for the HTML form; API callers always send their own settings.
DEFAULT_SETTINGS = {
    "iva": float(os.environ.get("QUOTE_IVA", "0.16")),
    "opening_fee_rate": float(os.environ.get("QUOTE_OPENING_FEE_RATE", "0.03")),
    "gps_initial": float(os.environ.get("QUOTE_GPS_INITIAL", "0")),
    "gps_monthly": float(os.environ.get("QUOTE_GPS_MONTHLY", "400")),
    "first_payment_rule": "next_quincena",
    "day_count": "A360",
    "finance_insurance_mode": "add_to_principal",
}

TERM_OPTIONS = (24, 36, 48, 60)


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _error_response(code: str, message: str, status: int, issues=None):
    error = {"code": code, "message": message}
    if issues is not None:
        error["issues"] = issues
    return jsonify({"error": error}), status


def _validation_error(exc: ValidationError):
    return _error_response("VALIDATION", "invalid body", 400, validation_issues(exc))


def _internal_error(exc: Exception):
    app.logger.exception("Unexpected error while computing a quote: %s", exc)
    return _error_response("INTERNAL", "unexpected error", 500)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _form_number(form, name: str, default: str = "0") -> str:
    value = form.get(name, "").strip().replace(",", "")
    return value or default


def _form_to_request(form) -> QuoteRequest:
    tier_code = form.get("tier_code", "")
    tier_rates = quote_store.active_tier_rates()
    if tier_code in tier_rates:
        rate = float(tier_rates[tier_code])
    else:
        rate = float(_form_number(form, "rate", "45")) / 100
    payload = {
        "vehicle_value": _form_number(form, "vehicle_value"),
        "down_payment_amount": _form_number(form, "down_payment"),
        "term_months": form.get("term", "48"),
        "insurance": {
            "mode": form.get("insurance_mode", "cash"),
            "amount": _form_number(form, "insurance_amount"),
        },
        "commission": {"mode": form.get("commission_mode", "cash")},
        "settings": dict(DEFAULT_SETTINGS, annual_nominal_rate=rate),
        "as_of": form.get("as_of", "").strip() or date.today().isoformat(),
    }
    return QuoteRequest.model_validate(payload)


@app.route("/", methods=["GET", "POST"])
def index():
    result = None
    error = None
    form_values = request.form if request.method == "POST" else {}

    user_token = _ensure_user_token()

    if request.method == "POST":
        try:
            quote_request = _form_to_request(request.form)
            result = compute_quote(*quote_request.to_engine_args()).to_dict()
            if request.form.get("action") == "save":
                name = request.form.get("quote_name", "").strip() or "Quote"
                quote_store.save_quote(
                    user_token, uuid4().hex, name, result, request.form.get("tier_code") or None
                )
        except ValidationError as exc:
            error = "; ".join(
                f"{'.'.join(str(p) for p in issue['path']) or 'request'}: {issue['message']}"
                for issue in validation_issues(exc)
            )
        except Exception as exc:
            app.logger.exception("Quote form failed")
            error = str(exc)

    return render_template(
        "index.html",
        result=result,
        error=error,
        form=form_values,
        rate_tiers=quote_store.list_rate_tiers(),
        term_options=TERM_OPTIONS,
        saved_quotes=quote_store.list_quotes(user_token),
        asset_version=app.config["ASSET_VERSION"],
    )


@app.post("/api/quotes/compute")
def compute_quote_api():
    try:
        inputs, settings = QuoteRequest.model_validate(_json_body()).to_engine_args()
        return jsonify(compute_quote(inputs, settings).to_dict())
    except ValidationError as exc:
        return _validation_error(exc)
    except Exception as exc:
        return _internal_error(exc)


@app.post("/api/quotes/plans")
def compute_plans_api():
    try:
        plans_request = PlansRequest.model_validate(_json_body())
        inputs, settings = plans_request.to_engine_args()
        plans = compute_plans(inputs, settings, quote_store.active_tier_rates(), plans_request.terms)
        payload = {
            code: {str(term): {"summary": result.summary.to_dict()} for term, result in by_term.items()}
            for code, by_term in plans.items()
        }
        return jsonify({"plans": payload})
    except ValidationError as exc:
        return _validation_error(exc)
    except Exception as exc:
        return _internal_error(exc)


@app.post("/api/quotes/save")
def save_quote_api():
    user_token = _ensure_user_token()
    body = _json_body()
    try:
        inputs, settings = QuoteRequest.model_validate(body).to_engine_args()
        result = compute_quote(inputs, settings).to_dict()
        name = str(body.get("name") or "Quote").strip()
        saved = quote_store.save_quote(user_token, uuid4().hex, name, result, body.get("tier_code"))
        return jsonify({"success": True, "quote": saved})
    except ValidationError as exc:
        return _validation_error(exc)
    except Exception as exc:
        return _internal_error(exc)


@app.get("/api/quotes")
def list_quotes_api():
    user_token = _ensure_user_token()
    return jsonify({"quotes": quote_store.list_quotes(user_token)})


@app.get("/api/quotes/<quote_id>")
def get_quote_api(quote_id: str):
    quote = quote_store.get_quote(session.get("user_token"), quote_id)
    if quote is None:
        return _error_response("NOT_FOUND", "quote not found", 404)
    return jsonify({"quote": quote})


@app.post("/api/quotes/<quote_id>/delete")
def delete_quote_api(quote_id: str):
    quote_store.remove_quote(session.get("user_token"), quote_id)
    return jsonify({"success": True})


@app.post("/quotes/remove")
def remove_quote():
    quote_store.remove_quote(session.get("user_token"), request.form.get("quote_id"))
    return redirect(url_for("index"))


@app.post("/quotes/clear")
def clear_quotes():
    quote_store.clear_quotes(session.get("user_token"))
    return redirect(url_for("index"))


def _request_user_type(values) -> Optional[str]:
    return values.get("user_type") or values.get("userType")


@app.get("/api/rates")
def list_rates_api():
    rates = quote_store.list_rate_tiers(_request_user_type(request.args))
    return jsonify({"success": True, "rates": rates})


@app.post("/api/rates")
def update_rates_api():
    body = _json_body()
    if _request_user_type(body) != ADVISER_USER_TYPE:
        return _error_response("FORBIDDEN", "only advisers can update rates", 403)
    try:
        updates = RateUpdateRequest.model_validate(body).rates
        for update in updates:
            if quote_store.update_rate_tier(
                update.tier_code,
                annual_rate=update.annual_rate,
                tier_name=update.tier_name,
                is_active=update.is_active,
            ) is None:
                return _error_response("NOT_FOUND", f"unknown tier {update.tier_code}", 404)
        app.logger.info("Updated %d rate tiers", len(updates))
        return jsonify({"success": True, "rates": quote_store.list_rate_tiers()})
    except ValidationError as exc:
        return _validation_error(exc)
    except Exception as exc:
        return _internal_error(exc)


if __name__ == "__main__":
    print("Starting quote calculator web app...")
    app.run(host="0.0.0.0", port=8710, debug=True)
