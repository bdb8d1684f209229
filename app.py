import atexit
import io
import os
import logging
import secrets
from functools import lru_cache

from flask import (Flask, render_template, redirect, url_for, request, jsonify, flash,
                   session, send_file, has_app_context)
from sqlalchemy.exc import SQLAlchemyError

from models import db, User
from schedule import (PlanError, VERSIONS, UI_RATE_MAX, RATE_MIN, assemble_bible,
                      build_custom_schedule, relink_schedule, coerce_rate, coerce_progress,
                      reconcile_progress, apply_check, progress_summary)
from storage import LocalStore, UserDataStore, LOCAL_DEFAULTS, merge_document, io_tally
from sync import DebouncedWriter
from export import workbook_bytes, EXPORT_FILENAME

basedir = os.path.abspath(os.path.dirname(__file__))

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = Flask(__name__)
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(basedir, "reading_planner.db"),
)
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["SYNC_DEBOUNCE_SECONDS"] = float(os.environ.get("SYNC_DEBOUNCE_SECONDS", "1.0"))
app.config["LOG_STORE_IO"] = os.environ.get("LOG_STORE_IO", "").lower() in ("1", "true", "yes")

db.init_app(app)

user_data = UserDataStore(on_io=io_tally(app.logger) if app.config["LOG_STORE_IO"] else None)


def _write_progress(user_id, payload):
    if has_app_context():
        user_data.update(user_id, payload)
        return
    # timer threads have no context of their own
    with app.app_context():
        user_data.update(user_id, payload)


sync_writer = DebouncedWriter(_write_progress, delay=app.config["SYNC_DEBOUNCE_SECONDS"])
# pending progress is written out rather than lost on interpreter exit
atexit.register(sync_writer.flush)

# Local field name -> field in the signed-in user's document
PROGRESS_FIELDS = {
    "default": ("progressMap", "defaultProgress"),
    "custom":  ("customProgressMap", "customProgress"),
}


# ── Helpers ───────────────────────────────────────────────────────────────────

def current_user():
    """Return the logged-in User object, or None."""
    uid = session.get("user_id")
    if uid is None:
        return None
    return db.session.get(User, uid)


def local_store() -> LocalStore:
    client_id = session.get("client_id")
    if not client_id:
        client_id = secrets.token_hex(16)
        session["client_id"] = client_id
    return LocalStore(client_id)


def _document_to_state(doc, fallback):
    settings = doc.get("settings") or {}
    return {
        "version":           settings.get("version", fallback["version"]),
        "otChapters":        settings.get("otChapters", fallback["otChapters"]),
        "ntChapters":        settings.get("ntChapters", fallback["ntChapters"]),
        "isCustomSchedule":  doc.get("isCustomSchedule", fallback["isCustomSchedule"]),
        "progressMap":       doc.get("defaultProgress", fallback["progressMap"]),
        "customProgressMap": doc.get("customProgress", fallback["customProgressMap"]),
        "customSchedule":    doc.get("customSchedule", fallback["customSchedule"]),
    }


def _state_to_document(state):
    return {
        "settings": {
            "version":    state["version"],
            "otChapters": state["otChapters"],
            "ntChapters": state["ntChapters"],
        },
        "isCustomSchedule": state["isCustomSchedule"],
        "defaultProgress":  state["progressMap"],
        "customProgress":   state["customProgressMap"],
        "customSchedule":   [{"day": r["day"], "passages": r["passages"]}
                             for r in state["customSchedule"]],
    }


def load_state(user=None):
    """Planner fields for this browser, read from the user's document when signed in."""
    state = local_store().snapshot()
    if user is not None:
        try:
            doc = user_data.read(user.id)
        except SQLAlchemyError:
            app.logger.exception("[state] Could not read document for user %s", user.id)
            doc = {}
        pending = sync_writer.pending(user.id)
        if pending:
            doc = merge_document(doc, pending)
        state = _document_to_state(doc, state)
    state["progressMap"] = coerce_progress(state["progressMap"])
    state["customProgressMap"] = coerce_progress(state["customProgressMap"])
    return state


def save_state(user, local_fields, remote_fields=None):
    """Mirror fields locally and, when signed in, merge them into the user's document."""
    store = local_store()
    for key, value in local_fields.items():
        store.set_item(key, value)
    if user is not None and remote_fields:
        try:
            user_data.update(user.id, remote_fields)
        except SQLAlchemyError:
            # local copy stays authoritative
            app.logger.error("[state] Remote save failed for user %s", user.id)


@lru_cache(maxsize=32)
def default_rows(ot_chapters, nt_chapters, version):
    schedule, _ = assemble_bible(ot_chapters, nt_chapters, version)
    return tuple(schedule)


def planner_rows(state, plan):
    """(schedule, progress) for the default or custom planner."""
    if plan == "custom":
        schedule = relink_schedule(state["customSchedule"], state["version"])
        progress = reconcile_progress(state["customProgressMap"], len(schedule))
        return schedule, progress
    # rows are shared by the cache; hand out copies
    schedule = [dict(row) for row in default_rows(
        coerce_rate(state["otChapters"], "OT"),
        coerce_rate(state["ntChapters"], "NT"),
        state["version"],
    )]
    progress = reconcile_progress(state["progressMap"], len(schedule))
    return schedule, progress


def active_plan(state):
    plan = request.values.get("plan")
    if plan in PROGRESS_FIELDS:
        return plan
    return "custom" if state["isCustomSchedule"] else "default"


@app.context_processor
def inject_user():
    return {"me": current_user(), "versions": VERSIONS}


# ── Planner routes ────────────────────────────────────────────────────────────

@app.route("/")
def dashboard():
    state = load_state(current_user())
    try:
        schedule, progress = planner_rows(state, "default")
    except PlanError as e:
        flash(str(e), "error")
        state.update(otChapters=LOCAL_DEFAULTS["otChapters"], ntChapters=LOCAL_DEFAULTS["ntChapters"])
        schedule, progress = planner_rows(state, "default")
    done, total = progress_summary(progress, len(schedule))
    return render_template("plan.html", state=state, schedule=schedule, progress=progress,
                           plan="default", done=done, total=total)


@app.route("/generate", methods=["POST"])
def generate():
    user = current_user()
    try:
        ot = coerce_rate(request.form.get("ot_chapters", ""), "OT", RATE_MIN, UI_RATE_MAX)
        nt = coerce_rate(request.form.get("nt_chapters", ""), "NT", RATE_MIN, UI_RATE_MAX)
    except PlanError:
        flash(f"Please enter a valid number between {RATE_MIN} and {UI_RATE_MAX} "
              "for both OT and NT chapters per day.", "error")
        return redirect(url_for("dashboard"))

    clear = bool(request.form.get("clear_progress"))
    local = {"otChapters": ot, "ntChapters": nt, "isCustomSchedule": False}
    remote = {"settings": {"otChapters": ot, "ntChapters": nt}, "isCustomSchedule": False}
    if clear:
        local["progressMap"] = {}
        remote["defaultProgress"] = {}
        if user is not None:
            sync_writer.flush(user.id)
    save_state(user, local, remote)
    app.logger.info("[planner] Default schedule set to OT %d / NT %d%s",
                    ot, nt, " with cleared progress" if clear else "")
    flash("Schedule updated.", "success")
    return redirect(url_for("dashboard"))


@app.route("/custom", methods=["GET", "POST"])
def custom():
    user = current_user()
    state = load_state(user)
    if request.method == "POST":
        text = request.form.get("plan_text", "")
        try:
            schedule = build_custom_schedule(text, state["version"])
        except PlanError as e:
            flash(str(e), "error")
            return render_template("custom.html", state=state, schedule=[], progress={},
                                   plan="custom", plan_text=text, done=0, total=0)
        stored = [{"day": r["day"], "passages": r["passages"]} for r in schedule]
        clear = bool(request.form.get("clear_progress"))
        local = {"customSchedule": stored, "isCustomSchedule": True}
        remote = {"customSchedule": stored, "isCustomSchedule": True}
        if clear:
            local["customProgressMap"] = {}
            remote["customProgress"] = {}
            if user is not None:
                sync_writer.flush(user.id)
        save_state(user, local, remote)
        app.logger.info("[planner] Custom schedule saved with %d days", len(stored))
        flash("Custom schedule updated.", "success")
        return redirect(url_for("custom"))

    schedule, progress = planner_rows(state, "custom")
    done, total = progress_summary(progress, len(schedule))
    plan_text = "\n".join(r["passages"] for r in schedule)
    return render_template("custom.html", state=state, schedule=schedule, progress=progress,
                           plan="custom", plan_text=plan_text, done=done, total=total)


@app.route("/version", methods=["POST"])
def set_version():
    version = request.form.get("version", "")
    if version not in VERSIONS:
        flash("Unknown Bible version.", "error")
    else:
        save_state(current_user(), {"version": version}, {"settings": {"version": version}})
    return redirect(request.referrer or url_for("dashboard"))


@app.route("/api/progress", methods=["POST"])
def update_progress():
    """Tick or untick a day; ``shift`` extends the change back to the last ticked day."""
    user = current_user()
    data = request.get_json(force=True, silent=True) or {}
    day = data.get("day")
    # bool is an int subclass; 2.7 and "3" are refused rather than truncated
    if isinstance(day, bool) or not isinstance(day, int) or day < 1:
        return jsonify({"ok": False, "error": "invalid day"}), 400
    plan = data.get("plan", "default")
    if plan not in PROGRESS_FIELDS:
        return jsonify({"ok": False, "error": "unknown plan"}), 400
    checked = bool(data.get("checked"))

    local_key, remote_key = PROGRESS_FIELDS[plan]
    state = load_state(user)
    try:
        schedule, _ = planner_rows(state, plan)
    except PlanError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    total_days = len(schedule)
    if day > total_days:
        return jsonify({"ok": False, "error": "invalid day"}), 400

    last = session.get("last_checked") or {}
    anchor = last.get("day") if data.get("shift") and last.get("plan") == plan else None
    if anchor is not None:
        anchor = min(max(int(anchor), 1), total_days)
    progress = apply_check(state[local_key], day, checked, anchor)
    session["last_checked"] = {"plan": plan, "day": day}

    local_store().set_item(local_key, progress)
    if user is not None:
        payload = merge_document(sync_writer.pending(user.id) or {}, {remote_key: progress})
        sync_writer.submit(user.id, payload)

    done, total = progress_summary(progress, total_days)
    return jsonify({"ok": True, "done": done, "total": total})


@app.route("/progress/clear", methods=["POST"])
def clear_progress():
    user = current_user()
    state = load_state(user)
    plan = active_plan(state)
    local_key, remote_key = PROGRESS_FIELDS[plan]
    if user is not None:
        sync_writer.flush(user.id)
    local_store().remove_item(local_key)
    save_state(user, {}, {remote_key: {}})
    session.pop("last_checked", None)
    flash("Progress cleared.", "success")
    return redirect(url_for("custom" if plan == "custom" else "dashboard"))


@app.route("/export")
def export():
    state = load_state(current_user())
    plan = active_plan(state)
    try:
        schedule, progress = planner_rows(state, plan)
    except PlanError as e:
        flash(str(e), "error")
        return redirect(url_for("dashboard"))
    return send_file(
        io.BytesIO(workbook_bytes(schedule, progress)),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=EXPORT_FILENAME,
    )


# ── Auth routes ───────────────────────────────────────────────────────────────

def _sign_in(user):
    session["user_id"] = user.id
    session.pop("last_checked", None)
    if not user_data.exists(user.id):
        # first sign-in: carry this browser's plan over
        save_state(user, {}, _state_to_document(load_state(None)))
    app.logger.info("[auth] User %s signed in", user.username)


@app.route("/login", methods=["GET", "POST"])
def login():
    if current_user():
        return redirect(url_for("dashboard"))
    error = None
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        user = User.query.filter_by(username=username).first()
        if user and user.check_password(password):
            _sign_in(user)
            return redirect(url_for("dashboard"))
        error = "Invalid username or password."
    return render_template("login.html", error=error)


@app.route("/register", methods=["GET", "POST"])
def register():
    if current_user():
        return redirect(url_for("dashboard"))
    error = None
    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")
        if not username or not password:
            error = "Username and password are required."
        elif User.query.filter_by(username=username).first():
            error = "That username is already taken."
        else:
            u = User(username=username)
            u.set_password(password)
            db.session.add(u)
            db.session.commit()
            _sign_in(u)
            return redirect(url_for("dashboard"))
    return render_template("register.html", error=error)


@app.route("/logout")
def logout():
    uid = session.pop("user_id", None)
    if uid is not None:
        sync_writer.cancel(uid)
        local_store().reset()
    session.pop("last_checked", None)
    return redirect(url_for("dashboard"))


with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run(debug=True)
