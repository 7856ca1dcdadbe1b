import logging
import os
from datetime import datetime, timedelta
from decimal import Decimal

from flask import (
    Flask, flash, jsonify, redirect, render_template, request,
    send_from_directory, session, url_for,
)

import reports
from actions import (
    ActionError, create_product, delete_product, update_order_status, update_product,
)
from auth import AuthError, current_viewer, sign_in
from database import db
from formatting import (
    format_currency, format_date, format_datetime, format_percent, format_period,
)
from models.order import Order, OrderStatus
from models.product import Product
from models.user import User
from uploads import UploadRejected, save_image


# ================== APP CONFIG ==================
app = Flask(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

app.config["SECRET_KEY"] = "dev-secret-change-me"
app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'shop.db')}"
app.config["UPLOAD_FOLDER"] = os.path.join(BASE_DIR, "static", "uploads")
# above the 5 MiB image limit so oversize images get a readable 400
app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024
app.config["AUTH_PROVIDER_URL"] = "https://auth.example.com/oauth/userinfo"
app.config["LOW_STOCK_THRESHOLD"] = 10
app.config["SEED_SAMPLE_DATA"] = True
app.config["LOG_LEVEL"] = "INFO"

# SHOP_SECRET_KEY, SHOP_SQLALCHEMY_DATABASE_URI, ...
app.config.from_prefixed_env("SHOP")

logging.basicConfig(
    level=app.config["LOG_LEVEL"],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

os.makedirs(app.instance_path, exist_ok=True)
db.init_app(app)

app.add_template_filter(format_currency, "currency")
app.add_template_filter(format_date, "date")
app.add_template_filter(format_datetime, "datetime")
app.add_template_filter(format_period, "period")
app.add_template_filter(format_percent, "percent")


# ================== DB INIT + SAMPLE DATA ==================
with app.app_context():
    db.create_all()

    if app.config["SEED_SAMPLE_DATA"] and Product.query.count() == 0:
        sample_products = [
            Product(name="Classic Tee", description="Soft cotton crew neck.", price=Decimal("24.00"), stock=40),
            Product(name="Denim Jacket", description="Stonewashed, relaxed fit.", price=Decimal("89.00"), stock=12),
            Product(name="Canvas Sneakers", description="Low-top everyday pair.", price=Decimal("59.00"), stock=25),
            Product(name="Leather Belt", description="Full-grain with brass buckle.", price=Decimal("35.00"), stock=8),
        ]
        db.session.add_all(sample_products)
        db.session.commit()
        app.logger.info("Seeded %d sample products", len(sample_products))


# ================== UTILS ==================
def render_page(template, viewer=None, **context):
    """Render with the request's viewer and theme passed in explicitly."""
    theme = session.get("theme", "light")
    return render_template(template, viewer=viewer, theme=theme, **context)


def admin_viewer():
    viewer = current_viewer()
    if viewer is None:
        session["show_login"] = True
    return viewer


def parse_day(value):
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        return None


# ================== ROUTES ==================

# ---------- HOME ----------
@app.route("/")
def home():
    featured = Product.query.order_by(Product.created_at.desc()).limit(4).all()
    show_login = session.pop("show_login", False)
    return render_page("home.html", current_viewer(), products=featured, show_login=show_login)


@app.route("/products")
def products():
    q = request.args.get("q", "").strip()
    query = Product.query
    if q:
        query = query.filter(Product.name.ilike(f"%{q}%"))
    items = query.order_by(Product.created_at.desc()).all()
    return render_page("products.html", current_viewer(), products=items, query=q)


@app.route("/products/<int:product_id>")
def product_page(product_id):
    product = db.get_or_404(Product, product_id)
    return render_page("product.html", current_viewer(), product=product)


# ---------- LOGIN ----------
@app.route("/login")
def login():
    return render_page("login.html", current_viewer())


@app.route("/auth/session", methods=["POST"])
def create_session():
    payload = request.get_json(silent=True) or request.form
    try:
        user = sign_in(payload.get("token"))
    except AuthError as e:
        if request.is_json:
            return jsonify({"error": str(e)}), 401
        flash(str(e), "error")
        return redirect(url_for("login"))

    if request.is_json:
        return jsonify({"status": "ok", "user_id": user.id})
    return redirect(url_for("admin_dashboard"))


@app.route("/logout")
def logout():
    session.clear()
    return redirect(url_for("home"))


@app.route("/theme", methods=["POST"])
def toggle_theme():
    session["theme"] = "light" if session.get("theme") == "dark" else "dark"
    return redirect(request.referrer or url_for("home"))


# ---------- ADMIN DASHBOARD ----------
@app.route("/admin")
def admin_dashboard():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    period = reports.resolve_period(request.args.get("period"))
    summary = reports.dashboard_summary()
    buckets = reports.revenue_by_period(period.name)

    recent_orders = (
        Order.query.order_by(Order.created_at.desc()).limit(5).all()
    )

    return render_page(
        "admin/dashboard.html",
        viewer,
        summary=summary,
        period=period,
        periods=reports.PERIODS,
        chart=reports.chart_points(buckets),
        recent_orders=recent_orders,
    )


# ---------- ADMIN ORDERS ----------
@app.route("/admin/orders")
def admin_orders():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    all_orders = Order.query.order_by(Order.created_at.desc()).all()
    metrics = reports.order_metrics(all_orders)
    counts = reports.count_by_status(all_orders)

    status = request.args.get("status", "").upper()
    date_from = parse_day(request.args.get("from"))
    date_to = parse_day(request.args.get("to"))

    query = Order.query
    if status in OrderStatus.__members__:
        query = query.filter_by(status=status)
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    if date_to:
        query = query.filter(Order.created_at < date_to + timedelta(days=1))

    orders = query.order_by(Order.created_at.desc()).all()

    return render_page(
        "admin/orders.html",
        viewer,
        orders=orders,
        metrics=metrics,
        pending=counts.get(OrderStatus.PENDING.value, 0),
        completed=counts.get(OrderStatus.COMPLETED.value, 0),
        statuses=list(OrderStatus),
        selected_status=status,
        date_from=request.args.get("from", ""),
        date_to=request.args.get("to", ""),
    )


@app.route("/admin/orders/<int:order_id>")
def admin_order_detail(order_id):
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    order = db.session.get(Order, order_id)
    if not order:
        return redirect(url_for("admin_orders"))

    return render_page("admin/order_detail.html", viewer, order=order, statuses=list(OrderStatus))


@app.route("/admin/orders/<int:order_id>/status", methods=["POST"])
def admin_order_status(order_id):
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    try:
        return update_order_status(order_id, request.form.get("status", ""))
    except ActionError as e:
        app.logger.warning("Order status update rejected: %s", e)
        flash(str(e), "error")
        return redirect(url_for("admin_order_detail", order_id=order_id))


# ---------- ADMIN PRODUCTS ----------
@app.route("/admin/products")
def admin_products():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    items = Product.query.order_by(Product.created_at.desc()).all()
    stats = reports.product_stats(items, app.config["LOW_STOCK_THRESHOLD"])
    return render_page("admin/products.html", viewer, products=items, stats=stats)


@app.route("/admin/products/new", methods=["GET", "POST"])
def admin_product_new():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    if request.method == "POST":
        try:
            return create_product(request.form)
        except ActionError as e:
            flash(str(e), "error")
            return render_page("admin/product_form.html", viewer, product=None, form=request.form), 400

    return render_page("admin/product_form.html", viewer, product=None, form={})


@app.route("/admin/products/<int:product_id>", methods=["GET", "POST"])
def admin_product_edit(product_id):
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    product = db.session.get(Product, product_id)
    if not product:
        return redirect(url_for("admin_products"))

    if request.method == "POST":
        try:
            return update_product(product_id, request.form)
        except ActionError as e:
            flash(str(e), "error")
            return render_page("admin/product_form.html", viewer, product=product, form=request.form), 400

    return render_page("admin/product_form.html", viewer, product=product, form={})


@app.route("/admin/products/<int:product_id>/delete", methods=["POST"])
def admin_product_delete(product_id):
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    try:
        return delete_product(product_id)
    except ActionError as e:
        flash(str(e), "error")
        return redirect(url_for("admin_products"))


# ---------- ADMIN CUSTOMERS ----------
@app.route("/admin/customers")
def admin_customers():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    users = User.query.order_by(User.created_at.desc()).all()
    stats = reports.customer_stats(users, Order.query.all())
    summary = reports.summarize_customers(stats)

    q = request.args.get("q", "")
    segment = request.args.get("segment", "all")
    if segment not in reports.CUSTOMER_SEGMENTS:
        segment = "all"

    return render_page(
        "admin/customers.html",
        viewer,
        customers=reports.filter_customers(stats, q, segment),
        summary=summary,
        query=q,
        segment=segment,
    )


# ---------- ADMIN ANALYTICS ----------
@app.route("/admin/analytics")
def admin_analytics():
    viewer = admin_viewer()
    if viewer is None:
        return redirect(url_for("home"))

    summary = reports.analytics_summary(app.config["LOW_STOCK_THRESHOLD"])
    monthly = reports.revenue_by_period("month")

    return render_page(
        "admin/analytics.html",
        viewer,
        summary=summary,
        chart=reports.chart_points(monthly),
        top_products=reports.top_products(5),
    )


# ---------- API ----------
@app.route("/api/products/<int:product_id>")
def api_product(product_id):
    try:
        product = db.session.get(Product, product_id)
        if not product:
            return jsonify({"error": "Product not found"}), 404
        return jsonify(product.to_dict())
    except Exception:
        app.logger.exception("Error fetching product %s", product_id)
        return jsonify({"error": "Failed to fetch product"}), 500


@app.route("/api/upload", methods=["POST", "OPTIONS"])
def api_upload():
    if request.method == "OPTIONS":
        return "", 200, {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    try:
        filename = save_image(request.files.get("file"), app.config["UPLOAD_FOLDER"])
    except UploadRejected as e:
        app.logger.warning("Upload rejected: %s", e)
        return jsonify({"error": str(e)}), 400
    except OSError:
        app.logger.exception("Upload error")
        return jsonify({"error": "Failed to upload image. Please try again."}), 500

    return jsonify({
        "success": True,
        "url": url_for("uploaded_file", filename=filename),
        "filename": filename,
    })


@app.route("/uploads/<path:filename>")
def uploaded_file(filename):
    return send_from_directory(app.config["UPLOAD_FOLDER"], filename)


# ---------- ERRORS ----------
@app.errorhandler(404)
def not_found(error):
    return render_page("error.html", message="Page not found"), 404


@app.errorhandler(413)
def request_too_large(error):
    if request.endpoint == "api_upload":
        app.logger.warning("Upload rejected: request body over %s bytes", app.config["MAX_CONTENT_LENGTH"])
        return jsonify({"error": "File too large. Maximum size is 5MB."}), 400
    return error


@app.errorhandler(500)
def server_error(error):
    app.logger.error("Unhandled error: %s", error)
    return render_page("error.html", message="Something went wrong. Please try again."), 500


# ================== RUN ==================
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=os.environ.get("SHOP_DEBUG") == "1")
