
"""API Flask: sync do cardápio, logo, configs do site, auth admin e upload de imagens."""
from __future__ import annotations
import json, os
from uuid import uuid4
from flask import Flask, request, jsonify, send_from_directory
from flask_limiter import Limiter
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename
from kink import di
from ..core.di import bootstrap_di
from ..core.logging import set_trace_id, get_trace_id, get_logger
from ..core.settings import Settings
from ..core.errors import CardapioError, PayloadInvalidError
from ..core.guardrails import validate_sync_payload, sanitize_text
from ..core.catalog import load_seed
from ..domain.reserved import partition_products
from ..domain.services import menu_service
from ..repo import repo
from .auth import require_admin, check_password, generate_token, verify_token, client_ip, ADMIN_USER

log = get_logger("api")

SYNC_CACHE_CONTROL = "public, max-age=60, stale-while-revalidate=300, stale-if-error=3600"
LOGO_CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=86400"
CONFIG_CACHE_CONTROL = "public, max-age=21600, stale-while-revalidate=86400"
ALLOWED_UPLOAD_TYPES = {"image/webp": "webp", "image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}

def create_app(settings: Settings | None = None) -> Flask:
    """Cria a app Flask com DI, rate limit e rotas registradas."""
    settings = bootstrap_di(settings)
    app = Flask(__name__)
    limiter = Limiter(key_func=client_ip, app=app, default_limits=[], storage_uri="memory://")
    admin_limit = limiter.shared_limit(settings.admin_rate_limit, scope="admin")

    @app.before_request
    def _trace():
        set_trace_id(request.headers.get("X-Trace-Id"))

    @app.after_request
    def _trace_header(resp):
        resp.headers["X-Trace-Id"] = get_trace_id()
        return resp

    @app.errorhandler(CardapioError)
    def _domain_error(exc: CardapioError):
        log.warning("request_failed", path=request.path, status=exc.status_code, error=exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _db_error(exc: SQLAlchemyError):
        log.error("db_error", path=request.path, error=str(exc))
        return jsonify({"error": "Erro ao acessar o banco de dados", "details": str(exc)}), 500

    @app.errorhandler(429)
    def _rate_limited(exc):
        log.warning("rate_limited", path=request.path, ip=client_ip())
        return jsonify({"error": "Muitas requisições. Aguarde um momento."}), 429

    @app.get("/healthz")
    def healthz():
        """Health check básico (inclui banco)."""
        ok = repo.health_check()
        return {"ok": ok}, (200 if ok else 503)

    # ---------- Sync ----------
    @app.get("/api/sync")
    def sync_get():
        """Estado completo: categorias + produtos (com registros de sistema)."""
        categories, products = repo.get_categories_and_menu_items()
        log.info("sync_get", categories=len(categories), products=len(products))
        resp = jsonify({
            "categories": [c.model_dump(mode="json") for c in menu_service.sort_categories(categories)],
            "products": [p.model_dump(mode="json") for p in products],
        })
        resp.headers["Cache-Control"] = SYNC_CACHE_CONTROL
        resp.headers["X-Cache-Version"] = "v1"
        return resp

    @app.post("/api/sync")
    @admin_limit
    @require_admin
    def sync_post():
        """Substitui o estado por diff (upsert dos enviados, remove ausentes não reservados)."""
        body = request.get_json(silent=True)
        if body is None:
            raise PayloadInvalidError(
                "Erro ao processar dados enviados",
                details="O corpo da requisição é inválido ou muito grande. Reduza o tamanho das imagens e tente novamente.",
            )
        payload = validate_sync_payload(body, settings.max_inline_image_kb)
        result = repo.sync_data(payload.categories, payload.products)
        return jsonify({
            "success": True,
            "message": "Dados sincronizados com sucesso!",
            "categoriesCount": len(payload.categories),
            "productsCount": len(payload.products),
            "sync": result,
        })

    # ---------- Logo ----------
    @app.get("/api/logo")
    def logo_get():
        resp = jsonify({"logo": repo.get_logo()})
        resp.headers["Cache-Control"] = LOGO_CACHE_CONTROL
        return resp

    @app.post("/api/logo")
    @admin_limit
    @require_admin
    def logo_post():
        """Salva a logo (data URI ou URL); null remove."""
        body = request.get_json(silent=True) or {}
        logo = body.get("logo")
        if not logo:
            repo.delete_logo()
            return {"success": True, "message": "Logo removida"}
        if not isinstance(logo, str) or not logo.startswith(("data:", "http://", "https://", "/")):
            raise PayloadInvalidError("Logo deve ser data URI ou URL")
        repo.save_logo(logo)
        return {"success": True, "message": "Logo salva com sucesso"}

    # ---------- Configurações do site (ex: horários) ----------
    @app.get("/api/site-config")
    def site_config_get():
        key = request.args.get("key")
        if not key:
            raise PayloadInvalidError("Parametro 'key' obrigatorio")
        raw = repo.get_site_config(key)
        try:
            value = json.loads(raw) if raw else None
        except ValueError:
            value = None
        resp = jsonify({"key": key, "value": value})
        if value is not None:
            resp.headers["Cache-Control"] = CONFIG_CACHE_CONTROL
        return resp

    @app.post("/api/site-config")
    @admin_limit
    @require_admin
    def site_config_post():
        body = request.get_json(silent=True) or {}
        key = body.get("key")
        if not key or not isinstance(key, str):
            raise PayloadInvalidError("Campo 'key' obrigatorio")
        if "value" not in body:
            raise PayloadInvalidError("Campo 'value' obrigatorio")
        repo.save_site_config(sanitize_text(key), json.dumps(body["value"], ensure_ascii=False))
        return {"success": True, "key": key, "message": "Configuracao salva com sucesso"}

    # ---------- Cardápio público ----------
    @app.get("/api/cardapio")
    def public_menu():
        """Vista pública: só categorias visíveis e produtos disponíveis."""
        categories, products = repo.get_categories_and_menu_items()
        part = partition_products(products)
        return jsonify({
            "logo": part.logo,
            "config": part.site_config,
            "categories": menu_service.public_menu(categories, part.visible),
        })

    # ---------- Auth ----------
    @app.post("/api/auth/login")
    @limiter.limit(settings.login_rate_limit)
    def login():
        body = request.get_json(silent=True) or {}
        password = body.get("password")
        if not password or not isinstance(password, str):
            raise PayloadInvalidError("Senha é obrigatória")
        if not settings.admin_password_hash:
            log.error("admin_hash_missing")
            return {"error": "Erro de configuração do servidor"}, 500
        if not check_password(password, settings.admin_password_hash):
            log.warning("login_failed", ip=client_ip())
            return {"error": "Senha incorreta"}, 401
        resp = jsonify({"success": True, "user": ADMIN_USER})
        resp.set_cookie(settings.cookie_name, generate_token(settings), httponly=True, secure=settings.cookie_secure,
                        samesite="Lax", path="/", max_age=settings.token_max_age_s)
        log.info("login_ok", ip=client_ip())
        return resp

    @app.post("/api/auth/logout")
    def logout():
        resp = jsonify({"success": True, "message": "Logout realizado com sucesso"})
        resp.delete_cookie(settings.cookie_name, path="/", httponly=True, samesite="Lax")
        return resp

    @app.get("/api/auth/me")
    def me():
        payload = verify_token(request.cookies.get(settings.cookie_name), settings)
        if payload is None:
            resp = jsonify({"authenticated": False, "user": None})
            if request.cookies.get(settings.cookie_name):
                resp.delete_cookie(settings.cookie_name, path="/", httponly=True, samesite="Lax")
            return resp, 401
        return {"authenticated": True, "user": {"id": payload["sub"], "email": payload["email"], "isAdmin": True}}

    # ---------- Upload de imagens ----------
    @app.post("/api/upload")
    @admin_limit
    @require_admin
    def upload():
        """Recebe imagem já comprimida (webp/jpeg/png, até 1MB) e devolve URL pública."""
        file = request.files.get("file")
        folder = secure_filename(request.form.get("folder") or "products") or "products"
        if file is None:
            raise PayloadInvalidError("Nenhum arquivo enviado")
        ext = ALLOWED_UPLOAD_TYPES.get(file.mimetype)
        if ext is None:
            raise PayloadInvalidError(f"Tipo não permitido: {file.mimetype}. Use WebP, JPEG ou PNG.")
        data = file.read()
        if len(data) > settings.max_upload_bytes:
            raise PayloadInvalidError(f"Arquivo muito grande ({len(data) / (1024 * 1024):.1f}MB). Máximo: 1MB.")
        target_dir = os.path.join(os.path.abspath(settings.upload_dir), folder)
        os.makedirs(target_dir, exist_ok=True)
        name = f"{uuid4().hex}.{ext}"
        with open(os.path.join(target_dir, name), "wb") as f:
            f.write(data)
        log.info("upload_ok", file=f"{folder}/{name}", size_kb=round(len(data) / 1024))
        return {"url": f"/uploads/{folder}/{name}", "fileName": f"{folder}/{name}", "sizeKB": round(len(data) / 1024)}

    @app.get("/uploads/<path:name>")
    def uploaded(name: str):
        resp = send_from_directory(os.path.abspath(settings.upload_dir), name)
        resp.headers["Cache-Control"] = "public, max-age=31536000, immutable"
        return resp

    # ---------- Manutenção ----------
    @app.post("/api/cleanup")
    @admin_limit
    @require_admin
    def cleanup():
        result = repo.cleanup_invalid_categories()
        return {"success": True, "deletedCategories": result["deleted"], "totalCategoriesChecked": result["totalChecked"]}

    @app.post("/api/init")
    @admin_limit
    @require_admin
    def init_data():
        """Popula o banco com o seed se ainda estiver vazio."""
        if repo.has_data():
            return {"success": True, "initialized": False, "message": "Banco já possui dados"}
        seed = load_seed(settings.seed_path)
        result = repo.initialize_data(seed.categories, seed.products)
        return {"success": True, "initialized": True, **result}

    di["app"] = app
    return app
