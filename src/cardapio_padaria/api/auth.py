
"""Sessão admin: hash de senha, token assinado com validade e guarda de rotas."""
from __future__ import annotations
import hashlib, hmac
from functools import wraps
from flask import request
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from kink import di
from ..core.settings import Settings
from ..core.errors import AuthError

ADMIN_USER = {"id": "admin-001", "email": "admin@cardapio.local", "isAdmin": True}

def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt="admin-session-v1")

def hash_password(password: str) -> str:
    """SHA-256 hex da senha (mesmo formato de CARDAPIO_ADMIN_PASSWORD_HASH)."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()

def check_password(password: str, expected_hash: str) -> bool:
    """Comparação em tempo constante."""
    return hmac.compare_digest(hash_password(password), expected_hash.lower())

def generate_token(settings: Settings | None = None) -> str:
    s = settings or di[Settings]
    return _serializer(s).dumps({"sub": ADMIN_USER["id"], "email": ADMIN_USER["email"], "isAdmin": True})

def verify_token(token: str | None, settings: Settings | None = None) -> dict | None:
    """Decodifica o token; None se ausente, adulterado, expirado ou sem flag admin."""
    if not token:
        return None
    s = settings or di[Settings]
    try:
        payload = _serializer(s).loads(token, max_age=s.token_max_age_s)
    except (SignatureExpired, BadSignature):
        return None
    if not isinstance(payload, dict) or not payload.get("sub") or not payload.get("isAdmin"):
        return None
    return payload

def client_ip() -> str:
    """IP do cliente: primeiro hop de X-Forwarded-For, depois X-Real-IP."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.remote_addr or "unknown"

def require_admin(view):
    """Exige cookie de sessão admin válido; senão AuthError (401)."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        s: Settings = di[Settings]
        token = request.cookies.get(s.cookie_name)
        if not token:
            raise AuthError("Não autorizado. Faça login primeiro.")
        if verify_token(token, s) is None:
            raise AuthError("Sessão expirada ou inválida. Faça login novamente.")
        return view(*args, **kwargs)
    return wrapper
