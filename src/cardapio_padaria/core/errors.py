
"""Taxonomia de erros do cardápio.

- TransientError: rede/servidor (timeout, 5xx, 408, 429). Único tipo com retry.
- PayloadInvalidError / ResponseShapeError: dados inválidos; corrigir e reenviar.
- AuthError: sessão ausente ou expirada; refazer login.
- Erros de integridade (categoria em uso, nome duplicado) nascem antes da rede.
"""
from __future__ import annotations


class CardapioError(Exception):
    """Base de todos os erros do domínio."""
    status_code = 500

    def __init__(self, message: str, details: object | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class TransientError(CardapioError):
    """Falha de rede, timeout ou erro do servidor. Pode ser repetida."""
    status_code = 503


class PayloadInvalidError(CardapioError):
    """Payload recusado por validação (nome duplicado, imagem grande, registro malformado)."""
    status_code = 400


class ResponseShapeError(PayloadInvalidError):
    """Resposta 2xx sem o formato esperado; repetir não ajuda."""
    status_code = 502


class AuthError(CardapioError):
    """Sessão admin ausente, inválida ou expirada."""
    status_code = 401


class RecordNotFoundError(CardapioError):
    status_code = 404


class ReservedRecordError(CardapioError):
    """Tentativa de editar registro de sistema (logo, config) como produto comum."""
    status_code = 400


class CategoryInUseError(CardapioError):
    """Categoria ainda referenciada por produtos; exclusão recusada."""
    status_code = 409

    def __init__(self, category_id: str, product_ids: list[str]):
        super().__init__(
            f"Categoria {category_id} possui {len(product_ids)} produto(s). Remova ou mova os produtos antes de excluir.",
            details={"category_id": category_id, "product_ids": product_ids},
        )
        self.category_id = category_id
        self.product_ids = product_ids


class DuplicateCategoryError(PayloadInvalidError):
    def __init__(self, name: str):
        super().__init__(f"Já existe uma categoria chamada '{name}'", details={"name": name})
        self.name = name
