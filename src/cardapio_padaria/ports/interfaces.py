"""Portas (interfaces) e DTOs do cardápio."""
from __future__ import annotations
from typing import Any, Protocol
from pydantic import BaseModel, ConfigDict, Field, field_validator

class Category(BaseModel):
    """Categoria do cardápio. `order` nulo ordena por último."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    order: int | None = 0
    icon: str | None = None
    created_at: str | None = None

class MenuItem(BaseModel):
    """Produto do cardápio (também usado para registros de sistema: logo e configs)."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    price: float = Field(default=0, ge=0)
    category: str = Field(min_length=1)
    image: str = ""
    available: bool = True
    order: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("description", "image", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("image")
    @classmethod
    def _image_ref(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://", "data:", "/")):
            raise ValueError("imagem deve ser URL http(s), caminho /uploads ou data URI")
        return v

class SyncPayload(BaseModel):
    """Corpo de GET/POST /api/sync: estado completo desejado."""
    categories: list[Category] = []
    products: list[MenuItem] = []

class SyncResult(SyncPayload):
    """Resultado de leitura do servidor, com carimbo local."""
    timestamp: float
    from_cache: bool = False

class AuthUser(BaseModel):
    id: str
    email: str
    is_admin: bool = Field(default=False, alias="isAdmin")
    model_config = ConfigDict(populate_by_name=True)

class RemoteStore(Protocol):
    """Porta de acesso ao backend de sincronização."""
    async def fetch_all(self, force_refresh: bool = False) -> SyncResult: ...
    async def push_all(self, products: list[MenuItem], categories: list[Category]) -> None: ...
    def invalidate(self) -> None: ...
    async def aclose(self) -> None: ...

class SnapshotStore(Protocol):
    """Porta do cache local durável (melhor esforço)."""
    def save(self, categories: list[Category], products: list[MenuItem], logo: str | None) -> None: ...
    def load(self) -> Any: ...
