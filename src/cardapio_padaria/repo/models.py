
"""Modelos SQLAlchemy para categorias e itens do cardápio."""
from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, Float, Boolean, Text, TIMESTAMP
from datetime import datetime

class Base(DeclarativeBase):
    """Base declarativa."""
    pass

class CategoryRow(Base):
    __tablename__ = "categories"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    order: Mapped[int | None] = mapped_column("order", Integer, default=999)
    icon: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=datetime.utcnow)

class MenuItemRow(Base):
    """Produtos e registros de sistema (logo, configs) na mesma tabela."""
    __tablename__ = "menu_items"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text, default="")
    price: Mapped[float] = mapped_column(Float, default=0)
    category: Mapped[str] = mapped_column(String(64), index=True)  # sem FK: órfãos são tolerados
    image: Mapped[str] = mapped_column(Text, default="")
    available: Mapped[bool] = mapped_column(Boolean, default=True)
    order: Mapped[int | None] = mapped_column("order", Integer, default=999)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False), nullable=True)
