
"""Pub/sub explícito: MessageBus tipado e canal entre abas (BroadcastChannel).

Cada aba/janela do mesmo dispositivo é um `SyncedData` com seu próprio
`BroadcastChannel`; todos compartilham um `BroadcastHub`. Uma mensagem
publicada chega a todos os canais abertos com o mesmo nome, exceto o emissor.
O canal é otimização local: nunca substitui o sync com o servidor.
"""
from __future__ import annotations
import time
from typing import Callable, Generic, Literal, TypeVar
from pydantic import BaseModel, Field
from ..ports.interfaces import Category, MenuItem
from ..core.logging import get_logger

log = get_logger("broadcast")

T = TypeVar("T")

class Subscription:
    """Handle de inscrição. `unsubscribe()` é idempotente; funciona como context manager."""
    def __init__(self, release: Callable[[], None]):
        self._release: Callable[[], None] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()

class MessageBus(Generic[T]):
    """Barramento síncrono. Exceção de um handler é logada e não afeta os demais."""
    def __init__(self, name: str = "bus"):
        self.name = name
        self._handlers: dict[int, Callable[[T], None]] = {}
        self._next_id = 0

    def subscribe(self, handler: Callable[[T], None]) -> Subscription:
        hid = self._next_id
        self._next_id += 1
        self._handlers[hid] = handler
        return Subscription(lambda: self._handlers.pop(hid, None))

    def publish(self, message: T) -> int:
        """Entrega a todos os inscritos; retorna quantos receberam sem erro."""
        delivered = 0
        for handler in list(self._handlers.values()):
            try:
                handler(message)
                delivered += 1
            except Exception as exc:
                log.warning("bus_handler_failed", bus=self.name, error=repr(exc))
        return delivered

    def __len__(self) -> int:
        return len(self._handlers)

class BroadcastData(BaseModel):
    """Campos parciais: ausente = não incluído; `logo=None` explícito = sem logo."""
    categories: list[Category] | None = None
    products: list[MenuItem] | None = None
    logo: str | None = None

    def has(self, field: str) -> bool:
        return field in self.model_fields_set

class BroadcastMessage(BaseModel):
    type: Literal["sync", "update"] = "sync"
    data: BroadcastData | None = None
    timestamp: float = Field(default_factory=lambda: time.time() * 1000)

class BroadcastHub:
    """Registro dos canais abertos de um dispositivo, por nome."""
    def __init__(self):
        self._channels: dict[str, list["BroadcastChannel"]] = {}

    def _attach(self, ch: "BroadcastChannel") -> None:
        self._channels.setdefault(ch.name, []).append(ch)

    def _detach(self, ch: "BroadcastChannel") -> None:
        peers = self._channels.get(ch.name, [])
        if ch in peers:
            peers.remove(ch)
        if not peers:
            self._channels.pop(ch.name, None)

    def _deliver(self, sender: "BroadcastChannel", message: BroadcastMessage) -> int:
        # cópia por destinatário (semântica de structured clone)
        wire = message.model_dump(mode="json")
        if message.data is not None and not message.data.has("logo"):
            wire["data"].pop("logo", None)
        count = 0
        for peer in list(self._channels.get(sender.name, [])):
            if peer is not sender:
                peer._receive(BroadcastMessage.model_validate(wire))
                count += 1
        return count

    def open_count(self, name: str) -> int:
        return len(self._channels.get(name, []))

default_hub = BroadcastHub()

class BroadcastChannel:
    """Canal nomeado entre abas. Após `close()` não envia nem recebe."""
    def __init__(self, name: str, hub: BroadcastHub | None = None):
        self.name = name
        self._hub = hub or default_hub
        self._bus: MessageBus[BroadcastMessage] = MessageBus(f"channel:{name}")
        self._closed = False
        self._hub._attach(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def post_message(self, message: BroadcastMessage) -> int:
        """Fire-and-forget; retorna o número de abas que receberam."""
        if self._closed:
            return 0
        return self._hub._deliver(self, message)

    def subscribe(self, handler: Callable[[BroadcastMessage], None]) -> Subscription:
        return self._bus.subscribe(handler)

    def _receive(self, message: BroadcastMessage) -> None:
        if not self._closed:
            self._bus.publish(message)

    def publish(self, categories: list[Category], products: list[MenuItem], logo: str | None) -> int:
        """Publica o estado recém buscado para as outras abas (logo sempre explícita)."""
        data = BroadcastData(categories=categories, products=products, logo=logo)
        return self.post_message(BroadcastMessage(type="sync", data=data))

    def on_message(self, handler: Callable[[BroadcastMessage], None]) -> Subscription:
        return self.subscribe(handler)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._hub._detach(self)

    def __enter__(self) -> "BroadcastChannel":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
