from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sessionkeeper.core.cache.cart import Cart, cart_store
from sessionkeeper.core.cache.checkout import Checkout
from sessionkeeper.core.cache.coordinator import MultiTenantCacheCoordinator
from sessionkeeper.core.cache.orders import OrderHistory, orders_store
from sessionkeeper.core.clock import Scheduler, ThreadingScheduler
from sessionkeeper.core.config.models import AppConfig
from sessionkeeper.core.events.bus import EventBus
from sessionkeeper.core.events.log import EventLogger
from sessionkeeper.core.identity.controller import AuthSessionController
from sessionkeeper.core.identity.directory import UserDirectory
from sessionkeeper.core.identity.principal_store import PrincipalStore
from sessionkeeper.core.session.activity import SignalHub
from sessionkeeper.core.session.orchestrator import SessionOrchestrator
from sessionkeeper.core.storage.kv import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from sessionkeeper.core.ux.countdown import CountdownView


@dataclass
class SessionCore:
    cfg: AppConfig
    scheduler: Scheduler
    kv: KeyValueStore
    bus: EventBus
    hub: SignalHub
    cart: Cart
    orders: OrderHistory
    checkout: Checkout
    caches: MultiTenantCacheCoordinator
    orchestrator: SessionOrchestrator
    directory: UserDirectory
    principals: PrincipalStore
    auth: AuthSessionController
    countdown: CountdownView

    def shutdown(self) -> None:
        self.auth.shutdown()
        stop = getattr(self.scheduler, "shutdown", None)
        if callable(stop):
            stop()


def build_kv(cfg: AppConfig, *, logger: Optional[logging.Logger] = None) -> KeyValueStore:
    if cfg.storage.backend == "memory":
        return MemoryKeyValueStore()
    return JsonFileKeyValueStore(cfg.storage.path, logger=logger)


def build_core(
    cfg: Optional[AppConfig] = None,
    *,
    scheduler: Optional[Scheduler] = None,
    kv: Optional[KeyValueStore] = None,
    event_logger: Optional[EventLogger] = None,
    logger: Optional[logging.Logger] = None,
) -> SessionCore:
    """
    Wire one independent core. Every component shares `scheduler.lock`.
    Nothing is restored here; call `core.auth.initialize_from_persisted_principal()`.
    """
    cfg = cfg or AppConfig()
    logger = logger or logging.getLogger("sessionkeeper")
    scheduler = scheduler or ThreadingScheduler(logger=logger.getChild("clock"))
    if event_logger is None and cfg.events.enabled:
        event_logger = EventLogger(path=cfg.events.path)
    kv = kv if kv is not None else build_kv(cfg, logger=logger.getChild("storage"))

    lock = scheduler.lock
    bus = EventBus(logger=logger.getChild("events"), event_logger=event_logger)
    hub = SignalHub(logger=logger.getChild("signals"))

    cart = Cart(cart_store(kv, logger=logger.getChild("storage")), lock=lock, logger=logger.getChild("cache.cart"))
    orders = OrderHistory(
        orders_store(kv, logger=logger.getChild("storage")),
        clock_ms=scheduler.now_ms,
        lock=lock,
        logger=logger.getChild("cache.orders"),
    )
    caches = MultiTenantCacheCoordinator([cart, orders], bus=bus, lock=lock, logger=logger.getChild("cache"))
    orchestrator = SessionOrchestrator(scheduler=scheduler, hub=hub, bus=bus, cfg=cfg.session, logger=logger.getChild("session"))
    directory = UserDirectory(kv, clock_ms=scheduler.now_ms, logger=logger.getChild("identity.directory"))
    principals = PrincipalStore(kv, logger=logger.getChild("identity.principal"))
    auth = AuthSessionController(
        directory=directory,
        principals=principals,
        caches=caches,
        orchestrator=orchestrator,
        scheduler=scheduler,
        bus=bus,
        cfg=cfg.auth,
        logger=logger.getChild("auth"),
    )
    return SessionCore(
        cfg=cfg,
        scheduler=scheduler,
        kv=kv,
        bus=bus,
        hub=hub,
        cart=cart,
        orders=orders,
        checkout=Checkout(cart, orders, logger=logger.getChild("cache.checkout")),
        caches=caches,
        orchestrator=orchestrator,
        directory=directory,
        principals=principals,
        auth=auth,
        countdown=CountdownView(orchestrator, is_authenticated=auth.is_authenticated),
    )
