from fastapi import Depends
from sqlalchemy.orm import Session

from flowhook.database import get_db
from flowhook.services.dedup_service import DedupLedger, get_dedup_ledger
from flowhook.services.delivery_status_service import DeliveryStatusProcessor
from flowhook.services.engine_client import HttpExecutionEngine
from flowhook.services.media_service import GraphMediaFetcher
from flowhook.services.ports import ExecutionEngine, ExecutionStore, MessageSender
from flowhook.services.qr_service import OpenCvQRDecoder
from flowhook.services.router_service import MessageRouter
from flowhook.services.sender_service import GraphMessageSender
from flowhook.services.store import SqlExecutionStore
from flowhook.services.waiting_service import WaitingStateResolver
from flowhook.services.webhook_service import WebhookProcessor


def get_store(db: Session = Depends(get_db)) -> ExecutionStore:
    return SqlExecutionStore(db)


def get_ledger() -> DedupLedger:
    return get_dedup_ledger()


def get_sender() -> MessageSender:
    return GraphMessageSender()


def get_engine() -> ExecutionEngine:
    return HttpExecutionEngine()


def get_resolver(
    store: ExecutionStore = Depends(get_store),
    sender: MessageSender = Depends(get_sender),
    engine: ExecutionEngine = Depends(get_engine),
) -> WaitingStateResolver:
    return WaitingStateResolver(
        store=store,
        sender=sender,
        engine=engine,
        media_fetcher=GraphMediaFetcher(),
        qr_decoder=OpenCvQRDecoder(),
    )


def get_processor(
    store: ExecutionStore = Depends(get_store),
    ledger: DedupLedger = Depends(get_ledger),
    sender: MessageSender = Depends(get_sender),
    engine: ExecutionEngine = Depends(get_engine),
    resolver: WaitingStateResolver = Depends(get_resolver),
) -> WebhookProcessor:
    router = MessageRouter(store=store, sender=sender, engine=engine, resolver=resolver)
    return WebhookProcessor(
        store=store,
        ledger=ledger,
        router=router,
        status_processor=DeliveryStatusProcessor(store),
    )
