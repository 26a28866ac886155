from __future__ import annotations

import logging
from collections.abc import Callable

from btccustody.adapters.bitcoin_view import BitcoinView, EsploraBitcoinView
from btccustody.adapters.bridge_view import BridgeView, HttpBridgeView
from btccustody.config import Settings
from btccustody.persistence.uow import UnitOfWorkFactory
from btccustody.security.access import AuthorizedActor, StaticRoleStore
from btccustody.services.task_lifecycle_service import TaskLifecycleService

logger = logging.getLogger(__name__)


def build_bridge_view(settings: Settings) -> BridgeView:
    token = settings.bridge_api_token.get_secret_value() if settings.bridge_api_token else None
    return HttpBridgeView(
        settings.bridge_base_url,
        api_token=token,
        timeout=settings.http_timeout_seconds,
        max_attempts=settings.http_retry_attempts,
    )


def build_bitcoin_view(settings: Settings) -> BitcoinView:
    return EsploraBitcoinView(
        settings.esplora_base_url,
        timeout=settings.http_timeout_seconds,
        max_attempts=settings.http_retry_attempts,
    )


def build_lifecycle_service(
    settings: Settings,
    *,
    bridge: BridgeView | None = None,
    bitcoin: BitcoinView | None = None,
    now_fn: Callable[[], int] | None = None,
) -> TaskLifecycleService:
    role_store = StaticRoleStore(
        admins=settings.admin_actors,
        relayers=settings.relayer_actors,
    )
    if not settings.admin_actors:
        logger.warning("no_admin_actors_configured", extra={"extra": {"env": "ADMIN_ACTORS"}})
    return TaskLifecycleService(
        uow_factory=UnitOfWorkFactory(settings.state_db_path),
        bridge=bridge if bridge is not None else build_bridge_view(settings),
        bitcoin=bitcoin if bitcoin is not None else build_bitcoin_view(settings),
        authorizer=AuthorizedActor(role_store),
        amount_policy=settings.amount_policy(),
        mainnet=settings.mainnet,
        now_fn=now_fn,
    )
