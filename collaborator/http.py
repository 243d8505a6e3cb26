"""
HTTP 기반 Collaborator 참조 구현 (httpx.AsyncClient)

네트워크 오류, 4xx/5xx 응답은 모두 각 계약의 예외로 변환되어 워커로 전파됩니다.
멱등 처리를 위해 external_id를 Idempotency-Key 헤더로 전달합니다.
"""

import logging
from typing import Any

import httpx

from collaborator.base import CarrierTrackingAPI, MessagingGateway, SupplierChannel
from collaborator.exception import (
    CarrierUnavailableError,
    DeliveryFailedError,
    SupplierUnreachableError,
)
from collaborator.model import (
    Channel,
    DeliveryReceipt,
    InventoryItem,
    Supplier,
    SupplierAck,
    TrackingStatus,
)

logger = logging.getLogger(__name__)


class _HttpClient:
    """공통 httpx 클라이언트 래퍼"""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HttpSupplierChannel(_HttpClient, SupplierChannel):
    """공급사 API 채널"""

    async def send(self, supplier: Supplier, payload: dict[str, Any], external_id: str) -> SupplierAck:
        url = supplier.endpoint or f"/suppliers/{supplier.id}/orders"
        try:
            response = await self._client.post(
                url, json=payload, headers={"Idempotency-Key": external_id}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SupplierUnreachableError(supplier.id, f"Failed to send order to supplier {supplier.id}: {e}")

        body = response.json() if response.content else {}
        logger.debug(f"Supplier accepted order: supplier={supplier.id}, external_id={external_id}")
        return SupplierAck(
            supplier_id=supplier.id,
            external_id=external_id,
            communication_id=body.get("communicationId"),
            accepted=body.get("accepted", True),
        )

    async def fetch_inventory(self, supplier: Supplier) -> list[InventoryItem]:
        try:
            response = await self._client.get(f"/suppliers/{supplier.id}/inventory")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SupplierUnreachableError(supplier.id, f"Failed to fetch inventory of supplier {supplier.id}: {e}")

        return [InventoryItem(**item) for item in response.json().get("items", [])]


class HttpMessagingGateway(_HttpClient, MessagingGateway):
    """메시지 게이트웨이 API (409 응답은 중복 전송으로 간주)"""

    async def send(
        self,
        channel: Channel,
        recipient: str,
        message: str,
        external_id: str,
        subject: str | None = None,
    ) -> DeliveryReceipt:
        payload = {
            "channel": channel.value,
            "to": recipient,
            "message": message,
            "externalId": external_id,
        }
        if subject:
            payload["subject"] = subject

        try:
            response = await self._client.post(
                "/messages", json=payload, headers={"Idempotency-Key": external_id}
            )
            duplicate = response.status_code == httpx.codes.CONFLICT
            if not duplicate:
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryFailedError(recipient, f"Failed to deliver {channel.value} message: {e}")

        body = response.json() if response.content else {}
        return DeliveryReceipt(
            message_id=body.get("messageId") or external_id,
            channel=channel,
            recipient=recipient,
            external_id=external_id,
            duplicate=duplicate,
        )


class HttpCarrierTrackingAPI(_HttpClient, CarrierTrackingAPI):
    """배송사(Correios) 추적 API"""

    async def get_status(self, tracking_code: str) -> TrackingStatus:
        try:
            response = await self._client.get(f"/tracking/{tracking_code}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CarrierUnavailableError(tracking_code, f"Failed to query carrier for {tracking_code}: {e}")

        body = response.json()
        return TrackingStatus(
            tracking_code=tracking_code,
            status=body["status"],
            location=body.get("location"),
            description=body.get("description"),
            timestamp=body.get("timestamp"),
        )
