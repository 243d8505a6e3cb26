"""
외부 협력 시스템(Collaborator) 관련 예외 클래스 정의

워커는 이 예외를 잡지 않고 큐로 전파하여 재시도 판단을 큐에 맡깁니다.
"""


class CollaboratorError(Exception):
    """Collaborator 기본 예외"""
    pass


class SupplierUnreachableError(CollaboratorError):
    """공급사 채널 전송 실패"""
    def __init__(self, supplier_id: str, message: str = None):
        self.supplier_id = supplier_id
        self.message = message or f"Supplier unreachable: {supplier_id}"
        super().__init__(self.message)


class DeliveryFailedError(CollaboratorError):
    """메시지 게이트웨이 전송 실패"""
    def __init__(self, recipient: str, message: str = None):
        self.recipient = recipient
        self.message = message or f"Message delivery failed: {recipient}"
        super().__init__(self.message)


class CarrierUnavailableError(CollaboratorError):
    """배송사 추적 API 조회 실패"""
    def __init__(self, tracking_code: str, message: str = None):
        self.tracking_code = tracking_code
        self.message = message or f"Carrier unavailable for tracking code: {tracking_code}"
        super().__init__(self.message)


class OrderNotFoundError(CollaboratorError):
    """주문을 찾을 수 없음"""
    def __init__(self, order_id: str):
        self.order_id = order_id
        self.message = f"Order not found: {order_id}"
        super().__init__(self.message)
