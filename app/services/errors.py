from __future__ import annotations


class DomainError(Exception):
    """Base das regras de negócio do núcleo de pedidos / pontos / promoções."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTransitionError(DomainError):
    status_code = 409

    def __init__(self, current_status: str | None, new_status: str) -> None:
        super().__init__(f"Transição de status inválida: {current_status} -> {new_status}")
        self.current_status = current_status
        self.new_status = new_status


class InsufficientPointsError(DomainError):
    status_code = 422

    def __init__(self, balance: int, requested: int) -> None:
        super().__init__("Pontos insuficientes para o resgate")
        self.balance = balance
        self.requested = requested


class InvalidOrderError(DomainError):
    status_code = 422


class InvalidRewardError(DomainError):
    status_code = 422


class PromotionExpiredError(DomainError):
    status_code = 422

    def __init__(self, promotion_id: int, promotion_name: str | None = None) -> None:
        super().__init__(f"Promoção não está vigente: {promotion_name or promotion_id}")
        self.promotion_id = promotion_id


class NotFoundError(DomainError):
    status_code = 404


class PersistenceError(DomainError):
    status_code = 503
