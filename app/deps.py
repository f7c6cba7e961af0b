# app/deps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.request_context import set_request_context
from app.models.customer import Customer
from app.services.auth import ROLE_CUSTOMER, ROLE_STAFF, decode_access_token
from app.services.errors import DomainError
from app.services.order_events import Actor

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: int
    role: str
    restaurant_id: Optional[int] = None

    @property
    def is_staff(self) -> bool:
        return self.role == ROLE_STAFF

    def as_actor(self) -> Actor:
        return Actor(type="restaurant" if self.is_staff else "customer", id=self.id)


def _as_int(raw: Any) -> Optional[int]:
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return int(raw)
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_principal(request: Request, token: str = Depends(oauth2_scheme)) -> Principal:
    """Lê o JWT e devolve quem está chamando (cliente ou staff do restaurante)."""
    try:
        payload: Dict[str, Any] = decode_access_token(token)
    except ValueError:
        raise _unauthorized("Token inválido ou expirado")

    subject_id = _as_int(payload.get("sub"))
    if subject_id is None:
        raise _unauthorized("Token inválido (sem sub)")

    role = str(payload.get("role") or ROLE_CUSTOMER).strip().lower()
    if role not in {ROLE_CUSTOMER, ROLE_STAFF}:
        raise _unauthorized("Token inválido (role desconhecida)")

    restaurant_id = _as_int(payload.get("restaurant_id"))
    if role == ROLE_STAFF and restaurant_id is None:
        raise _unauthorized("Token de staff sem restaurant_id")

    principal = Principal(id=subject_id, role=role, restaurant_id=restaurant_id)
    # o middleware de observabilidade lê daqui para os logs de acesso
    request.state.principal = principal
    set_request_context(
        actor_id=str(subject_id),
        restaurant_id=str(restaurant_id) if restaurant_id is not None else None,
    )
    return principal


def get_current_customer(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Customer:
    if principal.role != ROLE_CUSTOMER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas clientes")
    customer = db.query(Customer).filter(Customer.id == principal.id).first()
    if not customer:
        raise _unauthorized("Cliente não encontrado")
    return customer


def get_current_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas equipe do restaurante")
    return principal


def http_error(exc: DomainError) -> HTTPException:
    """Traduz erros de domínio para a resposta HTTP correspondente."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
