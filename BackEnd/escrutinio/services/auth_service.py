"""
Verificación de identidad de los usuarios.

La identidad la emite un proveedor externo; este servicio solo verifica el
JWT que llega como bearer token y extrae el identificador del usuario
(`sub`). No se gestionan usuarios, contraseñas ni sesiones.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from escrutinio.core.config import settings

# ========================================
# 🔧 CONFIGURACIÓN INICIAL
# ========================================

# El login ocurre en el proveedor de identidad; tokenUrl solo documenta el flujo
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/v1/token")

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    """Token inválido, expirado o sin sujeto"""
    pass


@dataclass(frozen=True)
class Contribuyente:
    id: str
    email: Optional[str] = None
    es_moderador: bool = False


class AuthService:

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """
        Decodificar y validar un token del proveedor de identidad.

        Raises:
            InvalidTokenError: Si la firma, la audiencia o la expiración fallan
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE,
            )
        except JWTError as e:
            logger.warning(f"Invalid token: {e}")
            raise InvalidTokenError("Token inválido o expirado")

    @staticmethod
    def contributor_from_token(token: str) -> Contribuyente:
        payload = AuthService.decode_token(token)
        usuario_id = payload.get("sub")
        if not usuario_id:
            raise InvalidTokenError("Token sin sujeto")
        return Contribuyente(
            id=str(usuario_id),
            email=payload.get("email"),
            es_moderador=str(usuario_id) in settings.MODERATOR_IDS,
        )


def get_current_contributor(token: str = Depends(oauth2_scheme)) -> Contribuyente:
    """
    Dependencia para obtener el usuario autenticado desde el token

    Raises:
        HTTPException: 401 si el token no es válido
    """
    try:
        return AuthService.contributor_from_token(token)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expirado o inválido",
            headers={"WWW-Authenticate": "Bearer"}
        )


def require_moderator(current: Contribuyente = Depends(get_current_contributor)) -> Contribuyente:
    """Dependencia que requiere autoridad de moderación"""
    if not current.es_moderador:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Se requieren permisos de moderador"
        )
    return current
