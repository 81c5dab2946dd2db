"""
=============================================================================
AUTH.PY — Identidad del Usuario
=============================================================================
Este servicio NO autentica a nadie. El proveedor de autenticación externo
emite un JWT y aquí solo se verifica la firma y se lee quién es:

  - sub  → identificador opaco del usuario (obligatorio)
  - name → nombre para mostrar (opcional, se usa en el primer inicio)
  - tz   → zona horaria del dispositivo (opcional, idem)

A partir de aquí el user_id viaja como parámetro explícito por todo el
motor: no existe un "usuario actual" global.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN
# ─────────────────────────────────────────────────────────────────────────────

SECRET_KEY = os.getenv("SECRET_KEY", "rizq-dev-secret-key-cambiar-en-produccion")
# SECRET_KEY → la comparte el proveedor de autenticación que firma los tokens

ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

DEV_TOKEN_EXPIRE_DAYS = 30


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: Optional[str] = None
    timezone: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# TOKENS JWT
# ─────────────────────────────────────────────────────────────────────────────

def create_access_token(user_id: str, name: Optional[str] = None, tz: Optional[str] = None) -> str:
    """
    Token de desarrollo/tests con la misma forma que los del proveedor.
    En producción los tokens los emite el proveedor externo.
    """
    to_encode = {
        "sub": str(user_id),
        "exp": datetime.utcnow() + timedelta(days=DEV_TOKEN_EXPIRE_DAYS),
    }
    if name:
        to_encode["name"] = name
    if tz:
        to_encode["tz"] = tz
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Datos del token, o None si es inválido o ha expirado"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIA: IDENTIDAD DE LA PETICIÓN
# ─────────────────────────────────────────────────────────────────────────────

security = HTTPBearer()


async def get_identity(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    """
    Extrae la identidad del header "Authorization: Bearer <jwt>".

      @app.get("/algo")
      def algo(identity: Identity = Depends(get_identity)):
          return identity.user_id
    """
    payload = decode_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o expirado",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token sin identificador de usuario"
        )

    return Identity(user_id=str(user_id), display_name=payload.get("name"), timezone=payload.get("tz"))
