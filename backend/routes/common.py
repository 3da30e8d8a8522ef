"""
SalesOps - Requête normalisée et helpers des handlers /api/<route>

Un handler: async def handler(req: ApiRequest) -> dict | Response
  - dict       -> 200 JSON
  - Response   -> renvoyée telle quelle (status spécifique)
  - HTTPException(status, detail) -> enveloppe {"success": False, ...}
"""

from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from services.upstream import UpstreamError

M = TypeVar("M", bound=BaseModel)


class ApiRequest(BaseModel):
    method: str = "GET"
    route: str = ""
    path: str = ""
    query: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    raw_body: bytes = b""
    client_host: Optional[str] = None

    def json_body(self) -> dict:
        """Corps JSON objet ({} sinon)"""
        return self.body if isinstance(self.body, dict) else {}

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def api_error(status_code: int, error: str, **extra) -> HTTPException:
    """HTTPException dont le detail devient le corps de l'enveloppe"""
    detail = {"error": error}
    detail.update({k: v for k, v in extra.items() if v is not None})
    return HTTPException(status_code=status_code, detail=detail)


def upstream_error(e: UpstreamError, status_code: int, error: Optional[str] = None, **extra) -> HTTPException:
    """error absent -> message amont; sinon le message amont passe dans details"""
    details = e.payload
    if details is None and error:
        details = e.message
    return api_error(status_code, error or e.message, details=details, **extra)


def require_method(req: ApiRequest, *methods: str) -> None:
    if req.method not in methods:
        allowed = " or ".join(methods)
        raise api_error(405, f"Method not allowed. Use {allowed}.")


def parse_body(model: Type[M], req: ApiRequest) -> M:
    """Valide le corps JSON, 400 avec le premier message pydantic"""
    try:
        return model.model_validate(req.json_body())
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        message = first.get("msg", "Invalid body")
        raise api_error(400, f"Invalid {field}: {message}" if field else message)


def respond(status_code: int, content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def error_body(detail: Any) -> dict:
    if isinstance(detail, dict):
        return {"success": False, **detail}
    return {"success": False, "error": str(detail)}
