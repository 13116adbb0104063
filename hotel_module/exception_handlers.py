"""
异常处理器
把领域错误、请求校验错误和 HTTP 错误统一转换为 {success: false, message, errors}
"""
import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hotel_module.errors import HotelError, ValidationError

logger = logging.getLogger(__name__)


def error_response(code: str, message: str, errors: Any = None) -> Dict[str, Any]:
    return {
        "success": False,
        "code": code,
        "message": message,
        "errors": errors if errors is not None else {},
    }


def _field_errors(exc: RequestValidationError) -> Dict[str, str]:
    """pydantic 错误列表 -> {字段路径: 错误信息}"""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        # 去掉 body / query / path 前缀
        if len(loc) > 1 and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        field = ".".join(loc) or "__root__"
        errors.setdefault(field, err.get("msg", "invalid"))
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HotelError)
    async def hotel_error_handler(request: Request, exc: HotelError) -> JSONResponse:
        errors = exc.errors if isinstance(exc, ValidationError) else exc.details
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.code, exc.message, errors),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_response("validation_error", "请求参数校验失败", _field_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = "not_found" if exc.status_code == 404 else "http_error"
        detail = exc.detail
        if isinstance(detail, dict):
            message = detail.get("message", "HTTP error")
            errors = detail
        else:
            message = str(detail) if detail else "HTTP error"
            errors = {}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message, errors),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "服务器内部错误"),
        )
