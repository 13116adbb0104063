"""
领域错误定义
所有错误在请求边界被转换为统一的 {success: false, message, errors} 响应，
不会终止进程
"""
from typing import Any, Dict, Optional


class HotelError(Exception):
    """领域错误基类"""

    status_code: int = 400
    code: str = "hotel_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(HotelError):
    """请求字段缺失或格式错误，errors 为字段级错误信息"""

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message, {"errors": errors or {}})
        self.errors = errors or {}


class NotFoundError(HotelError):
    status_code = 404
    code = "not_found"


class ConflictError(HotelError):
    """重复房间号、删除被引用的房间等"""

    status_code = 409
    code = "conflict"


class RoomUnavailableError(HotelError):
    """房间在所选日期已被占用，整组预订被拒绝"""

    status_code = 409
    code = "room_unavailable"


class InvalidTransitionError(HotelError):
    """状态机中不存在的状态转换"""

    status_code = 400
    code = "invalid_transition"

    def __init__(self, message: str, from_state: Any = None, to_state: Any = None,
                 details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        if from_state is not None:
            payload["from"] = getattr(from_state, "value", from_state)
        if to_state is not None:
            payload["to"] = getattr(to_state, "value", to_state)
        super().__init__(message, payload)


class InvalidStateError(InvalidTransitionError):
    """预订组中没有处于所需状态的记录"""

    code = "invalid_state"


class AuthError(HotelError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(HotelError):
    status_code = 403
    code = "forbidden"
