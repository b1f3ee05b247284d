from typing import Optional
from fastapi import HTTPException


class CustomException(HTTPException):
    def __init__(self, code: str, message: str, dev_message: str = "", status_code: int = 400, detail: str = ""):
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.message = message
        self.dev_message = dev_message
        self.detail = detail or message

    def __str__(self):
        return self.message

    def to_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
            "dev_message": self.dev_message
        }


class DatabaseError(Exception):
    """쿼리 빌더(DatabaseService)가 변환한 DB 에러"""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint

    def to_dict(self):
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }


class StoreError(Exception):
    """error_logs 저장소 호출 실패"""


class RecordNotFoundError(StoreError):
    pass
