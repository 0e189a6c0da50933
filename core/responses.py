"""
Response envelope shared by every endpoint.

Success: `{"statusCode": 200, "data": ..., "message": "...", "success": true}`
Failure: `{"success": false, "message": "...", "statusCode": 4xx/5xx, "error": "<CODE>"}`
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class ApiResponse(BaseModel):
    """Successful operation result"""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(200, alias="statusCode")
    data: Any = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def ok(cls, data: Any = None, message: str = "Success", status_code: int = 200):
        return cls(status_code=status_code, data=data, message=message, success=status_code < 400)


def error_body(
    message: str, status_code: int, error_code: str, correlation_id: Optional[str] = None
) -> Dict[str, Any]:
    """Failure envelope"""
    body = {
        "success": False,
        "message": message,
        "statusCode": status_code,
        "error": error_code,
    }
    if correlation_id:
        body["correlationId"] = correlation_id
    return body
