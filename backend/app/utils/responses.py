"""
Unified API response format
"""
from flask import jsonify
from typing import Any, Optional, Dict


class ApiResponse:
    """API response builder

    Success bodies always carry ``success: True`` plus the payload keys at the
    top level. Error bodies carry ``success: False``, a human readable
    ``message`` and a stable machine readable ``error`` code.
    """

    @staticmethod
    def success(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> tuple:
        """
        Success response (200)

        Args:
            data: Keys merged into the top level of the body
            message: Optional message

        Returns:
            (Flask Response, status code)
        """
        response = {'success': True}
        if message:
            response['message'] = message
        if data:
            response.update(data)
        return jsonify(response), 200

    @staticmethod
    def created(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> tuple:
        """Created response (201)"""
        response, _ = ApiResponse.success(data, message)
        return response, 201

    @staticmethod
    def error(
        message: str,
        code: int = 400,
        error_code: str = 'BAD_REQUEST',
        details: Optional[Dict] = None
    ) -> tuple:
        """
        Error response

        Args:
            message: Error message
            code: HTTP status code
            error_code: Machine readable error code
            details: Extra error information

        Returns:
            (Flask Response, status code)
        """
        response = {
            'success': False,
            'message': message,
            'error': error_code,
        }
        if details:
            response['details'] = details
        return jsonify(response), code

    @staticmethod
    def not_found(message: str = 'Resource not found') -> tuple:
        """404 response"""
        return ApiResponse.error(message, 404, 'NOT_FOUND')

    @staticmethod
    def unauthorized(message: str = 'Unauthorized request') -> tuple:
        """401 response"""
        return ApiResponse.error(message, 401, 'UNAUTHORIZED')

    @staticmethod
    def forbidden(message: str = 'Forbidden') -> tuple:
        """403 response"""
        return ApiResponse.error(message, 403, 'FORBIDDEN')

    @staticmethod
    def validation_error(message: str, details: Optional[Dict] = None) -> tuple:
        """Validation error response"""
        return ApiResponse.error(message, 400, 'VALIDATION_ERROR', details)

    @staticmethod
    def server_error(message: str = 'Internal server error') -> tuple:
        """500 response"""
        return ApiResponse.error(message, 500, 'INTERNAL_ERROR')


def success_response(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> tuple:
    """Shortcut for ApiResponse.success"""
    return ApiResponse.success(data, message)


def error_response(
    message: str,
    code: int = 400,
    error_code: str = 'BAD_REQUEST',
    details: Optional[Dict] = None
) -> tuple:
    """Shortcut for ApiResponse.error"""
    return ApiResponse.error(message, code, error_code, details)
