"""
Standardized Async Base Classes and Patterns
Provides consistent async interfaces and result handling across all services
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, TypeVar, Optional, Dict, Any, Callable
from contextlib import asynccontextmanager

# Set up logging
logger = logging.getLogger(__name__)

# Generic type for async results
T = TypeVar("T")


@dataclass
class AsyncResult(Generic[T]):
    """Standardized result wrapper for all async operations"""

    success: bool
    data: Optional[T] = None
    error: Optional["AsyncError"] = None
    message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    partial: bool = False

    @classmethod
    def success_result(
        cls, data: T, message: str = None, metadata: Dict[str, Any] = None
    ) -> "AsyncResult[T]":
        """Create a successful result"""
        return cls(success=True, data=data, message=message, metadata=metadata)

    @classmethod
    def error_result(
        cls, error: "AsyncError", metadata: Dict[str, Any] = None
    ) -> "AsyncResult[T]":
        """Create an error result"""
        return cls(success=False, error=error, message=error.message, metadata=metadata)

    @classmethod
    def partial_result(
        cls,
        data: T,
        error: "AsyncError",
        message: str = None,
        metadata: Dict[str, Any] = None,
    ) -> "AsyncResult[T]":
        """Create a partial success result (operation completed but with issues)"""
        return cls(
            success=True,
            data=data,
            error=error,
            message=message,
            metadata=metadata,
            partial=True,
        )

    @property
    def is_success(self) -> bool:
        """Check if operation was successful"""
        return self.success and not self.partial

    @property
    def is_error(self) -> bool:
        """Check if operation failed"""
        return not self.success

    @property
    def is_partial(self) -> bool:
        """Check if operation partially succeeded"""
        return self.success and self.partial


# Alias used by services
ServiceResult = AsyncResult


class AsyncError(Exception):
    """Base class for async operation errors"""

    def __init__(
        self, message: str, error_code: str = None, details: Dict[str, Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format"""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "type": self.__class__.__name__,
        }


class ValidationError(AsyncError):
    """Error for input validation failures"""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, "VALIDATION_ERROR", {"field": field} if field else {})


class ProcessError(AsyncError):
    """Error for process spawn failures and nonzero exits"""

    def __init__(
        self,
        message: str,
        return_code: int = None,
        stdout: str = None,
        stderr: str = None,
        error_code: str = None,
    ):
        details = {}
        if return_code is not None:
            details["return_code"] = return_code
        if stdout:
            details["stdout"] = stdout
        if stderr:
            details["stderr"] = stderr

        super().__init__(message, error_code or "PROCESS_ERROR", details)
        self.return_code = return_code
        self.stdout = stdout
        self.stderr = stderr


class ResourceError(AsyncError):
    """Error for resource access failures"""

    def __init__(self, message: str, resource_path: str = None):
        super().__init__(
            message,
            "RESOURCE_ERROR",
            {"resource_path": resource_path} if resource_path else {},
        )


class DecodeError(AsyncError):
    """Malformed JSON in the project store or version manifest"""

    def __init__(self, message: str, source: str = None):
        super().__init__(message, "DECODE_ERROR", {"source": source} if source else {})


class NetworkError(AsyncError):
    """Timeout, non-2xx status or empty body from a remote endpoint"""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        details = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, "NETWORK_ERROR", details)
        self.status_code = status_code


class IntegrityError(AsyncError):
    """Checksum or size mismatch on a downloaded artifact"""

    def __init__(self, message: str, expected: str = None, actual: str = None):
        super().__init__(
            message,
            "INTEGRITY_ERROR",
            {"expected": expected, "actual": actual},
        )


class DiscoveryError(AsyncError):
    """No launcher, container or process matched a heuristic search"""

    def __init__(self, message: str, keywords: list = None):
        super().__init__(
            message, "DISCOVERY_ERROR", {"keywords": keywords} if keywords else {}
        )


class AsyncServiceContext:
    """Context manager for service operations with timing and logging"""

    def __init__(self, service_name: str, operation_name: str):
        self.service_name = service_name
        self.operation_name = operation_name
        self.start_time = None
        self.logger = logging.getLogger(f"{service_name}.{operation_name}")

    async def __aenter__(self):
        self.start_time = time.time()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time if self.start_time else 0

        if exc_type is None:
            self.logger.debug(f"Completed {self.operation_name} in {duration:.2f}s")
        elif exc_type is asyncio.CancelledError:
            self.logger.info(f"Cancelled {self.operation_name} after {duration:.2f}s")
        else:
            self.logger.error(
                f"Failed {self.operation_name} after {duration:.2f}s: {exc_val}"
            )

        return False  # Don't suppress exceptions


class AsyncServiceInterface(ABC):
    """Base interface for all async services with standardized patterns"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)

    @asynccontextmanager
    async def operation_context(self, operation_name: str):
        """Create a context manager for service operations"""
        async with AsyncServiceContext(self.service_name, operation_name) as ctx:
            yield ctx

    @abstractmethod
    async def health_check(self) -> AsyncResult[Dict[str, Any]]:
        """Check service health - must be implemented by all services"""
        pass


class AsyncCommand(ABC):
    """Base class for all async operations triggered from a surface"""

    def __init__(
        self,
        progress_callback: Callable[[str, str], None] = None,
        completion_callback: Callable[[AsyncResult], None] = None,
    ):
        self.progress_callback = progress_callback
        self.completion_callback = completion_callback
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def execute(self) -> AsyncResult:
        """Execute the command and return result"""
        pass

    async def run_with_progress(self) -> AsyncResult:
        """Template method with standard progress handling"""
        try:
            result = await self.execute()

            if self.completion_callback:
                self.completion_callback(result)

            return result
        except Exception as e:
            self.logger.exception(f"Command {self.__class__.__name__} failed")
            error_result = AsyncResult.error_result(
                ProcessError(f"Command failed: {e}", error_code="COMMAND_ERROR")
            )
            if self.completion_callback:
                self.completion_callback(error_result)
            return error_result

    def _update_progress(self, message: str, level: str = "info"):
        """Helper method to update progress"""
        if self.progress_callback:
            self.progress_callback(message, level)


# Export main classes
__all__ = [
    "AsyncResult",
    "ServiceResult",
    "AsyncError",
    "ValidationError",
    "ProcessError",
    "ResourceError",
    "DecodeError",
    "NetworkError",
    "IntegrityError",
    "DiscoveryError",
    "AsyncServiceInterface",
    "AsyncCommand",
    "AsyncServiceContext",
]
