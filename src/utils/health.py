"""Health check and monitoring utilities for the gateway."""

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import psutil

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    status: HealthStatus
    message: str
    details: Dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


def _worse(current: HealthStatus, candidate: HealthStatus) -> HealthStatus:
    order = [HealthStatus.HEALTHY, HealthStatus.DEGRADED, HealthStatus.UNHEALTHY]
    return max(current, candidate, key=order.index)


class HealthChecker:
    """Tracks gateway uptime, request outcomes and host resources.

    Example:
        checker = HealthChecker()
        checker.record_request(success=False)
        result = checker.check_health(storage_path="./storage")
        if result.status == HealthStatus.HEALTHY:
            print("Gateway is healthy")
    """

    def __init__(self):
        """Initialize the health checker."""
        self.start_time = time.time()
        self.request_count = 0
        self.error_count = 0
        self.last_check_time: Optional[datetime] = None

    def check_storage(self, storage_path: Union[str, Path]) -> HealthCheckResult:
        """Check that the image storage directory exists and is writable."""
        path = Path(storage_path)
        if not path.is_dir():
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                message=f"Storage directory {path} does not exist",
                details={"storage_path": str(path)}
            )
        if not os.access(path, os.W_OK):
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                message=f"Storage directory {path} is not writable",
                details={"storage_path": str(path)}
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message="Storage is writable",
            details={"storage_path": str(path)}
        )

    def check_health(
        self,
        storage_path: Optional[Union[str, Path]] = None,
        include_details: bool = True
    ) -> HealthCheckResult:
        """Perform a full health check.

        Args:
            storage_path: Image storage directory to verify, if given
            include_details: Whether to include detailed metrics

        Returns:
            HealthCheckResult with status and details
        """
        self.last_check_time = datetime.now()

        try:
            cpu_usage = psutil.cpu_percent(interval=0.1)
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')
        except (OSError, psutil.Error) as e:
            logger.error(f"Health check failed: {e}")
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                message=f"Health check error: {e}",
                details={"error": str(e)}
            )

        status = HealthStatus.HEALTHY
        issues: List[str] = []

        for label, value in (("CPU", cpu_usage), ("memory", memory.percent), ("disk", disk.percent)):
            if value > 95:
                status = _worse(status, HealthStatus.UNHEALTHY)
                issues.append(f"Critical {label} usage: {value:.1f}%")
            elif value > 85:
                status = _worse(status, HealthStatus.DEGRADED)
                issues.append(f"High {label} usage: {value:.1f}%")

        if storage_path is not None:
            storage = self.check_storage(storage_path)
            if storage.status != HealthStatus.HEALTHY:
                status = _worse(status, storage.status)
                issues.append(storage.message)

        if status == HealthStatus.HEALTHY:
            message = "All systems operational"
        elif status == HealthStatus.DEGRADED:
            message = f"System degraded: {', '.join(issues)}"
        else:
            message = f"System unhealthy: {', '.join(issues)}"

        details = {}
        if include_details:
            uptime_seconds = time.time() - self.start_time
            details = {
                "uptime_seconds": uptime_seconds,
                "uptime_human": self._format_uptime(uptime_seconds),
                "cpu_usage_percent": round(cpu_usage, 2),
                "memory_usage_percent": round(memory.percent, 2),
                "disk_usage_percent": round(disk.percent, 2),
                "disk_free_gb": round(disk.free / (1024 * 1024 * 1024), 2),
                "request_count": self.request_count,
                "error_count": self.error_count,
                "error_rate": round(self.error_count / max(self.request_count, 1), 4)
            }

        return HealthCheckResult(status=status, message=message, details=details)

    def record_request(self, success: bool = True) -> None:
        """Record a generation request for metrics tracking.

        Args:
            success: Whether the request was successful
        """
        self.request_count += 1
        if not success:
            self.error_count += 1

    def _format_uptime(self, seconds: float) -> str:
        """Format uptime in human-readable form."""
        days = int(seconds // 86400)
        hours = int((seconds % 86400) // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)

    def __repr__(self) -> str:
        """String representation."""
        uptime = self._format_uptime(time.time() - self.start_time)
        return f"HealthChecker(uptime={uptime}, requests={self.request_count})"
