"""
Health Check and System Monitoring Module

This module provides health check capabilities for the sync job's clients.
Checks inspect the prebuilt SyncContext and never call the remote APIs.
"""
from typing import Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
import traceback
from loguru import logger

from config import ALL_DATA_TYPES


class HealthStatus(str, Enum):
    """Health check status levels"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth:
    """Health check result for a single component"""

    def __init__(
        self,
        name: str,
        status: HealthStatus,
        message: str = "",
        details: Optional[Dict] = None
    ):
        self.name = name
        self.status = status
        self.message = message
        self.details = details or {}
        self.checked_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict:
        """Convert to dictionary"""
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "checked_at": self.checked_at.isoformat()
        }


class HealthChecker:
    """Health checker for the Ads/CRM sync job"""

    def __init__(self):
        self.checks: List[ComponentHealth] = []

    def check_configuration(self, settings) -> ComponentHealth:
        """Check that at least one source and the sink are configured"""
        try:
            missing = []
            if not settings.google_ads_configured:
                missing.append("GOOGLE_ADS_*")
            if not settings.hubspot_configured:
                missing.append("HUBSPOT_PRIVATE_APP_TOKEN")
            if not settings.sheets_configured:
                missing.append("GOOGLE_SHEETS_*")

            unknown_types = [t for t in settings.enabled_data_types if t not in ALL_DATA_TYPES]
            details = {
                "missing": missing,
                "data_types": settings.enabled_data_types,
                "sync_mode": settings.sync_mode,
            }
            if unknown_types:
                details["unknown_data_types"] = unknown_types

            if not settings.sheets_configured or (not settings.google_ads_configured and not settings.hubspot_configured):
                return ComponentHealth(
                    name="configuration",
                    status=HealthStatus.UNHEALTHY,
                    message=f"Missing required configuration: {', '.join(missing)}",
                    details=details
                )
            if missing or unknown_types:
                return ComponentHealth(
                    name="configuration",
                    status=HealthStatus.DEGRADED,
                    message="Some data sources are not configured",
                    details=details
                )

            return ComponentHealth(
                name="configuration",
                status=HealthStatus.HEALTHY,
                message="All required configuration present",
                details=details
            )
        except Exception as e:
            logger.error(f"Configuration check failed: {e}")
            return ComponentHealth(
                name="configuration",
                status=HealthStatus.UNHEALTHY,
                message=f"Configuration check error: {str(e)}"
            )

    def check_google_ads(self, context) -> ComponentHealth:
        """Check the Google Ads client was initialized"""
        if context.ads is None:
            return ComponentHealth(
                name="google_ads",
                status=HealthStatus.DEGRADED,
                message="Google Ads client not initialized (campaign and conversion stages skipped)"
            )
        return ComponentHealth(
            name="google_ads",
            status=HealthStatus.HEALTHY,
            message="Google Ads client initialized",
            details={"customer_id": getattr(context.ads, "customer_id", None)}
        )

    def check_hubspot(self, context) -> ComponentHealth:
        """Check the HubSpot client and its capability set"""
        if context.crm is None:
            return ComponentHealth(
                name="hubspot_api",
                status=HealthStatus.DEGRADED,
                message="HubSpot client not initialized (form stage skipped)"
            )

        capabilities = context.capabilities.to_dict()
        unavailable = [name for name, available in capabilities.items() if not available]
        if not capabilities["contact_search"]:
            status = HealthStatus.UNHEALTHY
            message = "HubSpot contact search not available"
        elif unavailable:
            status = HealthStatus.DEGRADED
            message = f"HubSpot features unavailable: {', '.join(unavailable)}"
        else:
            status = HealthStatus.HEALTHY
            message = "HubSpot client initialized"
        return ComponentHealth(
            name="hubspot_api",
            status=status,
            message=message,
            details={"capabilities": capabilities}
        )

    def check_sheets(self, context) -> ComponentHealth:
        """Check the Google Sheets sink"""
        if context.sink is None:
            return ComponentHealth(
                name="google_sheets",
                status=HealthStatus.UNHEALTHY,
                message="Google Sheets client not initialized (nothing can be written)"
            )
        return ComponentHealth(
            name="google_sheets",
            status=HealthStatus.HEALTHY,
            message="Google Sheets client initialized",
            details={"spreadsheet_id": getattr(context.sink, "spreadsheet_id", None)}
        )

    def check_all(self, context) -> Dict:
        """Run all health checks"""
        try:
            self.checks = [
                self.check_configuration(context.settings),
                self.check_google_ads(context),
                self.check_hubspot(context),
                self.check_sheets(context),
            ]

            statuses = [check.status for check in self.checks]

            if all(s == HealthStatus.HEALTHY for s in statuses):
                overall_status = HealthStatus.HEALTHY
            elif any(s == HealthStatus.UNHEALTHY for s in statuses):
                overall_status = HealthStatus.UNHEALTHY
            else:
                overall_status = HealthStatus.DEGRADED

            return {
                "status": overall_status.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "components": [check.to_dict() for check in self.checks],
                "summary": {
                    "total": len(self.checks),
                    "healthy": len([c for c in self.checks if c.status == HealthStatus.HEALTHY]),
                    "degraded": len([c for c in self.checks if c.status == HealthStatus.DEGRADED]),
                    "unhealthy": len([c for c in self.checks if c.status == HealthStatus.UNHEALTHY])
                }
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}\n{traceback.format_exc()}")
            return {
                "status": HealthStatus.UNHEALTHY.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": str(e),
                "components": []
            }
