"""On-demand lookup, fee and deploy operations."""

from launchwatch.services.deploy import FeeRecipient, build_deploy_body, deploy_token
from launchwatch.services.fees import FeesService, FeesSummary, format_usd
from launchwatch.services.lookup import (
    LookupResult,
    LookupRole,
    LookupService,
    parse_query,
)
from launchwatch.services.token import TokenInfoService, TokenReport

__all__ = [
    "FeeRecipient",
    "FeesService",
    "FeesSummary",
    "LookupResult",
    "LookupRole",
    "LookupService",
    "TokenInfoService",
    "TokenReport",
    "build_deploy_body",
    "deploy_token",
    "format_usd",
    "parse_query",
]
