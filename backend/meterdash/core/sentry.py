"""
Sentry integration for error tracking.
"""
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from meterdash.core.config import settings


def init_sentry(dsn: Optional[str] = None) -> bool:
    """
    Initialize Sentry when a DSN is configured.

    Returns:
        True if Sentry was initialized
    """
    if not dsn:
        return False

    if settings.ENVIRONMENT == "production":
        traces_sample_rate = 0.2
    elif settings.ENVIRONMENT == "staging":
        traces_sample_rate = 0.5
    else:
        traces_sample_rate = 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.ENVIRONMENT,
        release=f"meterdash@{settings.APP_VERSION}",
        traces_sample_rate=traces_sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        send_default_pii=False,
        attach_stacktrace=True,
    )
    return True


def capture_exception(error: Exception, context: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    A no-op when Sentry was never initialized.
    """
    with sentry_sdk.new_scope() as scope:
        if context:
            for key, value in context.items():
                scope.set_context(key, value)
        sentry_sdk.capture_exception(error)
