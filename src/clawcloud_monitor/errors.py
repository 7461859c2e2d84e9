from __future__ import annotations


class MonitorError(RuntimeError):
    """
    Base class for the failures a run knows how to name in its summary.
    """

    kind: str = "error"


class ConfigurationMissing(MonitorError):
    """
    A required setting is absent (e.g. no GitHub username/password and no cached session).
    """

    kind = "configuration_missing"


class AuthFlowError(MonitorError):
    kind = "auth_failed"


class ChallengeTimeout(AuthFlowError):
    kind = "challenge_timeout"


class RedirectTimeout(AuthFlowError):
    kind = "redirect_timeout"


class LoginRejected(AuthFlowError):
    """
    GitHub kept us on the login or two-factor page after we submitted.
    """

    kind = "login_rejected"


class ExtractionFailure(MonitorError):
    # Non-fatal: BalanceReader turns this into the sentinel balance string.
    kind = "extraction_failure"


class SecretRotationFailure(MonitorError):
    # Non-fatal: SecretStore.rotate() returns False.
    kind = "secret_rotation_failure"


class NotificationFailure(MonitorError):
    # Never leaves the notifier.
    kind = "notification_failure"
