from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthSelectors:
    """
    Selectors and URL hooks for the ClawCloud -> GitHub OAuth handshake.

    GitHub and ClawCloud markup changes over time; keep every UI hook here.
    """

    # ClawCloud sign-in page
    provider_button: str = 'button:has-text("GitHub")'

    # GitHub login form
    provider_host: str = "github.com"
    login_path: str = "/login"
    username_input: str = 'input[name="login"]'
    password_input: str = 'input[name="password"]'
    submit_button: str = 'input[type="submit"]'

    # GitHub two-factor page (/sessions/two-factor, /sessions/two-factor/app, ...)
    two_factor_path_fragment: str = "two-factor"
    code_input: str = 'input[autocomplete="one-time-code"]'

    # GitHub OAuth "Authorize <app>" consent page
    consent_button: str = 'button[name="authorize"][value="1"], button#js-oauth-authorize-btn'
