from .flow import TRANSITIONS, AuthFlow, AuthResult, AuthState, CodeSource
from .selectors import AuthSelectors

__all__ = ["TRANSITIONS", "AuthFlow", "AuthResult", "AuthSelectors", "AuthState", "CodeSource"]
