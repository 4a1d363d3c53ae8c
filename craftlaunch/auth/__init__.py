"""Account providers producing the identity a game process is launched with."""
from .callback import wait_for_oauth_code
from .ely import ElyAuth, ElyAuthResult, ElyOAuthConfig, ElyOAuthToken, ElyUser
from .microsoft import MicrosoftAuth
from .result import AuthenticationResult

__all__ = [
    'AuthenticationResult',
    'ElyAuth',
    'ElyAuthResult',
    'ElyOAuthConfig',
    'ElyOAuthToken',
    'ElyUser',
    'MicrosoftAuth',
    'wait_for_oauth_code',
]
