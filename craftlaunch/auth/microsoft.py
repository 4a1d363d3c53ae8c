"""
Microsoft account login.

The chain is: authorization code -> Microsoft OAuth2 tokens -> Xbox Live user
token -> XSTS token -> Minecraft services access token -> player profile.
"""
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import aiohttp

from ..errors import AuthenticationError
from .http import request_json
from .result import AuthenticationResult

log = logging.getLogger(__name__)

MS_AUTHORIZE_URL = 'https://login.microsoftonline.com/consumers/oauth2/v2.0/authorize'
MS_TOKEN_URL = 'https://login.microsoftonline.com/consumers/oauth2/v2.0/token'
XBL_AUTH_URL = 'https://user.auth.xboxlive.com/user/authenticate'
XSTS_AUTH_URL = 'https://xsts.auth.xboxlive.com/xsts/authorize'
MC_LOGIN_URL = 'https://api.minecraftservices.com/authentication/login_with_xbox'
MC_PROFILE_URL = 'https://api.minecraftservices.com/minecraft/profile'

DEFAULT_CLIENT_ID = '00000000-0000-0000-0000-000000000000'
DEFAULT_REDIRECT_URI = 'http://localhost:8080/callback'
SCOPE = 'XboxLive.signin offline_access'

# Known XSTS refusal codes.
_XSTS_ERRORS = {
    2148916233: "This Microsoft account has no Xbox account.",
    2148916235: "Xbox Live is not available in this account's country.",
    2148916236: "This account needs adult verification (South Korea).",
    2148916237: "This account needs adult verification (South Korea).",
    2148916238: "This account belongs to a child and must be added to a Family.",
}


def _error_from(body: Dict[str, Any], default_error: str, default_message: str) -> AuthenticationError:
    error = body.get('error') or default_error
    message = body.get('error_description') or body.get('errorMessage') or default_message
    return AuthenticationError(str(error), str(message))


class MicrosoftAuth:
    """Microsoft login flow bound to an aiohttp session and an Azure application."""

    def __init__(self, session: aiohttp.ClientSession, client_id: str = DEFAULT_CLIENT_ID,
                 redirect_uri: str = DEFAULT_REDIRECT_URI, *,
                 authorize_url: str = MS_AUTHORIZE_URL,
                 token_url: str = MS_TOKEN_URL,
                 xbl_url: str = XBL_AUTH_URL,
                 xsts_url: str = XSTS_AUTH_URL,
                 login_url: str = MC_LOGIN_URL,
                 profile_url: str = MC_PROFILE_URL):
        self.session = session
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.xbl_url = xbl_url
        self.xsts_url = xsts_url
        self.login_url = login_url
        self.profile_url = profile_url

    def authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            'client_id': self.client_id,
            'response_type': 'code',
            'redirect_uri': self.redirect_uri,
            'scope': SCOPE,
            'response_mode': 'query',
        }
        if state:
            params['state'] = state
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str], action: str) -> Dict[str, Any]:
        status, body = await request_json(self.session, 'POST', self.token_url, form=form)
        if status != 200 or 'access_token' not in body:
            raise _error_from(body, 'MicrosoftTokenError', f"Failed to {action} (HTTP {status})")
        return body

    async def get_tokens_from_code(self, code: str) -> Dict[str, Any]:
        return await self._token_request({
            'client_id': self.client_id,
            'code': code,
            'grant_type': 'authorization_code',
            'redirect_uri': self.redirect_uri,
            'scope': SCOPE,
        }, 'exchange authorization code')

    async def refresh_microsoft_token(self, refresh_token: str) -> Dict[str, Any]:
        return await self._token_request({
            'client_id': self.client_id,
            'refresh_token': refresh_token,
            'grant_type': 'refresh_token',
            'scope': SCOPE,
        }, 'refresh token')

    async def authenticate_with_xbox_live(self, ms_access_token: str) -> Tuple[str, str]:
        """Returns the Xbox Live token and the user hash."""
        status, body = await request_json(self.session, 'POST', self.xbl_url, json_body={
            'Properties': {
                'AuthMethod': 'RPS',
                'SiteName': 'user.auth.xboxlive.com',
                'RpsTicket': f"d={ms_access_token}",
            },
            'RelyingParty': 'http://auth.xboxlive.com',
            'TokenType': 'JWT',
        })
        if status != 200:
            raise _error_from(body, 'XboxLiveError', f"Xbox Live authentication failed (HTTP {status})")
        return self._token_and_hash(body)

    async def get_xsts_token(self, xbl_token: str) -> Tuple[str, str]:
        status, body = await request_json(self.session, 'POST', self.xsts_url, json_body={
            'Properties': {
                'SandboxId': 'RETAIL',
                'UserTokens': [xbl_token],
            },
            'RelyingParty': 'rp://api.minecraftservices.com/',
            'TokenType': 'JWT',
        })
        if status != 200:
            xerr = body.get('XErr')
            if xerr in _XSTS_ERRORS:
                raise AuthenticationError(f"XSTS{xerr}", _XSTS_ERRORS[xerr])
            raise _error_from(body, 'XSTSError', f"XSTS authentication failed (HTTP {status})")
        return self._token_and_hash(body)

    @staticmethod
    def _token_and_hash(body: Dict[str, Any]) -> Tuple[str, str]:
        try:
            return body['Token'], body['DisplayClaims']['xui'][0]['uhs']
        except (KeyError, IndexError, TypeError) as e:
            raise AuthenticationError('InvalidResponse', "Xbox response is missing its token or user hash", e) from e

    async def login_with_xbox(self, user_hash: str, xsts_token: str) -> str:
        status, body = await request_json(self.session, 'POST', self.login_url, json_body={
            'identityToken': f"XBL3.0 x={user_hash};{xsts_token}",
        })
        if status != 200 or 'access_token' not in body:
            raise _error_from(body, 'MinecraftLoginError', f"Minecraft authentication failed (HTTP {status})")
        return body['access_token']

    async def get_minecraft_profile(self, mc_access_token: str) -> Dict[str, Any]:
        status, body = await request_json(self.session, 'GET', self.profile_url,
                                          headers={'Authorization': f"Bearer {mc_access_token}"})
        if status == 404:
            raise AuthenticationError('NotOwned', "This account does not own Minecraft")
        if status != 200 or 'id' not in body or 'name' not in body:
            raise _error_from(body, 'ProfileError', f"Failed to get Minecraft profile (HTTP {status})")
        return body

    async def _complete(self, ms_tokens: Dict[str, Any]) -> AuthenticationResult:
        xbl_token, user_hash = await self.authenticate_with_xbox_live(ms_tokens['access_token'])
        xsts_token, user_hash = await self.get_xsts_token(xbl_token)
        mc_access_token = await self.login_with_xbox(user_hash, xsts_token)
        profile = await self.get_minecraft_profile(mc_access_token)
        log.info(f"Authenticated Microsoft account {profile['name']}")
        return AuthenticationResult(
            username=profile['name'],
            uuid=profile['id'],
            access_token=mc_access_token,
            refresh_token=ms_tokens.get('refresh_token'),
        )

    async def authenticate(self, code: str) -> AuthenticationResult:
        """Runs the whole chain starting from an authorization code."""
        return await self._complete(await self.get_tokens_from_code(code))

    async def refresh(self, refresh_token: str) -> AuthenticationResult:
        """Runs the whole chain starting from a Microsoft refresh token."""
        return await self._complete(await self.refresh_microsoft_token(refresh_token))
