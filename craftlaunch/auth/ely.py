"""
Ely.by accounts: the Yggdrasil-compatible password flow of authserver.ely.by,
the OAuth2 browser flow of account.ely.by, and the authlib-injector agent the
game needs to accept Ely.by sessions.
"""
import asyncio
import logging
import pathlib
import secrets
import uuid
import webbrowser
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import aiohttp

from ..command import LaunchIdentity
from ..download import ensure
from ..errors import AuthenticationError, CraftLaunchError, TwoFactorRequired
from .callback import DEFAULT_TIMEOUT, wait_for_oauth_code
from .http import request_json
from .result import AuthenticationResult

log = logging.getLogger(__name__)

AUTHSERVER_URL = 'https://authserver.ely.by'
OAUTH_AUTHORIZE_URL = 'https://account.ely.by/oauth2/v1'
OAUTH_TOKEN_URL = 'https://account.ely.by/api/oauth2/v1/token'
ACCOUNT_INFO_URL = 'https://account.ely.by/api/account/v1/info'
AUTHLIB_INJECTOR_URL = 'https://github.com/yushijinhun/authlib-injector/releases/latest/download/authlib-injector.jar'
AUTHLIB_INJECTOR_FILENAME = 'authlib-injector.jar'

TWO_FACTOR_MESSAGE = 'Account protected with two factor auth.'


@dataclass(frozen=True)
class ElyOAuthConfig:
    client_id: str
    client_secret: str
    redirect_uri: str = 'http://localhost:8080/callback'
    scope: str = 'account_info minecraft_server_session'


@dataclass(frozen=True)
class ElyOAuthToken:
    access_token: str
    refresh_token: Optional[str]
    token_type: str
    expires_in: int
    scope: str = ''
    issued_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> 'ElyOAuthToken':
        try:
            return cls(
                access_token=data['access_token'],
                refresh_token=data.get('refresh_token'),
                token_type=data.get('token_type', 'Bearer'),
                expires_in=int(data.get('expires_in', 0)),
                scope=data.get('scope', ''),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AuthenticationError('InvalidResponse', "Malformed OAuth token response", e) from e

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def is_expired(self) -> bool:
        return datetime.now() >= self.expires_at


@dataclass(frozen=True)
class ElyUser:
    id: Any
    username: str
    email: Optional[str] = None
    lang: Optional[str] = None
    profile_link: Optional[str] = None
    uuid: Optional[str] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> 'ElyUser':
        try:
            return cls(
                id=data['id'],
                username=data['username'],
                email=data.get('email'),
                lang=data.get('lang') or data.get('preferredLanguage'),
                profile_link=data.get('profileLink'),
                uuid=data.get('uuid'),
            )
        except (KeyError, TypeError) as e:
            raise AuthenticationError('InvalidResponse', "Malformed Ely.by account info", e) from e


@dataclass(frozen=True)
class ElyAuthResult:
    token: ElyOAuthToken
    user: ElyUser
    minecraft_access_token: str
    minecraft_username: str
    minecraft_uuid: str

    def to_identity(self) -> LaunchIdentity:
        return LaunchIdentity(self.minecraft_username, self.minecraft_uuid, self.minecraft_access_token)


def _raise_for_error(status: int, body: Dict[str, Any], default_message: str) -> None:
    if status == 401 and body.get('errorMessage') == TWO_FACTOR_MESSAGE:
        raise TwoFactorRequired()
    raise AuthenticationError(body.get('error') or 'Unknown error',
                              body.get('errorMessage') or body.get('message') or f"{default_message} (HTTP {status})")


def _result_from_session(body: Dict[str, Any]) -> AuthenticationResult:
    try:
        profile = body['selectedProfile']
        return AuthenticationResult(username=profile['name'], uuid=profile['id'], access_token=body['accessToken'])
    except (KeyError, TypeError) as e:
        raise AuthenticationError('InvalidResponse', "Ely.by response has no selected profile", e) from e


class ElyAuth:
    """Ely.by client bound to an aiohttp session."""

    def __init__(self, session: aiohttp.ClientSession, *,
                 authserver_url: str = AUTHSERVER_URL,
                 authorize_url: str = OAUTH_AUTHORIZE_URL,
                 token_url: str = OAUTH_TOKEN_URL,
                 account_info_url: str = ACCOUNT_INFO_URL,
                 authlib_injector_url: str = AUTHLIB_INJECTOR_URL):
        self.session = session
        self.authserver_url = authserver_url.rstrip('/')
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.account_info_url = account_info_url
        self.authlib_injector_url = authlib_injector_url

    async def _post_authserver(self, endpoint: str, payload: Dict[str, Any]):
        return await request_json(self.session, 'POST', f"{self.authserver_url}/auth/{endpoint}", json_body=payload)

    # Password flow

    async def authenticate(self, username: str, password: str, *, client_token: Optional[str] = None,
                           request_user: bool = False) -> AuthenticationResult:
        """
        Logs in with a username (or email) and password.

        Raises TwoFactorRequired when the account needs a TOTP code; retry with
        ``authenticate_with_two_factor``.
        """
        status, body = await self._post_authserver('authenticate', {
            'username': username,
            'password': password,
            'clientToken': client_token or uuid.uuid4().hex,
            'requestUser': request_user,
        })
        if status != 200:
            _raise_for_error(status, body, "Authentication failed")
        result = _result_from_session(body)
        log.info(f"Authenticated Ely.by account {result.username}")
        return result

    async def authenticate_with_two_factor(self, username: str, password: str, totp_token: str, *,
                                           client_token: Optional[str] = None,
                                           request_user: bool = False) -> AuthenticationResult:
        # Ely.by expects the TOTP code appended to the password.
        return await self.authenticate(username, f"{password}:{totp_token}",
                                       client_token=client_token, request_user=request_user)

    async def refresh(self, access_token: str, client_token: str, *,
                      request_user: bool = False) -> AuthenticationResult:
        status, body = await self._post_authserver('refresh', {
            'accessToken': access_token,
            'clientToken': client_token,
            'requestUser': request_user,
        })
        if status != 200:
            _raise_for_error(status, body, "Token refresh failed")
        return _result_from_session(body)

    async def validate(self, access_token: str) -> bool:
        status, body = await self._post_authserver('validate', {'accessToken': access_token})
        if status == 200:
            return True
        _raise_for_error(status, body, "Token validation failed")

    async def signout(self, username: str, password: str) -> None:
        status, body = await self._post_authserver('signout', {'username': username, 'password': password})
        if status != 200:
            _raise_for_error(status, body, "Signout failed")

    async def invalidate(self, access_token: str, client_token: str) -> None:
        status, body = await self._post_authserver('invalidate', {
            'accessToken': access_token,
            'clientToken': client_token,
        })
        if status != 200:
            _raise_for_error(status, body, "Token invalidation failed")

    # OAuth2 flow

    def authorization_url(self, config: ElyOAuthConfig, state: Optional[str] = None) -> str:
        params = {
            'client_id': config.client_id,
            'redirect_uri': config.redirect_uri,
            'response_type': 'code',
            'scope': config.scope,
        }
        if state:
            params['state'] = state
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str], action: str) -> ElyOAuthToken:
        status, body = await request_json(self.session, 'POST', self.token_url, form=form)
        if status != 200:
            raise AuthenticationError(body.get('error') or 'OAuthError',
                                      body.get('error_description') or body.get('message')
                                      or f"Failed to {action} (HTTP {status})")
        return ElyOAuthToken.from_json(body)

    async def exchange_code(self, config: ElyOAuthConfig, code: str) -> ElyOAuthToken:
        return await self._token_request({
            'client_id': config.client_id,
            'client_secret': config.client_secret,
            'redirect_uri': config.redirect_uri,
            'grant_type': 'authorization_code',
            'code': code,
        }, 'exchange authorization code')

    async def refresh_oauth_token(self, config: ElyOAuthConfig, refresh_token: str) -> ElyOAuthToken:
        return await self._token_request({
            'client_id': config.client_id,
            'client_secret': config.client_secret,
            'scope': config.scope,
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        }, 'refresh OAuth token')

    async def get_user(self, token: ElyOAuthToken) -> ElyUser:
        status, body = await request_json(self.session, 'GET', self.account_info_url,
                                          headers={'Authorization': f"Bearer {token.access_token}"})
        if status != 200:
            raise AuthenticationError(body.get('error') or 'AccountInfoError',
                                      body.get('message') or f"Failed to get account info (HTTP {status})")
        return ElyUser.from_json(body)

    async def complete_oauth(self, config: ElyOAuthConfig, code: str) -> ElyAuthResult:
        token = await self.exchange_code(config, code)
        user = await self.get_user(token)
        log.info(f"Authenticated Ely.by account {user.username} through OAuth")
        return ElyAuthResult(
            token=token,
            user=user,
            minecraft_access_token=token.access_token,
            minecraft_username=user.username,
            minecraft_uuid=user.uuid or str(user.id),
        )

    async def authenticate_with_oauth(self, config: ElyOAuthConfig, *, open_browser: bool = True,
                                      timeout: Optional[float] = DEFAULT_TIMEOUT) -> ElyAuthResult:
        """
        Runs the browser flow: starts the callback listener, opens the
        authorization page, and exchanges the code it receives.
        """
        state = secrets.token_urlsafe(16)
        ready = asyncio.Event()
        listener = asyncio.ensure_future(
            wait_for_oauth_code(config.redirect_uri, timeout=timeout, expected_state=state, ready=ready))
        try:
            ready_waiter = asyncio.ensure_future(ready.wait())
            await asyncio.wait({listener, ready_waiter}, return_when=asyncio.FIRST_COMPLETED)
            ready_waiter.cancel()
            if not listener.done():
                url = self.authorization_url(config, state)
                log.info(f"Open this URL to sign in with Ely.by: {url}")
                if open_browser and not webbrowser.open(url):
                    log.warning("Could not open a web browser, open the URL manually.")
            code = await listener
        finally:
            if not listener.done():
                listener.cancel()
        return await self.complete_oauth(config, code)

    # authlib-injector

    async def download_authlib_injector(self, destination_dir: pathlib.Path) -> pathlib.Path:
        """Downloads authlib-injector into ``destination_dir`` unless it is already there."""
        jar_path = pathlib.Path(destination_dir) / AUTHLIB_INJECTOR_FILENAME
        try:
            await ensure(self.session, self.authlib_injector_url, jar_path)
        except CraftLaunchError as e:
            raise AuthenticationError('DownloadFailed', f"Failed to download authlib-injector: {e}", e) from e
        return jar_path

    @staticmethod
    def authlib_jvm_args(authlib_injector_path: pathlib.Path, host: str = 'ely.by') -> List[str]:
        return [f"-javaagent:{authlib_injector_path}={host}"]
