from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from craftlaunch.auth import ElyAuth, ElyAuthResult, ElyOAuthConfig, ElyOAuthToken, ElyUser
from craftlaunch.errors import AuthenticationError, TwoFactorRequired

PROFILE = {'accessToken': 'ely-access', 'clientToken': 'client', 'selectedProfile': {'id': 'ely-uuid', 'name': 'Alice'}}


def ely_client(fake, session):
    return ElyAuth(session,
                   authserver_url=fake.url('/ely'),
                   token_url=fake.url('/ely/oauth2/token'),
                   account_info_url=fake.url('/ely/account/info'),
                   authlib_injector_url=fake.url('/authlib-injector.jar'))


def test_oauth_config_defaults():
    config = ElyOAuthConfig(client_id='test_client_id', client_secret='test_client_secret')
    assert config.redirect_uri == 'http://localhost:8080/callback'
    assert config.scope == 'account_info minecraft_server_session'


def test_token_from_json_and_expiry():
    token = ElyOAuthToken.from_json({'access_token': 'a', 'refresh_token': 'r', 'token_type': 'bearer',
                                     'expires_in': 3600, 'scope': 'account_info'})
    assert token.refresh_token == 'r'
    assert token.expires_in == 3600
    assert not token.is_expired
    assert token.expires_at - token.issued_at == timedelta(hours=1)

    expired = ElyOAuthToken('a', None, 'bearer', 60, issued_at=datetime.now() - timedelta(minutes=5))
    assert expired.is_expired


def test_user_from_json():
    user = ElyUser.from_json({'id': 1, 'username': 'testuser', 'email': 'test@example.com',
                              'preferredLanguage': 'en', 'profileLink': 'https://ely.by/u1', 'uuid': 'u-1'})
    assert user.lang == 'en'
    assert user.profile_link == 'https://ely.by/u1'
    assert user.uuid == 'u-1'


def test_auth_result_identity():
    token = ElyOAuthToken('a', 'r', 'bearer', 3600)
    result = ElyAuthResult(token, ElyUser(1, 'testuser'), 'minecraft_token', 'MinecraftUser', 'uuid-1234')
    identity = result.to_identity()
    assert (identity.username, identity.uuid, identity.access_token) == ('MinecraftUser', 'uuid-1234', 'minecraft_token')


async def test_password_login(fake_mojang, session):
    received = {}

    async def authenticate(request):
        received.update(await request.json())
        return 200, PROFILE

    fake_mojang.json_handlers['/ely/auth/authenticate'] = authenticate
    result = await ely_client(fake_mojang, session).authenticate('alice', 'secret')

    assert (result.username, result.uuid, result.access_token) == ('Alice', 'ely-uuid', 'ely-access')
    assert received['username'] == 'alice'
    assert received['password'] == 'secret'
    assert received['clientToken']


async def test_two_factor_required(fake_mojang, session):
    async def authenticate(request):
        return 401, {'error': 'ForbiddenOperationException', 'errorMessage': 'Account protected with two factor auth.'}

    fake_mojang.json_handlers['/ely/auth/authenticate'] = authenticate
    with pytest.raises(TwoFactorRequired) as excinfo:
        await ely_client(fake_mojang, session).authenticate('alice', 'secret')
    assert excinfo.value.error == 'TwoFactorRequired'


async def test_two_factor_token_is_appended_to_password(fake_mojang, session):
    async def authenticate(request):
        body = await request.json()
        if body['password'] != 'secret:123456':
            return 401, {'error': 'ForbiddenOperationException', 'errorMessage': 'Invalid credentials.'}
        return 200, PROFILE

    fake_mojang.json_handlers['/ely/auth/authenticate'] = authenticate
    result = await ely_client(fake_mojang, session).authenticate_with_two_factor('alice', 'secret', '123456')
    assert result.username == 'Alice'


async def test_invalid_credentials(fake_mojang, session):
    async def authenticate(request):
        return 401, {'error': 'ForbiddenOperationException', 'errorMessage': 'Invalid credentials.'}

    fake_mojang.json_handlers['/ely/auth/authenticate'] = authenticate
    with pytest.raises(AuthenticationError) as excinfo:
        await ely_client(fake_mojang, session).authenticate('alice', 'wrong')
    assert not isinstance(excinfo.value, TwoFactorRequired)
    assert excinfo.value.error == 'ForbiddenOperationException'
    assert excinfo.value.error_message == 'Invalid credentials.'


async def test_validate_refresh_and_invalidate(fake_mojang, session):
    async def ok(request):
        return 200, {}

    async def refresh(request):
        return 200, dict(PROFILE, accessToken='ely-refreshed')

    for endpoint in ('validate', 'invalidate', 'signout'):
        fake_mojang.json_handlers[f"/ely/auth/{endpoint}"] = ok
    fake_mojang.json_handlers['/ely/auth/refresh'] = refresh
    ely = ely_client(fake_mojang, session)

    assert await ely.validate('ely-access')
    assert (await ely.refresh('ely-access', 'client')).access_token == 'ely-refreshed'
    await ely.invalidate('ely-access', 'client')
    await ely.signout('alice', 'secret')


async def test_oauth_code_exchange(fake_mojang, session):
    async def token(request):
        form = await request.post()
        assert form['grant_type'] == 'authorization_code'
        assert form['code'] == 'the-code'
        return 200, {'access_token': 'oauth-access', 'refresh_token': 'oauth-refresh',
                     'token_type': 'Bearer', 'expires_in': 86400}

    async def info(request):
        assert request.headers['Authorization'] == 'Bearer oauth-access'
        return 200, {'id': 7, 'uuid': 'ely-uuid', 'username': 'Alice', 'email': 'alice@example.com'}

    fake_mojang.json_handlers['/ely/oauth2/token'] = token
    fake_mojang.json_handlers['/ely/account/info'] = info
    config = ElyOAuthConfig(client_id='id', client_secret='secret')

    result = await ely_client(fake_mojang, session).complete_oauth(config, 'the-code')

    assert result.minecraft_access_token == 'oauth-access'
    assert result.minecraft_username == 'Alice'
    assert result.minecraft_uuid == 'ely-uuid'
    assert result.token.refresh_token == 'oauth-refresh'


def test_authorization_url():
    ely = ElyAuth(None)
    url = ely.authorization_url(ElyOAuthConfig('id', 'secret'), state='xyz')
    query = parse_qs(urlsplit(url).query)
    assert url.startswith('https://account.ely.by/oauth2/v1?')
    assert query['client_id'] == ['id']
    assert query['scope'] == ['account_info minecraft_server_session']
    assert query['state'] == ['xyz']


async def test_download_authlib_injector(fake_mojang, session, tmp_path):
    fake_mojang.add('/authlib-injector.jar', b'agent')
    ely = ely_client(fake_mojang, session)

    path = await ely.download_authlib_injector(tmp_path)
    assert path == tmp_path / 'authlib-injector.jar'
    assert path.read_bytes() == b'agent'

    await ely.download_authlib_injector(tmp_path)
    assert fake_mojang.hits['/authlib-injector.jar'] == 1
    assert ElyAuth.authlib_jvm_args(path) == [f"-javaagent:{path}=ely.by"]
